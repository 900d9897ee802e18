"""Settings loader for the pool payout processor."""
from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class PrefixSet(BaseModel):
    """Base58 address prefixes accepted for one address family."""

    model_config = ConfigDict(frozen=True)

    public: int
    integrated: Optional[int] = None
    subaddress: Optional[int] = None

    @field_validator("public", "integrated", "subaddress", mode="before")
    @classmethod
    def parse_prefix(cls, value):
        if value is None or isinstance(value, int):
            return value
        candidate = str(value).strip()
        if not candidate:
            return None
        try:
            return int(candidate, 0)
        except ValueError as exc:
            raise ValueError(f"Invalid address prefix: {value}") from exc

    def all_prefixes(self) -> tuple[int, ...]:
        return tuple(item for item in (self.public, self.integrated, self.subaddress) if item is not None)


class PaymentsConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    interval_seconds: int = Field(default=300)
    denomination: int = Field(default=10_000_000_000)
    min_payment: int = Field(default=100_000_000_000)
    max_payment: Optional[int] = Field(default=None)
    max_payout_amount: Optional[int] = Field(default=None)
    transfer_fee: int = Field(default=0, ge=0)
    dynamic_transfer_fee: bool = Field(default=False)
    miner_pay_fee: bool = Field(default=False)
    max_addresses: int = Field(default=50)
    max_transaction_amount: Optional[int] = Field(default=None)
    ring_size: Optional[int] = Field(default=None)
    mixin: int = Field(default=10, ge=0)
    priority: int = Field(default=0, ge=0)
    unlock_time: int = Field(default=0, ge=0)

    @field_validator("interval_seconds", "denomination", "min_payment", "max_addresses")
    @classmethod
    def validate_positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @field_validator("max_payment", "max_payout_amount", "max_transaction_amount", "ring_size")
    @classmethod
    def validate_optional_positive(cls, value: Optional[int]) -> Optional[int]:
        if value is None:
            return value
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @property
    def miner_pays_fee(self) -> bool:
        return self.dynamic_transfer_fee and self.miner_pay_fee

    @property
    def effective_ring_size(self) -> int:
        return self.ring_size if self.ring_size is not None else self.mixin


class PaymentIdConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    address_separator: str = Field(default="+", min_length=1, max_length=4)


class FixedDiffConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False)
    address_separator: str = Field(default=".", min_length=1, max_length=4)


class MigrationHeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    audit_phase1: Optional[int] = Field(default=None, ge=0)
    audit_complete: Optional[int] = Field(default=None, ge=0)
    require_dual_login: Optional[int] = Field(default=None, ge=0)
    carrot: Optional[int] = Field(default=None, ge=0)


class MigrationConfig(BaseModel):
    """Height-gated address/asset migration (audit, dual login, carrot)."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False)
    heights: MigrationHeights = Field(default_factory=MigrationHeights)
    address_separator: Optional[str] = Field(default=None, max_length=4)
    legacy_symbol: str = Field(default="SAL", min_length=1)
    successor_symbol: str = Field(default="SAL1", min_length=1)
    asset_transition_height: Optional[int] = Field(default=None, ge=0)
    tx_type: int = Field(default=3)
    carrot_pool_address: Optional[str] = Field(default=None)
    cryptonote_prefixes: Optional[PrefixSet] = Field(default=None)
    carrot_prefixes: Optional[PrefixSet] = Field(default=None)


class PayoutSettings(BaseSettings):
    coin: str = Field(default="monero", min_length=1)
    symbol: str = Field(default="XMR", min_length=1)
    coin_units: int = Field(default=1_000_000_000_000)
    coin_decimal_places: Optional[int] = Field(default=None, ge=0, le=18)
    daemon_type: Literal["default", "bytecoin"] = Field(default="default")

    pool_address: Optional[str] = Field(default=None)
    public_address_prefix: Optional[int] = Field(default=None)
    integrated_address_prefix: Optional[int] = Field(default=None)
    subaddress_prefix: Optional[int] = Field(default=None)

    daemon_rpc_url: str = Field(default="http://127.0.0.1:18081/json_rpc")
    wallet_rpc_url: str = Field(default="http://127.0.0.1:18082/json_rpc")
    rpc_timeout_seconds: float = Field(default=30.0)

    store_path: Path = Field(default=Path("/app/data/store.json"))
    intents_path: Path = Field(default=Path("/app/data/settlement_intents.json"))

    payments: PaymentsConfig = Field(default_factory=PaymentsConfig)
    payment_id: PaymentIdConfig = Field(default_factory=PaymentIdConfig)
    fixed_diff: FixedDiffConfig = Field(default_factory=FixedDiffConfig)
    migration: MigrationConfig = Field(default_factory=MigrationConfig)

    notify_webhook_url: Optional[str] = Field(default=None)
    notify_timeout_seconds: float = Field(default=5.0)

    api_enabled: bool = Field(default=True)
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8117)
    api_root_path: str = Field(default="")

    model_config = SettingsConfigDict(
        env_prefix="PAYOUTS_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @field_validator("coin_units", "api_port")
    @classmethod
    def validate_positive_int(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @field_validator("rpc_timeout_seconds", "notify_timeout_seconds")
    @classmethod
    def validate_positive_float(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @model_validator(mode="after")
    def validate_separators(self) -> "PayoutSettings":
        if self.fixed_diff.enabled and self.fixed_diff.address_separator == self.payment_id.address_separator:
            raise ValueError("Fixed difficulty and payment id separators must differ")
        return self

    @property
    def dual_address_separator(self) -> str:
        return self.migration.address_separator or self.payment_id.address_separator


def load_settings(**overrides) -> PayoutSettings:
    """Build the immutable settings value passed to every component."""
    return PayoutSettings(**overrides)
