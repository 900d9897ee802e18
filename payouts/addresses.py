"""CryptoNote address helpers (base58 blocks, varint prefix, keccak checksum)."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from eth_utils import keccak

from .config import PayoutSettings, PrefixSet

ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
FULL_BLOCK_SIZE = 8
FULL_ENCODED_BLOCK_SIZE = 11
ENCODED_BLOCK_SIZES = (0, 2, 3, 5, 6, 7, 9, 10, 11)
CHECKSUM_SIZE = 4

_ALPHABET_INDEX = {char: index for index, char in enumerate(ALPHABET)}


class AddressError(ValueError):
    pass


def _encode_block(data: bytes) -> str:
    size = ENCODED_BLOCK_SIZES[len(data)]
    number = int.from_bytes(data, "big")
    chars = []
    for _ in range(size):
        number, remainder = divmod(number, 58)
        chars.append(ALPHABET[remainder])
    return "".join(reversed(chars))


def _decode_block(block: str) -> bytes:
    try:
        size = ENCODED_BLOCK_SIZES.index(len(block))
    except ValueError as exc:
        raise AddressError(f"Invalid base58 block length {len(block)}") from exc
    number = 0
    for char in block:
        index = _ALPHABET_INDEX.get(char)
        if index is None:
            raise AddressError(f"Invalid base58 character {char!r}")
        number = number * 58 + index
    if number >= 1 << (8 * size):
        raise AddressError("Base58 block overflow")
    return number.to_bytes(size, "big")


def b58encode(data: bytes) -> str:
    blocks = [data[i : i + FULL_BLOCK_SIZE] for i in range(0, len(data), FULL_BLOCK_SIZE)]
    return "".join(_encode_block(block) for block in blocks)


def b58decode(text: str) -> bytes:
    blocks = [text[i : i + FULL_ENCODED_BLOCK_SIZE] for i in range(0, len(text), FULL_ENCODED_BLOCK_SIZE)]
    return b"".join(_decode_block(block) for block in blocks)


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError("varint must be non-negative")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes) -> Tuple[int, int]:
    value = 0
    shift = 0
    for index, byte in enumerate(data):
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, index + 1
        shift += 7
        if shift > 63:
            break
    raise AddressError("Truncated or oversized varint prefix")


@dataclass(frozen=True)
class DecodedAddress:
    prefix: int
    payload: bytes


def encode_address(prefix: int, payload: bytes) -> str:
    data = encode_varint(prefix) + bytes(payload)
    return b58encode(data + keccak(data)[:CHECKSUM_SIZE])


def decode_address(address: str) -> DecodedAddress:
    raw = b58decode(address)
    if len(raw) <= CHECKSUM_SIZE:
        raise AddressError("Address too short")
    data, checksum = raw[:-CHECKSUM_SIZE], raw[-CHECKSUM_SIZE:]
    if keccak(data)[:CHECKSUM_SIZE] != checksum:
        raise AddressError("Address checksum mismatch")
    prefix, consumed = decode_varint(data)
    return DecodedAddress(prefix=prefix, payload=data[consumed:])


def address_prefix(address: str) -> Optional[int]:
    if not address:
        return None
    try:
        return decode_address(address).prefix
    except AddressError:
        return None


class AddressCodec:
    """Prefix checks for the pool's own address family."""

    def __init__(
        self,
        public: Optional[int] = None,
        integrated: Optional[int] = None,
        subaddress: Optional[int] = None,
    ) -> None:
        self.public = public
        self.integrated = integrated if integrated is not None else (public + 1 if public is not None else None)
        self.subaddress = subaddress

    @classmethod
    def from_settings(cls, settings: PayoutSettings) -> "AddressCodec":
        public = settings.public_address_prefix
        if public is None and settings.pool_address:
            public = address_prefix(settings.pool_address)
        return cls(
            public=public,
            integrated=settings.integrated_address_prefix,
            subaddress=settings.subaddress_prefix,
        )

    def prefix(self, address: str) -> Optional[int]:
        return address_prefix(address)

    def is_integrated(self, address: str) -> bool:
        if self.integrated is None:
            return False
        return self.prefix(address) == self.integrated

    def is_valid(self, address: str) -> bool:
        prefix = self.prefix(address)
        if prefix is None:
            return False
        return prefix in _known(self.public, self.integrated, self.subaddress)

    def matches(self, address: str, prefixes: Optional[PrefixSet]) -> bool:
        if prefixes is None or not address:
            return False
        prefix = self.prefix(address)
        return prefix is not None and prefix in prefixes.all_prefixes()


def _known(*values: Optional[int]) -> Iterable[int]:
    return [value for value in values if value is not None]


__all__ = [
    "AddressCodec",
    "AddressError",
    "DecodedAddress",
    "address_prefix",
    "b58decode",
    "b58encode",
    "decode_address",
    "encode_address",
]
