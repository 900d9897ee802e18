import pytest
from pydantic import ValidationError

from payouts.config import PayoutSettings, PrefixSet, load_settings


def test_nested_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("PAYOUTS_COIN", "salvium")
    monkeypatch.setenv("PAYOUTS_DAEMON_TYPE", "bytecoin")
    monkeypatch.setenv("PAYOUTS_PAYMENTS__MIN_PAYMENT", "123000")
    monkeypatch.setenv("PAYOUTS_PAYMENTS__DYNAMIC_TRANSFER_FEE", "true")
    monkeypatch.setenv("PAYOUTS_MIGRATION__ENABLED", "true")
    monkeypatch.setenv("PAYOUTS_MIGRATION__HEIGHTS__CARROT", "400")
    monkeypatch.setenv("PAYOUTS_STORE_PATH", str(tmp_path / "store.json"))

    settings = load_settings(_env_file=None)

    assert settings.coin == "salvium"
    assert settings.daemon_type == "bytecoin"
    assert settings.payments.min_payment == 123000
    assert settings.payments.dynamic_transfer_fee
    assert settings.migration.enabled
    assert settings.migration.heights.carrot == 400
    assert settings.store_path == tmp_path / "store.json"


def test_settings_are_immutable(make_settings):
    settings = make_settings()

    with pytest.raises(ValidationError):
        settings.coin = "other"


def test_prefixes_accept_hex_and_decimal():
    prefixes = PrefixSet(public="0x3ef318", integrated="4120", subaddress=None)

    assert prefixes.public == 0x3EF318
    assert prefixes.integrated == 4120
    assert prefixes.all_prefixes() == (0x3EF318, 4120)


def test_invalid_prefix_rejected():
    with pytest.raises(ValidationError):
        PrefixSet(public="not-a-prefix")


def test_fixed_diff_separator_must_differ_from_payment_id(make_settings):
    with pytest.raises(ValidationError):
        make_settings(fixed_diff={"enabled": True, "address_separator": "+"})

    settings = make_settings(fixed_diff={"enabled": False, "address_separator": "+"})
    assert settings.fixed_diff.address_separator == "+"


def test_dual_separator_defaults_to_payment_id_separator(make_settings):
    assert make_settings().dual_address_separator == "+"
    assert make_settings(migration={"address_separator": "|"}).dual_address_separator == "|"


def test_ring_size_falls_back_to_mixin(make_settings):
    assert make_settings(payments={"mixin": 4}).payments.effective_ring_size == 4
    assert make_settings(payments={"mixin": 4, "ring_size": 16}).payments.effective_ring_size == 16


def test_miner_pays_fee_only_in_dynamic_mode(make_settings):
    assert not make_settings(payments={"miner_pay_fee": True}).payments.miner_pays_fee
    assert make_settings(payments={"miner_pay_fee": True, "dynamic_transfer_fee": True}).payments.miner_pays_fee


@pytest.mark.parametrize("field", ["denomination", "min_payment", "max_addresses", "interval_seconds"])
def test_non_positive_payment_values_rejected(tmp_path, field):
    with pytest.raises(ValidationError):
        PayoutSettings(_env_file=None, store_path=tmp_path / "s.json", payments={field: 0})
