import pytest

from payouts.identities import normalize_payment_id, parse_identity, split_identity, strip_fixed_diff


def test_split_identity_keeps_raw_segment():
    assert split_identity("addr+abc", "+") == ("addr", "abc")
    assert split_identity("addr", "+") == ("addr", None)
    assert split_identity("addr+", "+") == ("addr", None)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("0123456789abcdef", "0123456789abcdef"),
        ("0123-4567-89ab-cdef", "0123456789abcdef"),
        ("ab" * 32, "ab" * 32),
        ("deadbeef", None),
        ("ab" * 16, None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_payment_id(raw, expected):
    assert normalize_payment_id(raw) == expected


def test_parse_identity_with_custom_separator():
    assert parse_identity("addr.0123456789abcdef", ".") == ("addr", "0123456789abcdef")
    assert parse_identity("addr+0123456789abcdef", ".") == ("addr+0123456789abcdef", None)


def test_strip_fixed_diff():
    assert strip_fixed_diff("addr.50000", ".") == "addr"
    assert strip_fixed_diff("addr", ".") == "addr"
