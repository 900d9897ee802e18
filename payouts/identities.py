"""Worker login parsing: `<address>[<separator><paymentId>]`."""
from __future__ import annotations

import re
from typing import Optional, Tuple

PAYMENT_ID_LENGTHS = (16, 64)

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def split_identity(worker_identity: str, separator: str) -> Tuple[str, Optional[str]]:
    """Return the address and the raw segment after the separator, if any."""
    parts = worker_identity.split(separator)
    extra = parts[1] if len(parts) > 1 and parts[1] else None
    return parts[0], extra


def normalize_payment_id(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    cleaned = _NON_ALNUM.sub("", raw)
    if len(cleaned) not in PAYMENT_ID_LENGTHS:
        return None
    return cleaned


def parse_identity(worker_identity: str, separator: str) -> Tuple[str, Optional[str]]:
    """Legacy single-address parsing; invalid payment ids are dropped."""
    address, raw_payment_id = split_identity(worker_identity, separator)
    return address, normalize_payment_id(raw_payment_id)


def strip_fixed_diff(address: str, separator: str) -> str:
    parts = address.split(separator)
    if len(parts) >= 2:
        return parts[0]
    return address


def shorten_address(address: str, keep: int = 7) -> str:
    if len(address) <= keep * 2:
        return address
    return f"{address[:keep]}...{address[-keep:]}"
