import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from payouts.addresses import encode_address  # noqa: E402
from payouts.config import PayoutSettings  # noqa: E402

CRYPTONOTE_PREFIX = 0x3EF318
CRYPTONOTE_INTEGRATED_PREFIX = 0x55EF318
CARROT_PREFIX = 0x180C96
CARROT_INTEGRATED_PREFIX = 0x2CCA0C96


def make_address(prefix: int, seed: int) -> str:
    return encode_address(prefix, bytes([seed % 256]) * 64)


@pytest.fixture()
def make_settings(tmp_path: Path):
    def factory(**overrides) -> PayoutSettings:
        overrides.setdefault("store_path", tmp_path / "store.json")
        overrides.setdefault("intents_path", tmp_path / "intents.json")
        return PayoutSettings(_env_file=None, **overrides)

    return factory


@pytest.fixture()
def migration_config():
    return {
        "enabled": True,
        "heights": {
            "audit_phase1": 100,
            "audit_complete": 200,
            "require_dual_login": 300,
            "carrot": 400,
        },
        "cryptonote_prefixes": {
            "public": hex(CRYPTONOTE_PREFIX),
            "integrated": hex(CRYPTONOTE_INTEGRATED_PREFIX),
        },
        "carrot_prefixes": {
            "public": hex(CARROT_PREFIX),
            "integrated": hex(CARROT_INTEGRATED_PREFIX),
        },
    }
