"""
Pytest fixtures for the ASI chain SDK tests.
"""
import time

import pytest

from asichain_sdk.config import Network, NetworkConfig, Settings
from asichain_sdk.ledger import MemoryStore, PendingLedger
from asichain_sdk.models import Account
from asichain_sdk.signer import address_from_private_key, public_key_from_private_key

# Test constants
TEST_PRIV_KEY = "3b4ce9b6a2c2b0b9f34b9f0c1f4c2d7b0e6e8d4a5a3c2b1f0e9d8c7b6a5f4e3d"
TEST_OTHER_PRIV_KEY = "a1c2e3f405162738495a6b7c8d9eafb0c1d2e3f405162738495a6b7c8d9eafb0"

VALIDATOR_URL = "https://validator.test"
READ_ONLY_URL = "https://readonly.test"
ADMIN_URL = "https://admin.test"
INDEXER_URL = "https://indexer.test/v1/graphql"


# Make time.sleep instantaneous so indexer retries don't slow the suite down
@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture(autouse=True)
def _reset_network_cache():
    NetworkConfig._networks_cache = None
    yield
    NetworkConfig._networks_cache = None


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def network():
    return Network(
        id="testnet",
        name="Test Network",
        validator_url=VALIDATOR_URL,
        read_only_url=READ_ONLY_URL,
        indexer_url=INDEXER_URL,
        shard_id="root",
    )


@pytest.fixture
def admin_network():
    return Network(
        id="testnet-admin",
        validator_url=VALIDATOR_URL,
        read_only_url=READ_ONLY_URL,
        admin_url=ADMIN_URL,
        indexer_url=INDEXER_URL,
    )


@pytest.fixture
def account():
    return Account(
        id="acct-1",
        name="Main",
        address=address_from_private_key(TEST_PRIV_KEY),
        public_key=public_key_from_private_key(TEST_PRIV_KEY),
    )


@pytest.fixture
def other_account():
    return Account(
        id="acct-2",
        name="Savings",
        address=address_from_private_key(TEST_OTHER_PRIV_KEY),
        public_key=public_key_from_private_key(TEST_OTHER_PRIV_KEY),
    )


@pytest.fixture
def ledger():
    return PendingLedger(MemoryStore())
