"""Service test fixtures — manager wired to manual fakes.

Invariants:
    - Every test gets a fresh manager, storage and transport
    - Nothing flushes or answers unless the test says so
"""

import pytest

from tokensync.services.device_token_manager import DeviceTokenManager
from tests.services.fakes import (
    LOCAL_ACCOUNT_ID, FakeStorage, FakeTransport, random_bytes,
)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def manager(storage, transport):
    return DeviceTokenManager(
        storage, transport, random_bytes, local_account_id=LOCAL_ACCOUNT_ID,
    )
