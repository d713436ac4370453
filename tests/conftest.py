"""
Shared fixtures for transfer admin tests
"""

import os

# Settings are read once at import time by the application modules
os.environ.setdefault("TRANSFER_TOKEN_SALT", "test-transfer-token-salt")
os.environ.setdefault("LOG_JSON", "false")

import pytest

from transfer_admin.services.transfer import (
    AccessKeyHasher,
    InMemoryTransferTokenStore,
    PermissionReconciler,
    PermissionRegistry,
    TransferTokenService,
)

TEST_SALT = "test-transfer-token-salt"


@pytest.fixture
def store():
    """Empty in-memory token store"""
    return InMemoryTransferTokenStore()


@pytest.fixture
def registry():
    """Registry with the default push/pull actions"""
    return PermissionRegistry(actions=["push", "pull"])


@pytest.fixture
def service(store, registry):
    """Token service with a configured salt"""
    return TransferTokenService(
        hasher=AccessKeyHasher(TEST_SALT),
        store=store,
        reconciler=PermissionReconciler(registry),
    )
