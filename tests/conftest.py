"""
Shared pytest fixtures for the credstore test suite.
"""
import pytest

from credstore.credentials import CredentialManager
from credstore.vault import MemoryStore, SecureStorage, StorageConfig


@pytest.fixture
def store():
    """An empty in-memory key-value store."""
    return MemoryStore()


@pytest.fixture
def config():
    """Default storage configuration (built-in passphrase)."""
    return StorageConfig()


@pytest.fixture
def storage(store, config):
    """SecureStorage over the in-memory store."""
    return SecureStorage(store, config)


@pytest.fixture
def manager(storage):
    """CredentialManager over the secure storage fixture."""
    return CredentialManager(storage)
