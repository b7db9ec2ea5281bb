"""Credstore.

Encrypted, self-migrating storage for dashboard connection secrets.
"""
from .version import __version__
from .vault import SecureStorage, StorageConfig
from .credentials import ConnectionConfig, ServerProfile, CredentialManager

__all__ = (
    "__version__",
    "SecureStorage",
    "StorageConfig",
    "ConnectionConfig",
    "ServerProfile",
    "CredentialManager",
)
