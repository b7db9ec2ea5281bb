"""Secure Vault: Encrypted credential storage in an untrusted key-value store.

Security Note (Threat Model):
    Records are encrypted with a key derived from a passphrase that ships
    with the application. Anyone able to run code in the same process, or to
    read the distributed package, can recover every stored secret. This is an
    accepted limitation: the layer only deters casual inspection and bulk
    scraping of the raw store contents.
"""

from .backends import KeyValueStore, MemoryStore, JsonFileStore
from .config import StorageConfig, DEFAULT_PASSPHRASE
from .crypto import (
    SecureRecord,
    DecryptResult,
    Raw,
    Structured,
    derive_key,
    encrypt_value,
    decrypt_value,
    parse_value,
    serialize_value,
)
from .exceptions import (
    VaultError,
    DecryptionError,
    EncodingError,
    AuthenticationError,
    UnsupportedEnvironmentError,
    SerializationError,
    StoreError,
)
from .secure_storage import SecureStorage

__all__ = [
    "SecureStorage",
    "StorageConfig",
    "DEFAULT_PASSPHRASE",
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "SecureRecord",
    "DecryptResult",
    "Raw",
    "Structured",
    "derive_key",
    "encrypt_value",
    "decrypt_value",
    "parse_value",
    "serialize_value",
    "VaultError",
    "DecryptionError",
    "EncodingError",
    "AuthenticationError",
    "UnsupportedEnvironmentError",
    "SerializationError",
    "StoreError",
]
