"""
SecureStorage: Encrypted read/write of secrets in a durable key-value store.

Provides the public API of the secure storage layer:
- ``write_secure(key, value)``: serialize, encrypt and overwrite an entry
- ``read_secure(key)``: decrypt an entry, migrating legacy plaintext in place
- ``remove_secure(key)``: delete an entry (idempotent)

Legacy migration:
    Values written before encryption existed (plain JSON or bare strings)
    fail to decrypt. They are then parsed from the raw stored string,
    re-encrypted under the same key and returned. The rewrite is
    best-effort: a failure is logged and the recovered value still returned.

Security Note:
    Never log plaintext or ciphertext values. Only log key names and
    operations.
"""
import asyncio
import logging
from typing import Any, Optional

from .backends import JsonFileStore, KeyValueStore, MemoryStore
from .config import StorageConfig
from .crypto import (
    DecryptResult,
    StoredValue,
    Structured,
    decrypt_value,
    encode_json,
    encrypt_value,
    parse_value,
    serialize_value,
)

logger = logging.getLogger("credstore.vault")


class SecureStorage:
    """Encrypted view over a ``KeyValueStore``.

    Each stored entry is an independent record keyed by the caller's storage
    key; nothing is cached between calls. Concurrent writes to the same key
    are not serialized: the last ``set`` on the store wins.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[StorageConfig] = None,
    ):
        self._store = store
        self._config = config if config is not None else StorageConfig()

    @property
    def store(self) -> KeyValueStore:
        return self._store

    # ------------------------------------------------------------------
    # Key validation
    # ------------------------------------------------------------------

    def _validate_key(self, key: str) -> None:
        """Validate a storage key.

        Raises:
            ValueError: If key is not a non-empty string.
        """
        if not isinstance(key, str) or not key:
            raise ValueError("Storage key must be a non-empty string")

    # ------------------------------------------------------------------
    # Crypto helpers (CPU-bound, run off the event loop)
    # ------------------------------------------------------------------

    async def _encrypt(self, plaintext: str) -> str:
        return await asyncio.to_thread(encrypt_value, plaintext, self._config.secret)

    async def _decrypt(self, encoded: str) -> DecryptResult:
        return await asyncio.to_thread(decrypt_value, encoded, self._config.secret)

    async def _migrate(self, key: str, stored: StoredValue) -> None:
        """Re-encrypt a legacy value in place; never raises."""
        try:
            if isinstance(stored, Structured):
                plaintext = encode_json(stored.value)
            else:
                plaintext = stored.text
            encoded = await self._encrypt(plaintext)
            self._store.set(key, encoded)
        except Exception as err:
            logger.warning(
                "Legacy migration failed for key=%s: %s",
                key, type(err).__name__,
            )
        else:
            logger.info("Migrated legacy value to encrypted record: key=%s", key)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def write_secure(self, key: str, value: Any) -> None:
        """Encrypt and store a secret, replacing any previous entry.

        Args:
            key: Storage key.
            value: A string (stored verbatim) or any JSON-serializable value.

        Raises:
            SerializationError: If value cannot be JSON-encoded.
            UnsupportedEnvironmentError: If the crypto backend is unavailable.
        """
        self._validate_key(key)
        plaintext = serialize_value(value)
        encoded = await self._encrypt(plaintext)
        self._store.set(key, encoded)
        logger.debug("Secure write: key=%s", key)

    async def read_secure(self, key: str) -> Any:
        """Decrypt and return a secret.

        Args:
            key: Storage key.

        Returns:
            The parsed JSON value, the plaintext string when it is not JSON,
            or None if nothing is stored under key.
        """
        self._validate_key(key)
        raw = self._store.get(key)
        if not raw:
            return None

        result = await self._decrypt(raw)
        if result.ok:
            return parse_value(result.plaintext).unwrap()

        # Legacy path: the stored string was never encrypted (or is foreign).
        logger.debug(
            "Key=%s did not decrypt (%s), reading as legacy value",
            key, type(result.error).__name__,
        )
        stored = parse_value(raw)
        await self._migrate(key, stored)
        return stored.unwrap()

    def remove_secure(self, key: str) -> None:
        """Delete a secret. Missing or empty keys are ignored."""
        self._store.remove(key)
        logger.debug("Secure remove: key=%s", key)

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    def from_config(cls, config: Optional[StorageConfig] = None) -> "SecureStorage":
        """Build a SecureStorage over the store described by config.

        A configured ``store_path`` selects a ``JsonFileStore``; otherwise an
        in-memory store is used.

        Args:
            config: Storage configuration; defaults to ``StorageConfig.from_env()``.

        Returns:
            Ready-to-use SecureStorage instance.
        """
        if config is None:
            config = StorageConfig.from_env()
        if config.store_path is not None:
            store: KeyValueStore = JsonFileStore(config.store_path)
        else:
            store = MemoryStore()
        logger.info(
            "Secure storage ready: backend=%s", type(store).__name__,
        )
        return cls(store, config)
