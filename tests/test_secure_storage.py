"""
Tests for SecureStorage.

Tests cover:
- Encrypted write/read round-trips (structured and bare strings)
- Read-triggered legacy migration (JSON and bare strings)
- Best-effort migration when the store or crypto backend fails
- Unsupported environment and serialization errors
- Idempotent removal and store selection from configuration
"""
import asyncio
import re

import pytest

from credstore.vault import (
    JsonFileStore,
    MemoryStore,
    SecureStorage,
    StorageConfig,
)
from credstore.vault.crypto import DecryptResult, decrypt_value
from credstore.vault.exceptions import (
    SerializationError,
    StoreError,
    UnsupportedEnvironmentError,
)

RECORD_PATTERN = re.compile(
    r"^[A-Za-z0-9+/]+=*\.[A-Za-z0-9+/]+=*\.[A-Za-z0-9+/]+=*$"
)


class FailingWritesStore(MemoryStore):
    """Store that can be read but rejects every write."""

    def set(self, key: str, value: str) -> None:
        raise StoreError("store is read-only")


def _is_record(value) -> bool:
    return isinstance(value, str) and RECORD_PATTERN.match(value) is not None


def _unsupported(*args, **kwargs):
    raise UnsupportedEnvironmentError("no crypto backend")


# --- Encrypted round-trips ---

class TestWriteRead:
    """Tests for write_secure followed by read_secure."""

    @pytest.mark.asyncio
    async def test_end_to_end_structured(self, storage, store):
        """A dict comes back deep-equal and is stored as a record."""
        await storage.write_secure("conn", {"host": "localhost", "port": 8108})
        assert await storage.read_secure("conn") == {"host": "localhost", "port": 8108}
        assert _is_record(store.get("conn"))
        assert "localhost" not in store.get("conn")

    @pytest.mark.asyncio
    async def test_bare_string(self, storage):
        """A non-JSON string comes back verbatim."""
        await storage.write_secure("key", "xyz-api-key")
        assert await storage.read_secure("key") == "xyz-api-key"

    @pytest.mark.asyncio
    async def test_json_looking_string_is_parsed(self, storage):
        """A string that parses as JSON comes back parsed."""
        await storage.write_secure("num", "123")
        assert await storage.read_secure("num") == 123

    @pytest.mark.asyncio
    async def test_stored_plaintext_is_serialized_value(self, storage, store, config):
        """Strings are encrypted verbatim, other values as compact JSON."""
        await storage.write_secure("s", "plain")
        await storage.write_secure("d", {"a": 1})
        assert decrypt_value(store.get("s"), config.secret).plaintext == "plain"
        assert decrypt_value(store.get("d"), config.secret).plaintext == '{"a":1}'

    @pytest.mark.asyncio
    async def test_write_replaces_previous_value(self, storage, store):
        """Writes fully replace the previous record."""
        await storage.write_secure("conn", {"host": "a"})
        first = store.get("conn")
        await storage.write_secure("conn", {"port": 1})
        assert store.get("conn") != first
        assert await storage.read_secure("conn") == {"port": 1}

    @pytest.mark.asyncio
    async def test_same_value_written_twice_differs(self, storage, store):
        """Identical plaintexts never produce identical records."""
        await storage.write_secure("a", "secret")
        await storage.write_secure("b", "secret")
        assert store.get("a") != store.get("b")

    @pytest.mark.asyncio
    async def test_read_absent_key(self, storage):
        """Missing keys read as None."""
        assert await storage.read_secure("missing") is None

    @pytest.mark.asyncio
    async def test_read_empty_raw_value(self, storage, store):
        """An empty stored string reads as None and is left untouched."""
        store.set("empty", "")
        assert await storage.read_secure("empty") is None
        assert store.get("empty") == ""

    @pytest.mark.asyncio
    async def test_empty_key_rejected(self, storage):
        """Storage keys must be non-empty."""
        with pytest.raises(ValueError):
            await storage.write_secure("", "value")
        with pytest.raises(ValueError):
            await storage.read_secure("")


# --- Legacy migration ---

class TestLegacyMigration:
    """Values written before encryption are migrated on first read."""

    @pytest.mark.asyncio
    async def test_legacy_json_is_migrated(self, storage, store):
        """Plain JSON is parsed, returned and re-encrypted in place."""
        store.set("k", '{"a":1}')
        assert await storage.read_secure("k") == {"a": 1}
        migrated = store.get("k")
        assert _is_record(migrated)

        assert await storage.read_secure("k") == {"a": 1}
        assert store.get("k") == migrated

    @pytest.mark.asyncio
    async def test_legacy_bare_string_is_migrated(self, storage, store):
        """A non-JSON legacy string is returned verbatim and encrypted."""
        store.set("legacy", "localhost:8108")
        assert await storage.read_secure("legacy") == "localhost:8108"
        assert _is_record(store.get("legacy"))
        assert await storage.read_secure("legacy") == "localhost:8108"

    @pytest.mark.asyncio
    async def test_legacy_json_string_keeps_quotes(self, storage, store, config):
        """A legacy JSON string literal is re-encrypted as JSON."""
        store.set("q", '"abc"')
        assert await storage.read_secure("q") == "abc"
        assert decrypt_value(store.get("q"), config.secret).plaintext == '"abc"'
        assert await storage.read_secure("q") == "abc"

    @pytest.mark.asyncio
    async def test_legacy_json_is_normalized(self, storage, store, config):
        """Legacy JSON is re-encrypted in compact form."""
        store.set("k", '{ "a" : 1,  "b": [1, 2] }')
        assert await storage.read_secure("k") == {"a": 1, "b": [1, 2]}
        assert decrypt_value(store.get("k"), config.secret).plaintext == '{"a":1,"b":[1,2]}'

    @pytest.mark.asyncio
    async def test_tampered_record_is_kept_as_bare_string(self, storage, store):
        """A record that fails authentication is never discarded."""
        await storage.write_secure("k", "secret")
        salt, nonce, ct = store.get("k").split(".")
        tampered = ".".join((salt, nonce, ("B" if ct[0] == "A" else "A") + ct[1:]))
        store.set("k", tampered)
        assert await storage.read_secure("k") == tampered
        assert _is_record(store.get("k"))
        assert store.get("k") != tampered

    @pytest.mark.asyncio
    async def test_foreign_passphrase_record(self, store):
        """Records from another passphrase are read as legacy strings."""
        other = SecureStorage(store, StorageConfig(passphrase="another-build"))
        await other.write_secure("k", "secret")
        foreign = store.get("k")
        storage = SecureStorage(store)
        assert await storage.read_secure("k") == foreign

    @pytest.mark.asyncio
    async def test_concurrent_legacy_reads(self, storage, store, config):
        """Racing reads of one legacy value both succeed."""
        store.set("k", '{"a":1}')
        results = await asyncio.gather(
            storage.read_secure("k"), storage.read_secure("k"),
        )
        assert results == [{"a": 1}, {"a": 1}]
        assert decrypt_value(store.get("k"), config.secret).plaintext == '{"a":1}'

    @pytest.mark.asyncio
    async def test_store_failure_does_not_block_read(self):
        """A failing migration write still returns the recovered value."""
        store = FailingWritesStore({"k": '{"a":1}', "s": "localhost:8108"})
        storage = SecureStorage(store)
        assert await storage.read_secure("k") == {"a": 1}
        assert await storage.read_secure("s") == "localhost:8108"
        assert store.get("k") == '{"a":1}'


# --- Environment and serialization errors ---

class TestErrors:
    """Tests for surfaced and degraded failures."""

    @pytest.mark.asyncio
    async def test_unsupported_environment_fails_write(self, storage, store, monkeypatch):
        """Writes propagate UnsupportedEnvironmentError and store nothing."""
        monkeypatch.setattr(
            "credstore.vault.secure_storage.encrypt_value", _unsupported,
        )
        with pytest.raises(UnsupportedEnvironmentError):
            await storage.write_secure("k", "secret")
        assert store.get("k") is None

    @pytest.mark.asyncio
    async def test_unsupported_environment_degrades_read(self, storage, store, monkeypatch):
        """Reads fall back to the raw stored value without migrating."""
        monkeypatch.setattr(
            "credstore.vault.secure_storage.encrypt_value", _unsupported,
        )
        monkeypatch.setattr(
            "credstore.vault.secure_storage.decrypt_value",
            lambda encoded, passphrase: DecryptResult.failure(
                UnsupportedEnvironmentError("no crypto backend")
            ),
        )
        store.set("k", '{"a":1}')
        assert await storage.read_secure("k") == {"a": 1}
        assert store.get("k") == '{"a":1}'

    @pytest.mark.asyncio
    async def test_serialization_error(self, storage, store):
        """Unserializable values raise before anything is stored."""
        with pytest.raises(SerializationError):
            await storage.write_secure("k", {"a": {1, 2}})
        assert store.get("k") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["key-\ud800", {"apiKey": "\udfff"}])
    async def test_lone_surrogate_is_serialization_error(self, storage, store, value):
        """Text that cannot be UTF-8 encoded raises SerializationError."""
        with pytest.raises(SerializationError):
            await storage.write_secure("k", value)
        assert store.get("k") is None

    @pytest.mark.asyncio
    async def test_serialization_error_keeps_previous_value(self, storage):
        """A rejected write leaves the previous record intact."""
        await storage.write_secure("k", "old")
        with pytest.raises(SerializationError):
            await storage.write_secure("k", object())
        assert await storage.read_secure("k") == "old"


# --- Removal ---

class TestRemove:
    """Tests for remove_secure."""

    def test_remove_missing_key(self, storage):
        """Removing an absent key does not raise."""
        storage.remove_secure("missing")

    def test_remove_empty_key(self, storage):
        """Removal never raises, even for an empty key."""
        storage.remove_secure("")

    @pytest.mark.asyncio
    async def test_remove_existing_key(self, storage, store):
        """Removed keys read as None."""
        await storage.write_secure("k", "secret")
        storage.remove_secure("k")
        assert store.get("k") is None
        assert await storage.read_secure("k") is None
        storage.remove_secure("k")


# --- Factory ---

class TestFromConfig:
    """Tests for SecureStorage.from_config."""

    def test_memory_store_by_default(self):
        """Without a store path the storage is in-memory."""
        storage = SecureStorage.from_config(StorageConfig())
        assert isinstance(storage.store, MemoryStore)

    @pytest.mark.asyncio
    async def test_file_store_persists(self, tmp_path):
        """A configured store path persists records across instances."""
        config = StorageConfig(store_path=tmp_path / "secrets.json")
        storage = SecureStorage.from_config(config)
        assert isinstance(storage.store, JsonFileStore)
        await storage.write_secure("conn", {"host": "localhost", "port": 8108})

        reopened = SecureStorage.from_config(config)
        assert await reopened.read_secure("conn") == {"host": "localhost", "port": 8108}

    def test_from_env(self, tmp_path, monkeypatch):
        """Environment overrides select the file store."""
        monkeypatch.setenv("CREDSTORE_STORE_PATH", str(tmp_path / "env.json"))
        storage = SecureStorage.from_config()
        assert isinstance(storage.store, JsonFileStore)
        assert storage.store.path == tmp_path / "env.json"
