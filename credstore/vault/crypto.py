"""
Vault Crypto Core: Key derivation, encryption/decryption, and serialization.

Implements the on-store record format of the secure storage layer:
    PBKDF2-HMAC-SHA256(passphrase, salt) → AES-256-GCM → b64(salt).b64(nonce).b64(ct‖tag)

Every encryption draws a fresh 16-byte salt and 12-byte nonce, so the same
plaintext never produces the same record and nonces never repeat under a
derived key.

Security Note:
    Never log plaintext, ciphertext or derived key values.
    Derived keys are local to a single call and never cached.
"""
import os
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

import orjson
from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .exceptions import (
    AuthenticationError,
    DecryptionError,
    EncodingError,
    SerializationError,
    UnsupportedEnvironmentError,
)

logger = logging.getLogger("credstore.vault")

SALT_SIZE = 16  # 128-bit PBKDF2 salt
NONCE_SIZE = 12  # 96-bit GCM nonce
TAG_SIZE = 16  # GCM tag appended by AESGCM
KEY_LENGTH = 32  # AES-256
PBKDF2_ITERATIONS = 100_000
SEPARATOR = "."


# ---------------------------------------------------------------------------
# Record encoding
# ---------------------------------------------------------------------------

def _b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def _b64decode(segment: str) -> bytes:
    try:
        return base64.b64decode(segment, validate=True)
    except (binascii.Error, ValueError) as err:
        raise EncodingError(f"Invalid base64 segment: {err}") from err


@dataclass(frozen=True)
class SecureRecord:
    """Decoded form of one stored secret: salt, nonce and ciphertext‖tag."""

    salt: bytes
    nonce: bytes
    ciphertext: bytes

    def __post_init__(self) -> None:
        if len(self.salt) != SALT_SIZE:
            raise EncodingError(
                f"salt must be {SALT_SIZE} bytes, got {len(self.salt)}"
            )
        if len(self.nonce) != NONCE_SIZE:
            raise EncodingError(
                f"nonce must be {NONCE_SIZE} bytes, got {len(self.nonce)}"
            )
        if len(self.ciphertext) < TAG_SIZE:
            raise EncodingError(
                f"ciphertext too short: {len(self.ciphertext)} bytes "
                f"(minimum {TAG_SIZE})"
            )

    def encode(self) -> str:
        """Return the three-segment storage string."""
        return SEPARATOR.join(
            (_b64encode(self.salt), _b64encode(self.nonce), _b64encode(self.ciphertext))
        )

    @classmethod
    def parse(cls, encoded: str) -> "SecureRecord":
        """Parse a storage string.

        Raises:
            EncodingError: wrong segment count, bad base64 or bad sizes.
        """
        if not isinstance(encoded, str):
            raise EncodingError(f"Expected str, got {type(encoded).__name__}")
        parts = encoded.split(SEPARATOR)
        if len(parts) != 3:
            raise EncodingError(f"Expected 3 segments, got {len(parts)}")
        salt, nonce, ciphertext = (_b64decode(part) for part in parts)
        return cls(salt=salt, nonce=nonce, ciphertext=ciphertext)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(salt: bytes, passphrase: str) -> bytes:
    """Derive a 32-byte AES key using PBKDF2-HMAC-SHA256.

    Args:
        salt: Per-record random salt.
        passphrase: Application passphrase.

    Returns:
        32-byte derived key.

    Raises:
        UnsupportedEnvironmentError: if the backend lacks PBKDF2/SHA-256.
    """
    try:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=PBKDF2_ITERATIONS,
        )
        return kdf.derive(passphrase.encode("utf-8"))
    except UnsupportedAlgorithm as err:
        raise UnsupportedEnvironmentError(
            f"PBKDF2-HMAC-SHA256 is not available: {err}"
        ) from err


# ---------------------------------------------------------------------------
# Encryption / decryption
# ---------------------------------------------------------------------------

def _random_bytes(size: int) -> bytes:
    try:
        return os.urandom(size)
    except NotImplementedError as err:
        raise UnsupportedEnvironmentError(
            "No cryptographic randomness source available"
        ) from err


def _utf8(text: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as err:
        # lone surrogates
        raise SerializationError(f"Text is not valid UTF-8: {err}") from err


def encrypt_value(plaintext: str, passphrase: str) -> str:
    """Encrypt a plaintext string into a self-contained storage string.

    Args:
        plaintext: Text to protect.
        passphrase: Application passphrase.

    Returns:
        ``b64(salt).b64(nonce).b64(ciphertext‖tag)``

    Raises:
        SerializationError: if plaintext is not encodable as UTF-8.
        UnsupportedEnvironmentError: if AES-GCM or randomness is unavailable.
    """
    data = _utf8(plaintext)
    salt = _random_bytes(SALT_SIZE)
    nonce = _random_bytes(NONCE_SIZE)
    key = derive_key(salt, passphrase)
    try:
        ct = AESGCM(key).encrypt(nonce, data, None)
    except UnsupportedAlgorithm as err:
        raise UnsupportedEnvironmentError(
            f"AES-256-GCM is not available: {err}"
        ) from err
    return SecureRecord(salt=salt, nonce=nonce, ciphertext=ct).encode()


@dataclass(frozen=True)
class DecryptResult:
    """Outcome of ``decrypt_value``: either plaintext or the failure cause."""

    plaintext: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, plaintext: str) -> "DecryptResult":
        return cls(plaintext=plaintext)

    @classmethod
    def failure(cls, error: Exception) -> "DecryptResult":
        return cls(error=error)


def decrypt_value(encoded: str, passphrase: str) -> DecryptResult:
    """Decrypt a storage string produced by ``encrypt_value``.

    Never raises. Malformed input, tag mismatch and a missing crypto backend
    all come back as a failed ``DecryptResult``; unauthenticated plaintext
    is never returned.
    """
    try:
        record = SecureRecord.parse(encoded)
        key = derive_key(record.salt, passphrase)
        try:
            data = AESGCM(key).decrypt(record.nonce, record.ciphertext, None)
        except InvalidTag as err:
            raise AuthenticationError("GCM tag verification failed") from err
        except UnsupportedAlgorithm as err:
            raise UnsupportedEnvironmentError(
                f"AES-256-GCM is not available: {err}"
            ) from err
        try:
            return DecryptResult.success(data.decode("utf-8"))
        except UnicodeDecodeError as err:
            raise EncodingError("Decrypted payload is not UTF-8") from err
    except (DecryptionError, UnsupportedEnvironmentError) as err:
        logger.debug("Decrypt failed: %s", type(err).__name__)
        return DecryptResult.failure(err)


# ---------------------------------------------------------------------------
# Value serialization
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Raw:
    """A stored text that is not JSON; returned to callers verbatim."""

    text: str

    def unwrap(self) -> str:
        return self.text


@dataclass(frozen=True)
class Structured:
    """A stored text that parsed as JSON."""

    value: Any

    def unwrap(self) -> Any:
        return self.value


StoredValue = Union[Raw, Structured]


def encode_json(value: Any) -> str:
    """JSON-encode a value in compact form.

    Raises:
        SerializationError: if orjson cannot encode the value.
    """
    try:
        return orjson.dumps(value).decode("utf-8")
    except (orjson.JSONEncodeError, TypeError) as err:
        raise SerializationError(
            f"Value of type {type(value).__name__} is not JSON-serializable: {err}"
        ) from err


def serialize_value(value: Any) -> str:
    """Turn a value into the plaintext that gets encrypted.

    Strings are stored as-is; everything else is JSON-encoded.

    Raises:
        SerializationError: if value is not JSON-serializable or is a string
            that cannot be encoded as UTF-8.
    """
    if isinstance(value, str):
        _utf8(value)
        return value
    return encode_json(value)


def parse_value(text: str) -> StoredValue:
    """Classify text as ``Structured`` if it parses as JSON, else ``Raw``."""
    try:
        return Structured(orjson.loads(text))
    except orjson.JSONDecodeError:
        return Raw(text)
