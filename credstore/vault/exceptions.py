"""
Vault Exceptions: Error taxonomy for the secure-storage layer.

Decryption failures (``EncodingError``, ``AuthenticationError``) are never
raised out of ``decrypt_value``; they travel inside a ``DecryptResult`` so the
storage adapter can fall back to legacy interpretation.
"""


class VaultError(Exception):
    """Base class for every credstore vault error."""


class DecryptionError(VaultError):
    """A stored value could not be turned back into plaintext."""


class EncodingError(DecryptionError):
    """The encoded record is malformed (segments, base64 or sizes)."""


class AuthenticationError(DecryptionError):
    """GCM tag verification failed: wrong key, tampered or foreign data."""


class UnsupportedEnvironmentError(VaultError, RuntimeError):
    """The cryptographic backend cannot provide PBKDF2 or AES-GCM."""


class SerializationError(VaultError, TypeError):
    """A value handed to the vault cannot be encoded as JSON."""


class StoreError(VaultError):
    """The durable key-value store is unreadable or cannot be written."""
