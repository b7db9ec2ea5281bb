"""
Vault Configuration: Passphrase and store location settings.

Reads optional overrides from environment variables:
    CREDSTORE_PASSPHRASE = <application passphrase>
    CREDSTORE_STORE_PATH = <path of the JSON file store>

Security Note:
    The passphrase ships with the application and therefore only deters
    casual inspection of the store. Never log it.
"""
import os
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, field_validator

logger = logging.getLogger("credstore.vault")

# Build-time application constant. Changing it makes every stored record
# unreadable (they would be migrated as legacy bare strings).
DEFAULT_PASSPHRASE = "typesense-ui-local-key-v1"

PASSPHRASE_ENV = "CREDSTORE_PASSPHRASE"
STORE_PATH_ENV = "CREDSTORE_STORE_PATH"


class StorageConfig(BaseModel):
    """Immutable secure-storage configuration."""

    passphrase: SecretStr = Field(default=SecretStr(DEFAULT_PASSPHRASE))
    store_path: Optional[Path] = Field(default=None)

    model_config = {"frozen": True}

    @field_validator("passphrase")
    @classmethod
    def validate_passphrase(cls, v: SecretStr) -> SecretStr:
        """Reject an empty passphrase."""
        if not v.get_secret_value():
            raise ValueError("Storage passphrase cannot be empty")
        return v

    @property
    def secret(self) -> str:
        """Return the raw passphrase for key derivation."""
        return self.passphrase.get_secret_value()

    @classmethod
    def from_env(cls) -> "StorageConfig":
        """Create StorageConfig from environment overrides.

        Returns:
            Populated StorageConfig instance; unset variables keep defaults.
        """
        kwargs = {}
        passphrase = os.environ.get(PASSPHRASE_ENV)
        if passphrase:
            kwargs["passphrase"] = SecretStr(passphrase)
        store_path = os.environ.get(STORE_PATH_ENV)
        if store_path:
            kwargs["store_path"] = Path(store_path).expanduser()
        config = cls(**kwargs)
        logger.debug(
            "Storage config loaded: custom_passphrase=%s store_path=%s",
            "passphrase" in kwargs,
            config.store_path,
        )
        return config
