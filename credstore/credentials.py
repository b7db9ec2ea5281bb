"""
Credentials: Dashboard connection secrets kept in SecureStorage.

Three entries are managed, under the storage keys the dashboard has always
used so values written before encryption are migrated on first read:

- ``typesense-config``: the active search-server connection
- ``gemini-api-key``: the AI assistant API key
- ``typesense-profiles``: saved server profiles for quick switching

Stored JSON uses the dashboard's camelCase field names.
"""
import os
import time
import logging
import secrets
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from .vault import SecureStorage
from .vault.crypto import encode_json, serialize_value

logger = logging.getLogger("credstore.credentials")

CONNECTION_KEY = "typesense-config"
AI_API_KEY = "gemini-api-key"
PROFILES_KEY = "typesense-profiles"
AI_API_KEY_ENV = "GEMINI_API_KEY"

PROFILE_COLORS = (
    "#3b82f6",  # blue
    "#8b5cf6",  # purple
    "#ec4899",  # pink
    "#f59e0b",  # amber
    "#10b981",  # emerald
    "#ef4444",  # red
    "#06b6d4",  # cyan
    "#f97316",  # orange
)

_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"


class ConnectionConfig(BaseModel):
    """Search-server connection settings."""

    api_key: str = Field(alias="apiKey", repr=False)
    host: str = Field(min_length=1)
    port: int = Field(default=8108, ge=1, le=65535)
    protocol: Literal["http", "https"] = "http"
    connection_timeout_seconds: int = Field(
        default=5, ge=1, alias="connectionTimeoutSeconds",
    )

    model_config = {"populate_by_name": True}

    @property
    def url(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"

    def same_server(self, other: "ConnectionConfig") -> bool:
        """True when both configs point at the same server with the same key."""
        return (
            self.host == other.host
            and self.port == other.port
            and self.api_key == other.api_key
        )


class ServerProfile(BaseModel):
    """A named, saved connection."""

    id: str
    name: str
    color: str = PROFILE_COLORS[0]
    config: ConnectionConfig
    is_default: bool = Field(default=False, alias="isDefault")
    created_at: int = Field(
        default_factory=lambda: int(time.time() * 1000), alias="createdAt",
    )

    model_config = {"populate_by_name": True}


def generate_profile_id() -> str:
    """Return a ``<epoch-ms>-<5 random chars>`` profile id."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(5))
    return f"{int(time.time() * 1000)}-{suffix}"


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


class CredentialManager:
    """Load, save and clear dashboard secrets through a SecureStorage."""

    def __init__(self, storage: SecureStorage):
        self._storage = storage

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def load_connection(self) -> Optional[ConnectionConfig]:
        """Return the saved connection, or None if absent or unusable."""
        data = await self._storage.read_secure(CONNECTION_KEY)
        if data is None:
            return None
        try:
            return ConnectionConfig.model_validate(data)
        except ValidationError as err:
            logger.warning(
                "Ignoring invalid saved connection (%d error(s))", err.error_count(),
            )
            return None

    async def save_connection(self, config: ConnectionConfig) -> None:
        await self._storage.write_secure(CONNECTION_KEY, _dump(config))
        logger.debug("Saved connection for %s", config.url)

    def clear_connection(self) -> None:
        self._storage.remove_secure(CONNECTION_KEY)

    # ------------------------------------------------------------------
    # AI API key
    # ------------------------------------------------------------------

    async def get_ai_api_key(self) -> Optional[str]:
        """Return the stored AI API key, falling back to $GEMINI_API_KEY."""
        value = await self._storage.read_secure(AI_API_KEY)
        if isinstance(value, str) and value:
            return value
        if value is not None and value != "":
            # Saved bare by an older build and parsed as JSON on read.
            logger.warning("Stored AI API key is not a string, re-save it")
            return serialize_value(value)
        return os.environ.get(AI_API_KEY_ENV) or None

    async def set_ai_api_key(self, key: str) -> None:
        """Store the key as a JSON string so it reads back unchanged."""
        if not key:
            raise ValueError("AI API key cannot be empty")
        await self._storage.write_secure(AI_API_KEY, encode_json(key))

    def clear_ai_api_key(self) -> None:
        self._storage.remove_secure(AI_API_KEY)

    # ------------------------------------------------------------------
    # Server profiles
    # ------------------------------------------------------------------

    async def load_profiles(self) -> list[ServerProfile]:
        """Return saved profiles; unreadable data yields an empty list."""
        data = await self._storage.read_secure(PROFILES_KEY)
        if not isinstance(data, list):
            if data is not None:
                logger.warning("Saved profiles are not a list, ignoring them")
            return []
        try:
            return [ServerProfile.model_validate(item) for item in data]
        except ValidationError as err:
            logger.warning(
                "Ignoring invalid saved profiles (%d error(s))", err.error_count(),
            )
            return []

    async def save_profiles(self, profiles: list[ServerProfile]) -> None:
        await self._storage.write_secure(
            PROFILES_KEY, [_dump(profile) for profile in profiles],
        )

    async def new_profile(
        self,
        config: ConnectionConfig,
        name: Optional[str] = None,
    ) -> ServerProfile:
        """Build (without saving) a profile for config.

        The first profile ever created becomes the default; colors rotate
        through the palette.
        """
        profiles = await self.load_profiles()
        return ServerProfile(
            id=generate_profile_id(),
            name=name or f"{config.host}:{config.port}",
            color=PROFILE_COLORS[len(profiles) % len(PROFILE_COLORS)],
            config=config,
            is_default=not profiles,
        )

    async def save_profile(self, profile: ServerProfile) -> list[ServerProfile]:
        """Insert or replace a profile by id and persist the list.

        A default profile clears the default flag on every other profile.

        Returns:
            The updated profile list.
        """
        profiles = await self.load_profiles()
        if any(p.id == profile.id for p in profiles):
            profiles = [profile if p.id == profile.id else p for p in profiles]
        else:
            profiles.append(profile)
        if profile.is_default:
            profiles = [
                p if p.id == profile.id else p.model_copy(update={"is_default": False})
                for p in profiles
            ]
        await self.save_profiles(profiles)
        logger.debug("Saved profile id=%s", profile.id)
        return profiles

    async def remove_profile(self, profile_id: str) -> list[ServerProfile]:
        profiles = [p for p in await self.load_profiles() if p.id != profile_id]
        await self.save_profiles(profiles)
        return profiles

    async def set_default_profile(self, profile_id: str) -> list[ServerProfile]:
        """Mark one profile as default.

        Raises:
            KeyError: If no profile has profile_id.
        """
        profiles = await self.load_profiles()
        if not any(p.id == profile_id for p in profiles):
            raise KeyError(f"Profile {profile_id} not found")
        profiles = [
            p.model_copy(update={"is_default": p.id == profile_id})
            for p in profiles
        ]
        await self.save_profiles(profiles)
        return profiles

    async def default_profile(self) -> Optional[ServerProfile]:
        for profile in await self.load_profiles():
            if profile.is_default:
                return profile
        return None

    async def find_profile(self, config: ConnectionConfig) -> Optional[ServerProfile]:
        """Return the saved profile pointing at the same server as config."""
        for profile in await self.load_profiles():
            if profile.config.same_server(config):
                return profile
        return None
