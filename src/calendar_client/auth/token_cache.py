"""Refresh token persistence using msal-extensions."""

import logging
from pathlib import Path
from typing import Optional

from msal_extensions import FilePersistence, build_encrypted_persistence
from msal_extensions.persistence import PersistenceNotFound
from pydantic import ValidationError

from ..utils.exceptions import TokenCacheError
from .base import RefreshCookie, RefreshTokenStore

logger = logging.getLogger(__name__)


class PersistedRefreshTokenStore(RefreshTokenStore):
    """Stores the refresh cookie on disk, encrypted where the OS allows it."""

    def __init__(
        self,
        cache_location: Path,
        cache_name: str = "refresh_cookie",
        encrypted: bool = True,
    ):
        """
        Initialize the refresh token store.

        Args:
            cache_location: Directory for cache storage
            cache_name: Name of the cache file
            encrypted: Whether to encrypt the cache
        """
        self.cache_location = cache_location
        self.cache_name = cache_name
        self.encrypted = encrypted
        self._persistence = None

    def _get_persistence(self):
        if self._persistence is not None:
            return self._persistence

        try:
            self.cache_location.mkdir(parents=True, exist_ok=True)

            if self.encrypted:
                location = self.cache_location / f"{self.cache_name}.bin"
                try:
                    self._persistence = build_encrypted_persistence(str(location))
                except Exception as e:
                    # Headless Linux often has no libsecret keyring
                    logger.warning(
                        f"Encrypted token store unavailable ({e}), using plain file"
                    )
                    self._persistence = FilePersistence(str(location))
            else:
                self._persistence = FilePersistence(
                    str(self.cache_location / f"{self.cache_name}.json")
                )

            logger.debug(f"Refresh token store initialized at {self.cache_location}")
            return self._persistence

        except OSError as e:
            raise TokenCacheError(f"Failed to initialize token store: {e}") from e

    def load(self) -> Optional[RefreshCookie]:
        persistence = self._get_persistence()
        try:
            raw = persistence.load()
        except PersistenceNotFound:
            return None
        except OSError as e:
            raise TokenCacheError(f"Failed to read token store: {e}") from e

        if not raw:
            return None
        try:
            return RefreshCookie.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable refresh token record")
            return None

    def save(self, cookie: RefreshCookie) -> None:
        try:
            self._get_persistence().save(cookie.model_dump_json())
        except OSError as e:
            raise TokenCacheError(f"Failed to write token store: {e}") from e

    def clear(self) -> None:
        # Overwrite rather than delete: keychain backends have no delete hook
        try:
            self._get_persistence().save("")
        except OSError as e:
            raise TokenCacheError(f"Failed to clear token store: {e}") from e
        logger.debug("Refresh token store cleared")


class MemoryRefreshTokenStore(RefreshTokenStore):
    """Keeps the refresh cookie for the lifetime of the process only."""

    def __init__(self, cookie: Optional[RefreshCookie] = None):
        self._cookie = cookie

    def load(self) -> Optional[RefreshCookie]:
        return self._cookie

    def save(self, cookie: RefreshCookie) -> None:
        self._cookie = cookie

    def clear(self) -> None:
        self._cookie = None
