"""Configuration management for the calendar client."""

from pathlib import Path
from typing import Optional
from urllib.parse import quote

from dotenv import load_dotenv
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils.exceptions import ConfigurationError

load_dotenv()


class AppConfig(BaseSettings):
    """Application configuration."""

    # Server
    api_base_url: str = Field(
        default="http://localhost:8080", validation_alias="CALENDAR_API_BASE_URL"
    )
    environment: str = Field(
        default="production", validation_alias="CALENDAR_ENVIRONMENT"
    )
    request_timeout_seconds: float = Field(
        default=30.0, validation_alias="CALENDAR_REQUEST_TIMEOUT_SECONDS"
    )
    use_system_truststore: bool = Field(
        default=True, validation_alias="CALENDAR_USE_SYSTEM_TRUSTSTORE"
    )

    # Session
    refresh_margin_seconds: int = Field(
        default=60, validation_alias="CALENDAR_REFRESH_MARGIN_SECONDS"
    )
    refresh_cookie_max_age_days: int = Field(
        default=7, validation_alias="CALENDAR_REFRESH_COOKIE_MAX_AGE_DAYS"
    )
    token_store_path: Path = Field(
        default=Path(".calendar_client"), validation_alias="CALENDAR_TOKEN_STORE_PATH"
    )
    token_store_encrypted: bool = Field(
        default=True, validation_alias="CALENDAR_TOKEN_STORE_ENCRYPTED"
    )

    # Wire timestamps use this zone's offset; None means the system zone
    timezone: Optional[str] = Field(default=None, validation_alias="CALENDAR_TIMEZONE")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: Optional[Path] = Field(default=None, validation_alias="LOG_FILE")

    # Event window used by the CLI
    sync_lookback_days: int = Field(default=7, validation_alias="SYNC_LOOKBACK_DAYS")
    sync_lookahead_days: int = Field(
        default=30, validation_alias="SYNC_LOOKAHEAD_DAYS"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        env_parse_none_str="",  # Treat empty string as None
        populate_by_name=True,
    )

    @field_validator("refresh_margin_seconds")
    @classmethod
    def _margin_not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("refresh margin must be >= 0")
        return value

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")


class ApiEndpoints:
    """REST API paths consumed by the client."""

    base_uri = "/api/v1"

    @property
    def login(self) -> str:
        return f"{self.base_uri}/auth/login"

    @property
    def refresh(self) -> str:
        return f"{self.base_uri}/auth/refresh"

    @property
    def logout(self) -> str:
        return f"{self.base_uri}/auth/logout"

    @property
    def me(self) -> str:
        return f"{self.base_uri}/users/me"

    @property
    def calendars(self) -> str:
        return f"{self.base_uri}/calendars"

    def events(self, calendar_id: str) -> str:
        return f"{self.calendars}/{quote(str(calendar_id), safe='')}/events"

    def event(self, calendar_id: str, event_id: str) -> str:
        return f"{self.events(calendar_id)}/{quote(str(event_id), safe='')}"

    @property
    def address_books(self) -> str:
        return f"{self.base_uri}/addressbooks"

    def contacts(self, address_book_id: str) -> str:
        return f"{self.address_books}/{quote(str(address_book_id), safe='')}/contacts"

    def contact(self, address_book_id: str, contact_id: str) -> str:
        return f"{self.contacts(address_book_id)}/{quote(str(contact_id), safe='')}"

    @property
    def contact_search(self) -> str:
        return f"{self.base_uri}/contacts/search"


ENDPOINTS = ApiEndpoints()


def load_config(**overrides) -> AppConfig:
    """
    Build the configuration from the environment and `.env`.

    Raises:
        ConfigurationError: If a setting is missing or invalid
    """
    try:
        return AppConfig(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
