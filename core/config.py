"""
Application configuration using Pydantic Settings
"""

from enum import Enum
from typing import Any, Dict, Set

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.exceptions import ConfigurationError

REDSHIFT_HOST_SUFFIX = "redshift.amazonaws.com"

# Max Redshift statement is 16 MB, keep batches well under it
MIN_UPLOAD_MEGABYTES = 1
MAX_UPLOAD_MEGABYTES = 10
MIN_UPLOAD_SECONDS = 1
MAX_UPLOAD_SECONDS = 600


class PropertiesDataType(str, Enum):
    """Column type used for properties, set and set_once"""
    VARCHAR = "varchar"
    SUPER = "super"


def _clamp(value: Any, lower: int, upper: int) -> int:
    """Parse an int leniently and clamp it; unparseable or zero falls back to lower"""
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        parsed = 0
    if not parsed:
        parsed = lower
    return max(lower, min(parsed, upper))


class Settings(BaseSettings):
    """Export settings with environment variable support"""

    # Warehouse connection
    CLUSTER_HOST: str
    CLUSTER_PORT: int
    DB_NAME: str
    DB_USERNAME: str
    DB_PASSWORD: SecretStr
    DB_SCHEMA: str = "public"
    TABLE_NAME: str = "posthog_event"

    # Buffering
    UPLOAD_SECONDS: int = 30
    UPLOAD_MEGABYTES: int = 1

    # Event filtering and column dialect
    EVENTS_TO_IGNORE: str = "$feature_flag_called"
    PROPERTIES_DATA_TYPE: PropertiesDataType = PropertiesDataType.VARCHAR

    # Environment
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("CLUSTER_HOST")
    @classmethod
    def check_cluster_host(cls, v: str) -> str:
        """Only managed Redshift clusters are accepted"""
        v = v.strip()
        if not v.endswith(REDSHIFT_HOST_SUFFIX):
            raise ValueError("Cluster host must be a valid AWS Redshift host")
        return v

    @field_validator("UPLOAD_SECONDS", mode="before")
    @classmethod
    def clamp_upload_seconds(cls, v):
        return _clamp(v, MIN_UPLOAD_SECONDS, MAX_UPLOAD_SECONDS)

    @field_validator("UPLOAD_MEGABYTES", mode="before")
    @classmethod
    def clamp_upload_megabytes(cls, v):
        return _clamp(v, MIN_UPLOAD_MEGABYTES, MAX_UPLOAD_MEGABYTES)

    @field_validator("PROPERTIES_DATA_TYPE", mode="before")
    @classmethod
    def parse_properties_data_type(cls, v):
        """Accept the generic dialect names as well as the Redshift ones"""
        if isinstance(v, str):
            aliases = {"text": "varchar", "structured": "super"}
            v = v.strip().lower()
            return aliases.get(v, v)
        return v

    @property
    def byte_limit(self) -> int:
        return self.UPLOAD_MEGABYTES * 1024 * 1024

    @property
    def ignored_events(self) -> Set[str]:
        """Event names that are never exported"""
        return {name.strip() for name in self.EVENTS_TO_IGNORE.split(",") if name.strip()}


def load_settings(**overrides: Any) -> Settings:
    """
    Build settings from the environment plus explicit overrides.

    Raises:
        ConfigurationError: If a required option is missing or invalid
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems: Dict[str, str] = {
            ".".join(str(part) for part in error["loc"]): error["msg"]
            for error in e.errors()
        }
        raise ConfigurationError(
            "Invalid export configuration",
            context={"fields": problems},
            original_exception=e
        )
