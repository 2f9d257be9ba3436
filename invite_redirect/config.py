"""Configuration management for the invite redirect service.

This module provides centralized configuration management using Pydantic BaseSettings
with environment variable support and caching for performance.

Flow Diagram — get_settings()
=============================
::
    ┌─────────────┐
    │  Call get_  │
    │  settings() │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Check cache  │
    │ (lru_cache)  │
    └──────┬──────┘
    HIT?  │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Create  │  │ Return  │
│ Settings│  │ cached  │
│ instance│  │ value   │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Import**::
    from invite_redirect.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    table = settings.AMAZON_DYNAMODB_TABLE

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- The table identity has no default: when neither the request nor the
  environment names one, the redirect fails with a configuration error.
- Store tuning values (timeouts, attempts, pool size) can be changed without a
  redeploy by setting the DDB_* variables. A value that is not a positive
  integer falls back to the default instead of failing startup.
- CLICK_INCREMENT_MODE is case-insensitive; unknown values mean sync.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache
from typing import Any

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from invite_redirect.enums import IncrementMode


class Settings(BaseSettings):
    APP_NAME: str = "invite-redirect"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # DynamoDB location and static credentials (optional; the default
    # credential chain applies when either key is missing)
    AMAZON_REGION: str = "sa-east-1"
    AMAZON_ACCESS_KEY_ID: str | None = None
    AMAZON_SECRET_ACCESS_KEY: str | None = None
    AMAZON_DYNAMODB_TABLE: str | None = None

    # Connection pool tuning for the latency-sensitive redirect path
    DDB_CONN_TIMEOUT_MS: int = Field(800, gt=0)
    DDB_SOCKET_TIMEOUT_MS: int = Field(1200, gt=0)
    DDB_MAX_ATTEMPTS: int = Field(2, gt=0)
    DDB_MAX_SOCKETS: int = Field(16, gt=0)
    STORE_MAX_CLIENTS: int = Field(4, gt=0)

    # Invite pool records
    INVITE_PARTITION_KEY: str = "WHATSAPP#INVITELINKS"
    INVITE_BASE_URL: str = "https://chat.whatsapp.com/"
    STALENESS_THRESHOLD_SECONDS: int = Field(7200, gt=0)
    SCOPE_MARKER: str = ":"

    # Click accounting
    CLICK_INCREMENT_MODE: IncrementMode = IncrementMode.SYNC
    DETACHED_DRAIN_TIMEOUT_SECONDS: float = 2.0

    # HTML pages for 404/500; None means the templates shipped with the package
    TEMPLATES_DIR: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator(
        "DDB_CONN_TIMEOUT_MS",
        "DDB_SOCKET_TIMEOUT_MS",
        "DDB_MAX_ATTEMPTS",
        "DDB_MAX_SOCKETS",
        "STORE_MAX_CLIENTS",
        "STALENESS_THRESHOLD_SECONDS",
        mode="before",
    )
    @classmethod
    def positive_int_or_default(cls, v: Any, info: ValidationInfo) -> Any:
        default = cls.model_fields[info.field_name].default
        try:
            value = int(v)
        except (TypeError, ValueError):
            return default
        return value if value > 0 else default

    @field_validator("CLICK_INCREMENT_MODE", mode="before")
    @classmethod
    def parse_increment_mode(cls, v: Any) -> IncrementMode:
        if isinstance(v, IncrementMode):
            return v
        return IncrementMode.from_str(v)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
