"""Pydantic schemas for store configuration, invite pool records and outcomes.

This module defines the value objects that flow between the components of the
redirect path, so that every boundary is validated once and typed afterwards.

Schema Hierarchy
=================
::
    StoreCredentials (per-request input, every field optional)
    ├─ AMAZON_REGION / AMAZON_ACCESS_KEY_ID / AMAZON_SECRET_ACCESS_KEY
    ├─ AMAZON_DYNAMODB_TABLE
    └─ DDB_CONN_TIMEOUT_MS / DDB_SOCKET_TIMEOUT_MS / DDB_MAX_ATTEMPTS / DDB_MAX_SOCKETS

    StoreConfig (effective, immutable)
    ├─ region, access_key_id, secret_access_key
    ├─ connect_timeout_ms, socket_timeout_ms, max_attempts, max_pooled_connections
    └─ fingerprint (computed)

    ResolvedKey (per request)
    └─ scope, campaign, category, sort_key

    InvitePoolRecord (stored item)
    ├─ sort_key: str           ← SK
    ├─ invite_codes: list[str] ← InviteCodes
    ├─ updated_at: str | None  ← Updated
    └─ clicks: int | None      ← Clicks

    RedirectResult (output)
    └─ outcome, invite_code, sort_key, location

How to Use
===========
**Step 1 — Merge configuration sources**::
    bundle = StoreCredentials.model_validate(event.get("credentials") or {})
    config = StoreConfig.from_sources(bundle, get_settings())

**Step 2 — Read a stored item**::
    record = InvitePoolRecord.from_item(item)

Key Behaviours
===============
- Empty strings in the per-request bundle count as absent.
- Static credentials are only used when both the key id and the secret are set.
- The fingerprint never contains the secret itself, only a digest of it.
- Items whose InviteCodes is not a list are treated as having an empty pool.
"""

import hashlib
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from invite_redirect.config import Settings
from invite_redirect.enums import HealthStatus, RedirectOutcome

__all__ = [
    "StoreCredentials",
    "StoreConfig",
    "ResolvedKey",
    "InvitePoolRecord",
    "RedirectResult",
    "HealthResponse",
]


class StoreCredentials(BaseModel):
    """Optional configuration bundle supplied with a single request."""

    AMAZON_REGION: str | None = None
    AMAZON_ACCESS_KEY_ID: str | None = None
    AMAZON_SECRET_ACCESS_KEY: str | None = None
    AMAZON_DYNAMODB_TABLE: str | None = None
    DDB_CONN_TIMEOUT_MS: int | None = Field(None, gt=0)
    DDB_SOCKET_TIMEOUT_MS: int | None = Field(None, gt=0)
    DDB_MAX_ATTEMPTS: int | None = Field(None, gt=0)
    DDB_MAX_SOCKETS: int | None = Field(None, gt=0)

    model_config = ConfigDict(extra="ignore", frozen=True)

    @field_validator("*", mode="before")
    @classmethod
    def blank_as_missing(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class StoreConfig(BaseModel):
    """Effective store configuration after merging every source."""

    region: str
    access_key_id: str | None = None
    secret_access_key: str | None = None
    connect_timeout_ms: int = Field(800, gt=0)
    socket_timeout_ms: int = Field(1200, gt=0)
    max_attempts: int = Field(2, gt=0)
    max_pooled_connections: int = Field(16, gt=0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_sources(cls, bundle: StoreCredentials | None, settings: Settings) -> "StoreConfig":
        """Merge request bundle → process settings; settings carry the hard-coded defaults."""
        bundle = bundle or StoreCredentials()
        return cls(
            region=bundle.AMAZON_REGION or settings.AMAZON_REGION,
            access_key_id=bundle.AMAZON_ACCESS_KEY_ID or settings.AMAZON_ACCESS_KEY_ID,
            secret_access_key=bundle.AMAZON_SECRET_ACCESS_KEY or settings.AMAZON_SECRET_ACCESS_KEY,
            connect_timeout_ms=bundle.DDB_CONN_TIMEOUT_MS or settings.DDB_CONN_TIMEOUT_MS,
            socket_timeout_ms=bundle.DDB_SOCKET_TIMEOUT_MS or settings.DDB_SOCKET_TIMEOUT_MS,
            max_attempts=bundle.DDB_MAX_ATTEMPTS or settings.DDB_MAX_ATTEMPTS,
            max_pooled_connections=bundle.DDB_MAX_SOCKETS or settings.DDB_MAX_SOCKETS,
        )

    @property
    def has_static_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)

    @property
    def fingerprint(self) -> str:
        if self.has_static_credentials:
            secret_digest = hashlib.sha256(self.secret_access_key.encode("utf-8")).hexdigest()[:16]
            creds = f"{self.access_key_id}:{secret_digest}"
        else:
            creds = "noCreds"
        return "|".join(
            [
                self.region,
                creds,
                str(self.connect_timeout_ms),
                str(self.socket_timeout_ms),
                str(self.max_attempts),
                str(self.max_pooled_connections),
            ]
        )


class ResolvedKey(BaseModel):
    """Campaign/category key derived from a request path."""

    scope: str | None = None
    campaign: str
    category: str | None = None
    sort_key: str

    model_config = ConfigDict(frozen=True)


class InvitePoolRecord(BaseModel):
    """A stored invite pool, as returned by GetItem."""

    sort_key: str = Field(..., alias="SK")
    invite_codes: list[str] = Field(default_factory=list, alias="InviteCodes")
    updated_at: str | None = Field(None, alias="Updated")
    clicks: int | None = Field(None, alias="Clicks")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("invite_codes", mode="before")
    @classmethod
    def only_lists(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        return [str(entry) for entry in v]

    @field_validator("updated_at", mode="before")
    @classmethod
    def stringify_updated(cls, v: Any) -> str | None:
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("clicks", mode="before")
    @classmethod
    def lenient_clicks(cls, v: Any) -> int | None:
        # A corrupt counter reads as absent; it never fails the redirect.
        if isinstance(v, bool) or not isinstance(v, (int, Decimal, str)):
            return None
        try:
            value = int(v)
        except (ValueError, ArithmeticError):
            return None
        return value if value >= 0 else None

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "InvitePoolRecord":
        return cls.model_validate(item)


class RedirectResult(BaseModel):
    outcome: RedirectOutcome
    invite_code: str | None = None
    sort_key: str | None = None
    location: str | None = None


class HealthResponse(BaseModel):
    status: HealthStatus
    store: HealthStatus
