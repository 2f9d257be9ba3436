"""Redirect orchestration - core business flow.

This module composes path resolution, the store client, link selection and
usage accounting into one outcome per request.

Request Flow Diagram
====================
::
    ┌─────────────┐
    │ GET /sale/  │
    │ vip         │
    └──────┬──────┘
           ▼
    ┌─────────────┐   no key
    │ resolve_path├──────────────► NOT_FOUND
    └──────┬──────┘
           ▼
    ┌─────────────┐   no table
    │ table name  ├──────────────► STORE_ERROR
    └──────┬──────┘
           ▼
    ┌─────────────┐   SDK error / timeout
    │ GetItem     ├──────────────► STORE_ERROR
    └──────┬──────┘
           ▼
    ┌─────────────┐   no item / empty pool / bad entry
    │ select code ├──────────────► NOT_FOUND
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ increment   │  (sync or detached, failures absorbed)
    │ Clicks      │
    └──────┬──────┘
           ▼
       REDIRECT(code)

Table Identity Resolution
=========================
Highest priority first: the request bundle's ``AMAZON_DYNAMODB_TABLE``, the
``:{scope}`` path segment, the process setting. With none of them the request
ends as STORE_ERROR before any store call is made.

Usage Examples
=============
```python
service = InviteRedirectService.from_context(ctx)
result = await service.redirect("/sale/vip")
if result.outcome is RedirectOutcome.REDIRECT:
    return RedirectResponse(result.location, status_code=302)
```
"""

import datetime
import logging
import time

from prometheus_client import Counter, Histogram

from invite_redirect.config import Settings
from invite_redirect.enums import RedirectOutcome
from invite_redirect.exceptions import ConfigurationError, StoreFetchFailure
from invite_redirect.key_resolver import resolve_path
from invite_redirect.link_selector import LinkSelector
from invite_redirect.schemas import (
    InvitePoolRecord,
    RedirectResult,
    ResolvedKey,
    StoreConfig,
    StoreCredentials,
)
from invite_redirect.store import StoreClientRegistry, StoreHandle
from invite_redirect.usage_recorder import UsageRecorder

__all__ = ["InviteRedirectService", "build_link_selector"]

REDIRECT_REQUESTS_TOTAL = Counter(
    "invite_redirect_requests_total",
    "Redirect requests by outcome",
    ["outcome"],
)
REDIRECT_DURATION = Histogram(
    "invite_redirect_duration_seconds",
    "Time taken to resolve a redirect, click increment included in sync mode",
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)


def build_link_selector(settings: Settings) -> LinkSelector:
    return LinkSelector(
        staleness_threshold=datetime.timedelta(seconds=settings.STALENESS_THRESHOLD_SECONDS),
    )


class InviteRedirectService:
    """Resolves a request path to an invite redirect.

    The service is cheap to build per request; the registry, selector and
    recorder it is given are the shared, long-lived pieces.

    Example:
        >>> service = InviteRedirectService.from_context(ctx)
        >>> result = await service.redirect("/SALE")
        >>> result.location
        'https://chat.whatsapp.com/code1'
    """

    def __init__(
        self,
        settings: Settings,
        registry: StoreClientRegistry,
        selector: LinkSelector,
        recorder: UsageRecorder,
        logger: logging.Logger | logging.LoggerAdapter,
    ):
        self._settings = settings
        self._registry = registry
        self._selector = selector
        self._recorder = recorder
        self._logger = logger

    @classmethod
    def from_context(cls, ctx: "RequestContext") -> "InviteRedirectService":
        manager = ctx.service_manager
        return cls(
            settings=ctx.settings,
            registry=manager.registry,
            selector=manager.selector,
            recorder=manager.recorder,
            logger=ctx.logger,
        )

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def redirect(self, path: str | None, credentials: StoreCredentials | None = None) -> RedirectResult:
        """Run the whole redirect flow for one request path.

        Args:
            path: URL-decoded request path.
            credentials: Optional per-request configuration bundle.

        Returns:
            RedirectResult: REDIRECT with the code and location, NOT_FOUND, or
            STORE_ERROR. Client construction errors are raised, not mapped.
        """
        start_time = time.perf_counter()
        result = await self._redirect(path, credentials)
        REDIRECT_DURATION.observe(time.perf_counter() - start_time)
        REDIRECT_REQUESTS_TOTAL.labels(outcome=result.outcome).inc()
        self._logger.info(
            f"Redirect {result.outcome} for path={path!r} sort_key={result.sort_key} "
            f"in {(time.perf_counter() - start_time) * 1000:.0f}ms"
        )
        return result

    def resolve_table_name(self, resolved: ResolvedKey, credentials: StoreCredentials | None) -> str:
        table_name = (
            (credentials.AMAZON_DYNAMODB_TABLE if credentials else None)
            or resolved.scope
            or self._settings.AMAZON_DYNAMODB_TABLE
        )
        if not table_name:
            raise ConfigurationError("AMAZON_DYNAMODB_TABLE is not set in the request or the environment")
        return table_name

    async def fetch_record(self, handle: StoreHandle, table_name: str, sort_key: str) -> InvitePoolRecord | None:
        key = {"PK": self._settings.INVITE_PARTITION_KEY, "SK": sort_key}
        try:
            item = await handle.get_item(table_name, key)
        except Exception as exc:
            raise StoreFetchFailure(table_name, sort_key) from exc
        if item is None:
            return None
        return InvitePoolRecord.from_item(item)

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _redirect(self, path: str | None, credentials: StoreCredentials | None) -> RedirectResult:
        resolved = resolve_path(path, self._settings.SCOPE_MARKER)
        if resolved is None:
            return RedirectResult(outcome=RedirectOutcome.NOT_FOUND)

        sort_key = resolved.sort_key
        try:
            table_name = self.resolve_table_name(resolved, credentials)
        except ConfigurationError as exc:
            self._logger.error(f"Configuration error for {sort_key}: {exc}")
            return RedirectResult(outcome=RedirectOutcome.STORE_ERROR, sort_key=sort_key)

        handle = self._registry.acquire(StoreConfig.from_sources(credentials, self._settings))

        self._logger.debug(f"Fetching invite pool table={table_name} sort_key={sort_key}")
        try:
            record = await self.fetch_record(handle, table_name, sort_key)
        except StoreFetchFailure as exc:
            self._logger.error(f"Error getting invite link for {sort_key}: {exc.__cause__!r}")
            return RedirectResult(outcome=RedirectOutcome.STORE_ERROR, sort_key=sort_key)

        if record is None or not record.invite_codes:
            return RedirectResult(outcome=RedirectOutcome.NOT_FOUND, sort_key=sort_key)

        invite_code = self._selector.select(record.invite_codes, record.updated_at)
        if invite_code is None:
            self._logger.warning(f"No usable invite code in pool {sort_key}")
            return RedirectResult(outcome=RedirectOutcome.NOT_FOUND, sort_key=sort_key)

        await self._recorder.record(handle, table_name, sort_key)

        return RedirectResult(
            outcome=RedirectOutcome.REDIRECT,
            invite_code=invite_code,
            sort_key=sort_key,
            location=f"{self._settings.INVITE_BASE_URL}{invite_code}",
        )
