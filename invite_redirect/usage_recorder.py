"""Click accounting for invite pools.

Flow Diagram — UsageRecorder.record()
======================================
::
    ┌─────────────┐
    │  record()   │
    └──────┬──────┘
    MODE?  │
    ┌─────┴──────────┐
    │ SYNC            │ DETACHED
    ▼                 ▼
┌─────────────┐  ┌─────────────┐
│ await       │  │ create_task │
│ UpdateItem  │  │ (not        │
│             │  │  awaited)   │
└──────┬──────┘  └──────┬──────┘
       ▼                ▼
┌─────────────┐  ┌─────────────┐
│ failure →   │  │ done        │
│ log, swallow│  │ callback →  │
│             │  │ log failure │
└─────────────┘  └─────────────┘

Key Behaviours
===============
- The counter update is a single atomic UpdateItem
  (``Clicks = if_not_exists(Clicks, 0) + 1``); nothing is read first.
- A failed increment is logged and counted, never raised to the caller.
- Detached tasks are referenced until done so they are not garbage collected
  mid-flight; cancellation at shutdown is logged, not propagated.
"""

import asyncio
import logging

from prometheus_client import Counter, Gauge

from invite_redirect.enums import IncrementMode, IncrementStatus
from invite_redirect.store import StoreHandle

__all__ = ["UsageRecorder", "CLICK_COUNTER_ATTRIBUTE"]

CLICK_COUNTER_ATTRIBUTE = "Clicks"

CLICK_INCREMENTS_TOTAL = Counter(
    "invite_redirect_click_increments_total",
    "Click counter updates by result",
    ["status"],
)
DETACHED_INCREMENTS_IN_FLIGHT = Gauge(
    "invite_redirect_detached_increments_in_flight",
    "Detached click increments not yet finished",
)


class UsageRecorder:
    """Increments the click counter of an invite pool record.

    Args:
        mode: SYNC awaits the update before returning; DETACHED schedules it
            on the running loop and returns immediately.
        logger: Receives failures in both modes.
        partition_key: Fixed partition of the invite pool records.
    """

    def __init__(
        self,
        mode: IncrementMode,
        logger: logging.Logger | logging.LoggerAdapter,
        partition_key: str,
        counter_attribute: str = CLICK_COUNTER_ATTRIBUTE,
    ):
        self.mode = mode
        self._logger = logger
        self._partition_key = partition_key
        self._counter_attribute = counter_attribute
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def record(self, handle: StoreHandle, table_name: str, sort_key: str) -> None:
        if self.mode is IncrementMode.DETACHED:
            self._spawn(handle, table_name, sort_key)
            return
        await self._increment(handle, table_name, sort_key)

    async def _increment(self, handle: StoreHandle, table_name: str, sort_key: str) -> bool:
        key = {"PK": self._partition_key, "SK": sort_key}
        try:
            clicks = await handle.increment_counter(table_name, key, self._counter_attribute)
        except Exception as exc:
            CLICK_INCREMENTS_TOTAL.labels(status=IncrementStatus.FAILURE).inc()
            self._logger.error(f"Error incrementing {self._counter_attribute} for {sort_key}: {exc}")
            return False

        CLICK_INCREMENTS_TOTAL.labels(status=IncrementStatus.SUCCESS).inc()
        self._logger.debug(f"{self._counter_attribute} for {sort_key} is now {clicks}")
        return True

    def _spawn(self, handle: StoreHandle, table_name: str, sort_key: str) -> None:
        task = asyncio.create_task(
            self._increment(handle, table_name, sort_key),
            name=f"increment-clicks:{sort_key}",
        )
        self._tasks.add(task)
        DETACHED_INCREMENTS_IN_FLIGHT.inc()
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        DETACHED_INCREMENTS_IN_FLIGHT.dec()
        if task.cancelled():
            self._logger.warning(f"Detached click increment cancelled: {task.get_name()}")
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(f"Detached click increment crashed: {task.get_name()}: {exc!r}")

    async def drain(self, timeout: float) -> int:
        """Wait up to ``timeout`` seconds for detached increments; cancel the rest.

        Returns:
            int: Number of increments that were cancelled.
        """
        if not self._tasks:
            return 0
        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            self._logger.warning(f"Cancelled {len(still_running)} detached click increments on shutdown")
        return len(still_running)
