"""DynamoDB client management for the invite redirect service.

This module owns the connection to the key-value store. One client (and its
connection pool) is shared by every request using the same effective
configuration, and is built at most once per distinct configuration while it
stays in the registry.

Flow Diagram — StoreClientRegistry.acquire()
=============================================
::
    ┌─────────────┐
    │ acquire(    │
    │  config)    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ fingerprint │
    │ of config   │
    └──────┬──────┘
     ALREADY BUILT?
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Build   │  │ Return  │
│ client, │  │ cached  │
│ evict   │  │ handle  │
│ oldest  │  │         │
└─────────┘  └─────────┘

How to Use
===========
**Step 1 — Acquire a handle**::
    registry = StoreClientRegistry(logger)
    handle = registry.acquire(StoreConfig.from_sources(bundle, settings))

**Step 2 — Read and update items**::
    item = await handle.get_item("Invites", {"PK": "WHATSAPP#INVITELINKS", "SK": "SALE"})
    clicks = await handle.increment_counter("Invites", key, "Clicks")

**Step 3 — Cleanup on shutdown**::
    registry.close()

Key Behaviours
===============
- Keep-alive is enabled and the pool is bounded by max_pool_connections,
  which also bounds the idle connections kept for reuse.
- Connect and read timeouts are explicit and low; retries are bounded by
  total_max_attempts and performed by botocore, not by this module.
- Every store call logs its attempt count and elapsed time.
- The fingerprint-to-handle map is replaced as a whole under a lock; lookups
  without the lock see either the old or the new map, never a partial one.
- At most DEFAULT_MAX_CLIENTS configurations are kept; the oldest is evicted
  but not closed, so requests still holding it finish normally.
- Client construction errors propagate to the caller.

Classes:
    StoreHandle:  Async facade over one DynamoDB client.
    StoreClientRegistry:  Holds handles keyed by configuration fingerprint.
"""

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from prometheus_client import Counter, Histogram

from invite_redirect.schemas import StoreConfig

__all__ = [
    "StoreHandle",
    "StoreClientRegistry",
    "build_client_config",
    "create_dynamodb_client",
    "INCREMENT_EXPRESSION",
    "DEFAULT_MAX_CLIENTS",
]

DEFAULT_MAX_CLIENTS = 4

INCREMENT_EXPRESSION = "SET #counter = if_not_exists(#counter, :zero) + :inc"

_OPERATION_NAMES = {
    "get_item": "GetItem",
    "update_item": "UpdateItem",
}

STORE_CALL_DURATION = Histogram(
    "invite_redirect_store_call_duration_seconds",
    "Time taken by DynamoDB calls, retries included",
    ["operation"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)
STORE_CALL_ATTEMPTS_TOTAL = Counter(
    "invite_redirect_store_call_attempts_total",
    "HTTP attempts made by DynamoDB calls",
    ["operation"],
)
STORE_CLIENTS_CREATED_TOTAL = Counter(
    "invite_redirect_store_clients_created_total",
    "DynamoDB clients built because the configuration fingerprint changed",
)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def build_client_config(config: StoreConfig) -> Config:
    return Config(
        region_name=config.region,
        connect_timeout=config.connect_timeout_ms / 1000,
        read_timeout=config.socket_timeout_ms / 1000,
        max_pool_connections=config.max_pooled_connections,
        tcp_keepalive=True,
        retries={"total_max_attempts": config.max_attempts, "mode": "standard"},
    )


def create_dynamodb_client(config: StoreConfig) -> Any:
    """Build a low-level DynamoDB client; botocore clients are thread-safe."""
    if config.has_static_credentials:
        session = boto3.session.Session(
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
        )
    else:
        session = boto3.session.Session(region_name=config.region)
    return session.client("dynamodb", config=build_client_config(config))


def _serialize(values: dict[str, Any]) -> dict[str, Any]:
    return {name: _serializer.serialize(value) for name, value in values.items()}


def _deserialize(item: dict[str, Any]) -> dict[str, Any]:
    return {name: _deserializer.deserialize(value) for name, value in item.items()}


def _attempts_from(payload: Any) -> int | None:
    if not isinstance(payload, dict):
        return None
    metadata = payload.get("ResponseMetadata") or {}
    retries = metadata.get("RetryAttempts")
    if retries is None:
        return None
    return int(retries) + 1


class StoreHandle:
    """Async facade over a DynamoDB client.

    Calls run in a worker thread so the event loop is never blocked on the
    network. The handle is immutable once built.
    """

    def __init__(self, client: Any, fingerprint: str, logger: logging.Logger | logging.LoggerAdapter):
        self._client = client
        self._logger = logger
        self.fingerprint = fingerprint

    @property
    def client(self) -> Any:
        return self._client

    async def get_item(self, table_name: str, key: dict[str, Any]) -> dict[str, Any] | None:
        """Fetch one item by primary key; returns the plain-Python item or None."""
        response = await self._call("get_item", TableName=table_name, Key=_serialize(key))
        item = response.get("Item")
        if item is None:
            return None
        return _deserialize(item)

    async def increment_counter(self, table_name: str, key: dict[str, Any], attribute: str) -> int:
        """Atomically add one to a numeric attribute, creating it at zero first.

        The increment is a single UpdateItem, so concurrent calls never lose
        updates.
        """
        response = await self._call(
            "update_item",
            TableName=table_name,
            Key=_serialize(key),
            UpdateExpression=INCREMENT_EXPRESSION,
            ExpressionAttributeNames={"#counter": attribute},
            ExpressionAttributeValues=_serialize({":zero": 0, ":inc": 1}),
            ReturnValues="UPDATED_NEW",
        )
        attributes = _deserialize(response.get("Attributes") or {})
        return int(attributes.get(attribute, 0))

    async def _call(self, method: str, **kwargs: Any) -> dict[str, Any]:
        operation = _OPERATION_NAMES.get(method, method)
        start_time = time.perf_counter()
        try:
            response = await asyncio.to_thread(getattr(self._client, method), **kwargs)
        except Exception as exc:
            elapsed = time.perf_counter() - start_time
            attempts = _attempts_from(getattr(exc, "response", None))
            STORE_CALL_DURATION.labels(operation=operation).observe(elapsed)
            if attempts is not None:
                STORE_CALL_ATTEMPTS_TOTAL.labels(operation=operation).inc(attempts)
            self._logger.warning(
                f"[store] {operation} error attempts={attempts if attempts is not None else '?'} "
                f"totalMs={elapsed * 1000:.0f} name={type(exc).__name__}"
            )
            raise

        elapsed = time.perf_counter() - start_time
        attempts = _attempts_from(response)
        STORE_CALL_DURATION.labels(operation=operation).observe(elapsed)
        if attempts is not None:
            STORE_CALL_ATTEMPTS_TOTAL.labels(operation=operation).inc(attempts)
        self._logger.info(f"[store] {operation} attempts={attempts} totalMs={elapsed * 1000:.0f}")
        return response

    def close(self) -> None:
        self._client.close()


class StoreClientRegistry:
    """Holds the process's store handles, keyed by configuration fingerprint.

    Up to ``max_clients`` handles are kept; building one more evicts the
    oldest. The mapping is replaced as a whole under the lock, so the lock-free
    lookup always sees a consistent snapshot.

    The registry is created by the application's service manager and passed to
    request handlers; it is not a module global.

    Args:
        logger: Logger used by the handles this registry builds.
        client_factory: Builds a raw client from a StoreConfig. Tests replace
            it with a fake.
        max_clients: Distinct configurations kept alive at once.
    """

    def __init__(
        self,
        logger: logging.Logger | logging.LoggerAdapter,
        client_factory: Callable[[StoreConfig], Any] = create_dynamodb_client,
        max_clients: int = DEFAULT_MAX_CLIENTS,
    ):
        self._logger = logger
        self._client_factory = client_factory
        self._max_clients = max(1, max_clients)
        self._lock = threading.Lock()
        self._handles: dict[str, StoreHandle] = {}
        self.clients_created = 0

    def acquire(self, config: StoreConfig) -> StoreHandle:
        fingerprint = config.fingerprint
        handle = self._handles.get(fingerprint)
        if handle is not None:
            return handle

        with self._lock:
            # Another task may have built it while we waited for the lock.
            handle = self._handles.get(fingerprint)
            if handle is not None:
                return handle

            start_time = time.perf_counter()
            client = self._client_factory(config)
            handle = StoreHandle(client, fingerprint, self._logger)

            handles = dict(self._handles)
            while len(handles) >= self._max_clients:
                evicted = next(iter(handles))
                del handles[evicted]
                self._logger.info(f"[store] evicted client region={evicted.split('|', 1)[0]}")
            handles[fingerprint] = handle
            self._handles = handles

            self.clients_created += 1
            STORE_CLIENTS_CREATED_TOTAL.inc()
            self._logger.info(
                f"[store] initialized client region={config.region} "
                f"in {(time.perf_counter() - start_time) * 1000:.0f}ms"
            )
            return handle

    @property
    def current(self) -> StoreHandle | None:
        """The most recently built handle."""
        handles = self._handles
        if not handles:
            return None
        return next(reversed(handles.values()))

    def __len__(self) -> int:
        return len(self._handles)

    def close(self) -> None:
        with self._lock:
            handles, self._handles = self._handles, {}
        for handle in handles.values():
            handle.close()
