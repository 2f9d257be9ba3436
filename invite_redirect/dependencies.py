"""Dependency injection with an application-scoped service manager.

This module provides a centralized way to inject the shared store registry,
link selector and usage recorder with consistent naming across all endpoints.
The service manager lives on ``app.state`` and is built once per application,
so nothing here is module-global mutable state.
"""

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Optional

from fastapi import Depends, Request

from invite_redirect.config import Settings, get_settings
from invite_redirect.exceptions import ServiceInitializationError
from invite_redirect.link_selector import LinkSelector
from invite_redirect.schemas import StoreConfig
from invite_redirect.service import InviteRedirectService, build_link_selector
from invite_redirect.store import StoreClientRegistry, create_dynamodb_client
from invite_redirect.templates import TemplateLoader
from invite_redirect.usage_recorder import UsageRecorder

__all__ = [
    "ServiceManager",
    "RequestContext",
    "configure_logger",
    "get_service_manager",
    "get_request_context",
    "get_redirect_service",
]

LOGGER_NAME = "invite_redirect"


def configure_logger(level: str = "INFO") -> logging.Logger:
    """Setup the service logger once."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Owner of the resources shared by every request.

    The registry keeps a DynamoDB client (and its connection pool) alive per
    store configuration between requests; the selector and recorder are
    stateless apart from the recorder's set of detached tasks.

    Args:
        settings: Process settings; ``get_settings()`` when omitted.
        client_factory: Builds a raw DynamoDB client; tests pass a fake.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client_factory: Callable[[StoreConfig], Any] = create_dynamodb_client,
    ):
        self._settings = settings
        self._client_factory = client_factory
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        if self._initialized:
            return
        self.settings = self._settings or get_settings()
        self.logger = configure_logger(self.settings.LOG_LEVEL)
        self.registry = StoreClientRegistry(
            self.logger,
            client_factory=self._client_factory,
            max_clients=self.settings.STORE_MAX_CLIENTS,
        )
        self.selector: LinkSelector = build_link_selector(self.settings)
        self.recorder = UsageRecorder(
            mode=self.settings.CLICK_INCREMENT_MODE,
            logger=self.logger,
            partition_key=self.settings.INVITE_PARTITION_KEY,
        )
        self.templates = TemplateLoader(self.settings.TEMPLATES_DIR, self.logger)
        self._initialized = True
        self.logger.info(f"{self.settings.APP_NAME} ready, click increments are {self.recorder.mode}")

    async def cleanup(self) -> None:
        """Drain detached increments, then release the store client."""
        if not self._initialized:
            return
        await self.recorder.drain(self.settings.DETACHED_DRAIN_TIMEOUT_SECONDS)
        self.registry.close()
        self._initialized = False


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking data plus access to the shared resources.

    Attributes:
        service_manager: Application-scoped shared resources
        request_id: Unique identifier for this request
        trace_id: Correlation ID taken from the X-Trace-ID header
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: Optional[str] = None
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def logger(self) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "trace_id": self.trace_id or self.request_id,
                "client_ip": self.client_ip,
                "tags": ",".join(self.tags),
            },
        )

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def templates(self) -> TemplateLoader:
        return self.service_manager.templates

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager(request: Request) -> ServiceManager:
    """Return the application's service manager, building it on first use."""
    manager = getattr(request.app.state, "service_manager", None)
    if manager is None:
        manager = ServiceManager()
        request.app.state.service_manager = manager
    if not manager.initialized:
        try:
            await manager.initialize()
        except Exception as exc:
            raise ServiceInitializationError("Service initialization failed") from exc
    return manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    client_ip = request.client.host if request.client else None
    return RequestContext(
        service_manager=manager,
        trace_id=request.headers.get("x-trace-id"),
        user_agent=request.headers.get("user-agent"),
        client_ip=client_ip,
    )


def get_redirect_service(ctx: RequestContext = Depends(get_request_context)) -> InviteRedirectService:
    return InviteRedirectService.from_context(ctx)
