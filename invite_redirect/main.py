"""FastAPI application entry point for the invite redirect service.

Application Lifecycle Diagram
===========================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ startup:    │
    │ ServiceMgr  │
    │ .initialize │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ shutdown:   │
    │ drain clicks│
    │ close client│
    └─────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    AMAZON_DYNAMODB_TABLE=Invites uvicorn invite_redirect.main:app --port 8000

**Step 2 — Follow an invite link**::
    curl -i http://localhost:8000/sale/vip

Key Behaviours
===============
- One ServiceManager per application, stored on ``app.state``.
- Detached click increments get a bounded grace period at shutdown.
- /metrics is registered before the catch-all redirect route.
"""

__all__ = ["app", "create_app"]

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from prometheus_fastapi_instrumentator import Instrumentator

from invite_redirect.config import get_settings
from invite_redirect.dependencies import LOGGER_NAME, ServiceManager
from invite_redirect.exceptions import ServiceInitializationError
from invite_redirect.responses import render_error
from invite_redirect.routes import router
from invite_redirect.templates import TemplateLoader


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    manager = getattr(app.state, "service_manager", None)
    if manager is None:
        manager = ServiceManager()
        app.state.service_manager = manager
    await manager.initialize()
    yield
    await manager.cleanup()


def register_error_handlers(application: FastAPI) -> None:
    """Render startup failures as the 500 page instead of a bare error."""

    @application.exception_handler(ServiceInitializationError)
    async def initialization_error_handler(request: Request, exc: ServiceInitializationError) -> Response:
        logger = logging.getLogger(LOGGER_NAME)
        logger.error(f"{exc} on {request.url.path}: {exc.__cause__!r}")
        rendered = render_error(TemplateLoader(None, logger))
        return Response(content=rendered.body, status_code=rendered.status_code, headers=rendered.headers)


def create_app(manager: ServiceManager | None = None) -> FastAPI:
    settings = get_settings()
    application = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Redirects campaign links to WhatsApp group invites",
        lifespan=lifespan,
    )
    if manager is not None:
        application.state.service_manager = manager

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(application).expose(application)

    register_error_handlers(application)
    application.include_router(router)
    return application


app = create_app()
