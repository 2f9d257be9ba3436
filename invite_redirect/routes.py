"""FastAPI route definitions for the invite redirect service.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    GET  /metrics
        └─ Prometheus exposition (registered in main.py)

    GET  /{campaign}[/{category}]
    GET  /:{scope}/{campaign}[/{category}]
        └─ 302 Redirect, 404 HTML or 500 HTML

Key Behaviours
===============
- The catch-all redirect route is registered last so /health and /metrics win;
  campaigns with those names are only reachable through the Lambda adapter.
- Configuration comes from the environment only; per-request credential
  bundles are accepted through the Lambda adapter, not over HTTP.
- Any error escaping the service is logged with its traceback and rendered
  as the 500 page.
"""

from fastapi import APIRouter, Depends, Response

from invite_redirect.dependencies import RequestContext, get_redirect_service, get_request_context
from invite_redirect.enums import HealthStatus
from invite_redirect.exceptions import ConfigurationError
from invite_redirect.responses import RenderedResponse, render_error, render_result
from invite_redirect.schemas import HealthResponse, StoreConfig
from invite_redirect.service import InviteRedirectService

__all__ = ["router"]

router = APIRouter()


def _to_response(rendered: RenderedResponse) -> Response:
    return Response(content=rendered.body, status_code=rendered.status_code, headers=rendered.headers)


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    ctx.logger.info("Health check requested")
    store_status = HealthStatus.HEALTHY

    try:
        if not ctx.settings.AMAZON_DYNAMODB_TABLE:
            raise ConfigurationError("AMAZON_DYNAMODB_TABLE is not set")
        ctx.service_manager.registry.acquire(StoreConfig.from_sources(None, ctx.settings))
        ctx.logger.debug("Store health check passed")
    except Exception as e:
        ctx.logger.error(f"Store health check failed: {e}")
        store_status = HealthStatus.UNHEALTHY

    return HealthResponse(status=store_status, store=store_status)


@router.get("/{path:path}", tags=["redirect"])
async def redirect_to_invite(
    path: str,
    ctx: RequestContext = Depends(get_request_context),
    service: InviteRedirectService = Depends(get_redirect_service),
) -> Response:
    ctx.add_tag("redirect")
    ctx.logger.info(
        f"Redirect requested for path: /{path}",
        extra={"operation": "redirect", "user_agent": ctx.user_agent, "client_ip": ctx.client_ip},
    )

    try:
        result = await service.redirect(f"/{path}")
    except Exception:
        ctx.logger.exception(f"Error handling request for /{path}")
        return _to_response(render_error(ctx.templates))

    ctx.logger.info(
        f"Redirect finished: /{path} -> {result.outcome}",
        extra={"operation": "redirect", "sort_key": result.sort_key, "duration_ms": ctx.get_duration()},
    )
    return _to_response(render_result(result, ctx.templates))
