"""AWS Lambda adapter for the invite redirect service.

This is the only place that knows about Lambda event envelopes. It reduces an
event to one path string plus an optional credentials bundle, runs the shared
service, and returns an API Gateway proxy response dict.

Supported path locations, first match wins::

    event["rawEvent"]["rawPath"]
    event["rawEvent"]["requestContext"]["http"]["path"]
    event["rawPath"]
    event["requestContext"]["http"]["path"]

The adapter keeps one event loop for the life of the execution environment,
so detached click increments started by one invocation continue during the
next one instead of being cancelled when the invocation returns.
"""

import asyncio
import logging
from typing import Any
from urllib.parse import unquote

from invite_redirect.dependencies import LOGGER_NAME, ServiceManager
from invite_redirect.responses import render_error, render_result
from invite_redirect.schemas import StoreCredentials
from invite_redirect.service import InviteRedirectService
from invite_redirect.templates import TemplateLoader

__all__ = ["handler", "extract_path", "LambdaRuntime"]


def _dig(source: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(source, dict):
            return None
        source = source.get(key)
    return source


def extract_path(event: dict[str, Any]) -> str | None:
    """Return the URL-decoded request path from any supported envelope."""
    for keys in (
        ("rawEvent", "rawPath"),
        ("rawEvent", "requestContext", "http", "path"),
        ("rawPath",),
        ("requestContext", "http", "path"),
    ):
        value = _dig(event, *keys)
        if isinstance(value, str) and value:
            return unquote(value)
    return None


class LambdaRuntime:
    """Event loop and service manager shared by invocations."""

    def __init__(self, manager: ServiceManager | None = None):
        self.manager = manager or ServiceManager()
        self.loop = asyncio.new_event_loop()

    def invoke(self, event: dict[str, Any]) -> dict[str, Any]:
        return self.loop.run_until_complete(self._invoke(event or {}))

    async def _invoke(self, event: dict[str, Any]) -> dict[str, Any]:
        manager = self.manager
        try:
            await manager.initialize()
            service = InviteRedirectService(
                settings=manager.settings,
                registry=manager.registry,
                selector=manager.selector,
                recorder=manager.recorder,
                logger=manager.logger,
            )
            credentials = StoreCredentials.model_validate(event.get("credentials") or {})
            result = await service.redirect(extract_path(event), credentials)
        except Exception:
            if not manager.initialized:
                logger = logging.getLogger(LOGGER_NAME)
                logger.exception("Service initialization failed")
                return render_error(TemplateLoader(None, logger)).to_lambda()
            manager.logger.exception("Error handling request")
            return render_error(manager.templates).to_lambda()
        return render_result(result, manager.templates).to_lambda()


_runtime: LambdaRuntime | None = None


def handler(event: dict[str, Any], context: Any = None) -> dict[str, Any]:
    global _runtime
    if _runtime is None:
        _runtime = LambdaRuntime()
    return _runtime.invoke(event)
