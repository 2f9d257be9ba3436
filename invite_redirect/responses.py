"""Mapping of redirect outcomes to HTTP-like responses.

Both the FastAPI routes and the Lambda adapter render through here, so the
status codes and headers stay identical across hosting runtimes.

    REDIRECT     → 302, Location + Cache-Control: no-store, empty body
    NOT_FOUND    → 404, text/html from the 404 page
    STORE_ERROR  → 500, text/html from the 500 page
"""

from dataclasses import dataclass, field

from invite_redirect.enums import RedirectOutcome
from invite_redirect.schemas import RedirectResult
from invite_redirect.templates import TemplateLoader

__all__ = ["RenderedResponse", "render_result", "render_error"]


@dataclass(frozen=True)
class RenderedResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    def to_lambda(self) -> dict:
        return {"statusCode": self.status_code, "headers": dict(self.headers), "body": self.body}


def _html(status_code: int, templates: TemplateLoader) -> RenderedResponse:
    return RenderedResponse(
        status_code=status_code,
        headers={"Content-Type": "text/html"},
        body=templates.load(str(status_code)),
    )


def render_error(templates: TemplateLoader) -> RenderedResponse:
    return _html(500, templates)


def render_result(result: RedirectResult, templates: TemplateLoader) -> RenderedResponse:
    if result.outcome is RedirectOutcome.REDIRECT:
        return RenderedResponse(
            status_code=302,
            headers={"Location": result.location, "Cache-Control": "no-store"},
            body="",
        )
    if result.outcome is RedirectOutcome.NOT_FOUND:
        return _html(404, templates)
    return render_error(templates)
