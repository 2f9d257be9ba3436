"""Template loading and outcome rendering tests."""

from invite_redirect.enums import RedirectOutcome
from invite_redirect.responses import render_result
from invite_redirect.schemas import RedirectResult
from invite_redirect.templates import TemplateLoader


def test_packaged_pages_load(mock_logger) -> None:
    loader = TemplateLoader(None, mock_logger)
    assert "Link não encontrado" in loader.load("404")
    assert "Erro interno" in loader.load("500")
    mock_logger.error.assert_not_called()


def test_missing_page_falls_back_once(tmp_path, mock_logger) -> None:
    loader = TemplateLoader(tmp_path, mock_logger)

    first = loader.load("404")
    second = loader.load("404")

    assert first == second == "<html><body><h1>Link não encontrado</h1></body></html>"
    mock_logger.error.assert_called_once()


def test_pages_are_cached_after_first_read(tmp_path, mock_logger) -> None:
    page = tmp_path / "500.html"
    page.write_text("<p>v1</p>", encoding="utf-8")
    loader = TemplateLoader(tmp_path, mock_logger)

    assert loader.load("500") == "<p>v1</p>"
    page.write_text("<p>v2</p>", encoding="utf-8")
    assert loader.load("500") == "<p>v1</p>"


def test_render_outcomes(tmp_path, mock_logger) -> None:
    (tmp_path / "404.html").write_text("missing", encoding="utf-8")
    (tmp_path / "500.html").write_text("broken", encoding="utf-8")
    loader = TemplateLoader(tmp_path, mock_logger)

    redirect = render_result(
        RedirectResult(outcome=RedirectOutcome.REDIRECT, invite_code="c1", location="https://chat.whatsapp.com/c1"),
        loader,
    )
    not_found = render_result(RedirectResult(outcome=RedirectOutcome.NOT_FOUND), loader)
    store_error = render_result(RedirectResult(outcome=RedirectOutcome.STORE_ERROR), loader)

    assert (redirect.status_code, redirect.body) == (302, "")
    assert redirect.headers == {"Location": "https://chat.whatsapp.com/c1", "Cache-Control": "no-store"}
    assert (not_found.status_code, not_found.body) == (404, "missing")
    assert (store_error.status_code, store_error.body) == (500, "broken")
