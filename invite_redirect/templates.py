"""HTML page loading for 404 and 500 responses.

Pages are read once and kept in memory. A page that cannot be read is replaced
by a minimal fallback, which is cached too so a missing file is reported once.
"""

import logging
import threading
from pathlib import Path

__all__ = ["TemplateLoader", "DEFAULT_TEMPLATES_DIR"]

DEFAULT_TEMPLATES_DIR = Path(__file__).parent / "html"

_FALLBACK_TITLES = {
    "404": "Link não encontrado",
    "500": "Erro interno",
}


class TemplateLoader:
    def __init__(self, templates_dir: str | Path | None, logger: logging.Logger | logging.LoggerAdapter):
        self._templates_dir = Path(templates_dir) if templates_dir else DEFAULT_TEMPLATES_DIR
        self._logger = logger
        self._cache: dict[str, str] = {}
        self._lock = threading.Lock()

    def load(self, name: str) -> str:
        cached = self._cache.get(name)
        if cached is not None:
            return cached

        path = self._templates_dir / f"{name}.html"
        try:
            html = path.read_text(encoding="utf-8")
        except OSError as exc:
            self._logger.error(f"Error loading template {name}: {exc}")
            title = _FALLBACK_TITLES.get(name, "Erro interno")
            html = f"<html><body><h1>{title}</h1></body></html>"

        with self._lock:
            self._cache.setdefault(name, html)
        return self._cache[name]
