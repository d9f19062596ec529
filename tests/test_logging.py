from __future__ import annotations

import io
import logging

from snipet.core.config import get_settings
from snipet.core.logging import setup_logging


def test_setup_logging_replaces_root_handlers(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    get_settings.cache_clear()
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    stream = io.StringIO()
    root.handlers = []
    try:
        setup_logging(stream)
        setup_logging(stream)
        logging.getLogger("snipet.test").warning("disk %s", "full")
        logging.getLogger("snipet.test").info("hidden")

        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert "snipet.test - WARNING - disk full" in stream.getvalue()
        assert "hidden" not in stream.getvalue()
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
        get_settings.cache_clear()
