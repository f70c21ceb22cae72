from __future__ import annotations

import structlog

from duopane import logging as duopane_logging
from duopane.logging import get_logger, setup_logging


def test_setup_logging_configures_once(monkeypatch) -> None:
    monkeypatch.setattr(duopane_logging, "_configured", False)
    calls: list[dict] = []
    monkeypatch.setattr(structlog, "configure", lambda **kwargs: calls.append(kwargs))

    setup_logging(level="warning", json=True)
    setup_logging(level="debug")

    assert len(calls) == 1
    renderer = calls[0]["processors"][-1]
    assert isinstance(renderer, structlog.processors.JSONRenderer)


def test_get_logger_binds_module_name() -> None:
    with structlog.testing.capture_logs() as captured:
        get_logger("duopane.tests").info("pane.opened", rows=24)

    assert captured == [
        {
            "event": "pane.opened",
            "rows": 24,
            "logger_name": "duopane.tests",
            "log_level": "info",
        }
    ]


def test_module_logger_follows_later_configuration() -> None:
    logger = get_logger("duopane.pane")

    with structlog.testing.capture_logs() as captured:
        logger.info("pane.closed")

    assert captured == [
        {"event": "pane.closed", "logger_name": "duopane.pane", "log_level": "info"}
    ]


def test_import_package() -> None:
    import duopane

    assert duopane.TerminalPane.__name__ == "TerminalPane"
