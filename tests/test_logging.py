"""Tests for the structlog processors and logger levels."""

import logging
from decimal import Decimal

import structlog

from zirox import __version__
from zirox.logging import _add_service, _stringify_decimals, setup_logging


def test_service_fields_added() -> None:
    event = _add_service(None, "info", {"event": "claim_succeeded"})
    assert event["service"] == "zirox"
    assert event["version"] == __version__


def test_decimals_rendered_as_strings() -> None:
    event = _stringify_decimals(
        None, "info", {"event": "price_evaluated", "price": Decimal("1.50"), "count": 3}
    )
    assert event["price"] == "1.50"
    assert event["count"] == 3


def test_setup_quiets_third_party_loggers() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging("DEBUG", "json")
        assert root.level == logging.DEBUG
        assert logging.getLogger("aiosqlite").level == logging.WARNING
        assert logging.getLogger("uvicorn").propagate is True
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
        structlog.reset_defaults()
