"""
Pytest configuration and shared fixtures.

Logging is configured once per session at DEBUG so every structured log
line is formatted during the run.  ``captured_logs`` attaches a second
handler to the ``shopbooks`` logger for assertions on individual events.
"""

import json
import logging
from datetime import UTC, datetime
from io import StringIO

import pytest

from shopbooks_config import BooksConfig
from shopbooks_kernel.db.engine import reset_engine
from shopbooks_kernel.domain.clock import DeterministicClock
from shopbooks_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
)
from shopbooks_services import FinanceService, InMemoryOrderStore, InMemoryStateStore


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the whole test session."""
    configure_logging(level=logging.DEBUG)


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Ensure LogContext is clean for every test."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture shopbooks logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, books):
            books.consume_for_sale([...])
            logs = captured_logs()
            assert any(r["message"] == "sale_consumed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("shopbooks")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# ---------------------------------------------------------------------------
# Clock & books
# ---------------------------------------------------------------------------


@pytest.fixture
def deterministic_clock():
    """Clock fixed at 2024-03-01 12:00 UTC."""
    return DeterministicClock(datetime(2024, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def books_config():
    return BooksConfig()


@pytest.fixture
def state_store():
    return InMemoryStateStore()


@pytest.fixture
def order_store():
    return InMemoryOrderStore()


@pytest.fixture
def books(books_config, state_store, order_store, deterministic_clock):
    """A FinanceService with the default seed accounts and no history."""
    return FinanceService(
        config=books_config,
        store=state_store,
        order_store=order_store,
        clock=deterministic_clock,
    )


@pytest.fixture
def make_books(books_config, deterministic_clock):
    """Factory for extra FinanceService instances sharing the test clock."""

    def _make(store=None, order_store=None, config=None, **kwargs) -> FinanceService:
        return FinanceService(
            config=config or books_config,
            store=store or InMemoryStateStore(),
            order_store=order_store or InMemoryOrderStore(),
            clock=deterministic_clock,
            **kwargs,
        )

    return _make


@pytest.fixture
def sqlite_url(tmp_path):
    url = f"sqlite:///{tmp_path / 'books.db'}"
    yield url
    reset_engine()

