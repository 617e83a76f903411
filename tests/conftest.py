"""
Pytest fixtures for the assertive kernel test suite.

Provides:
- The validated default catalog
- In-memory and SQLite-backed learner stores
- Deterministic clock and random sources
- Structured log capture
"""

import json
import logging
import random
from io import StringIO

import pytest

from assertive_config import get_catalog
from assertive_kernel.db.engine import (
    create_engine_from_url,
    create_tables,
    drop_tables,
    make_session_factory,
)
from assertive_kernel.domain.business_state import initial_business_state
from assertive_kernel.domain.clock import DeterministicClock
from assertive_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from assertive_kernel.services.learner_store import InMemoryLearnerStore
from assertive_kernel.services.practice_service import PracticeService
from assertive_kernel.services.simulation_service import SimulationService
from assertive_kernel.services.sql_learner_store import SqlLearnerStore


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture assertive_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, simulation):
            simulation.start_action("learner-1", "purchase-inventory-cash", 0)
            logs = captured_logs()
            assert any(r["message"] == "pending_transaction_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("assertive_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Catalog and determinism
# =============================================================================


@pytest.fixture(scope="session")
def catalog():
    return get_catalog()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def initial_state(catalog):
    return initial_business_state(catalog)


# =============================================================================
# Stores and services
# =============================================================================


@pytest.fixture
def memory_store():
    return InMemoryLearnerStore()


@pytest.fixture
def sqlite_session_factory():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine_from_url("sqlite:///:memory:")
    create_tables(engine)
    yield make_session_factory(engine)
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def sql_store(sqlite_session_factory):
    return SqlLearnerStore(sqlite_session_factory)


@pytest.fixture
def simulation(memory_store, catalog, clock):
    seeds = iter(range(10_000))
    return SimulationService(
        memory_store,
        catalog,
        clock=clock,
        rng_factory=lambda: random.Random(next(seeds)),
    )


@pytest.fixture
def practice(catalog):
    return PracticeService(catalog, rng_factory=lambda: random.Random(42))
