"""
Pytest fixtures for the back-office lifecycle test suite.

Provides:
- A file-backed SQLite database per test (tables created fresh)
- A deterministic clock pinned to 2024-06-03 12:00 UTC
- An in-memory person directory with a tenured employee, a new hire,
  an inactive employee and a contractor
- A recording event sink, the ``LifecycleAction`` executor and one
  service facade per module
- Structured log capture
"""

import json
import logging
import threading
from datetime import date, datetime, timezone
from io import StringIO

import pytest

from backoffice_config import get_active_config, reset_active_config
from backoffice_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from backoffice_kernel.domain.clock import DeterministicClock
from backoffice_kernel.domain.person import InMemoryPersonDirectory, PersonSnapshot
from backoffice_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from backoffice_modules.benefits.service import BenefitsService
from backoffice_modules.contracts.service import ContractsService
from backoffice_modules.invoices.service import InvoicesService
from backoffice_modules.payments.service import PaymentsService
from backoffice_modules.training.service import TrainingService
from backoffice_services.lifecycle_action import LifecycleAction

TODAY = date(2024, 6, 3)
NOW = datetime(2024, 6, 3, 12, 0, 0, tzinfo=timezone.utc)

EMPLOYEE_ID = "E-100"
NEW_HIRE_ID = "E-200"
INACTIVE_ID = "E-300"
CONTRACTOR_ID = "E-400"
PROVIDER_ID = "P-500"
ACTOR_ID = "hr-admin"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
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
    Capture backoffice_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, benefits):
            benefits.enroll(...)
            logs = captured_logs()
            assert any(r["message"] == "lifecycle_action_committed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("backoffice_kernel")
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
# Time, configuration, people
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(NOW)


@pytest.fixture
def config():
    reset_active_config()
    yield get_active_config()
    reset_active_config()


@pytest.fixture
def directory():
    return InMemoryPersonDirectory([
        PersonSnapshot(EMPLOYEE_ID, active=True, employment_type="full_time",
                       hire_date=date(2018, 1, 15), email="e100@example.com"),
        PersonSnapshot(NEW_HIRE_ID, active=True, employment_type="full_time",
                       hire_date=date(2024, 5, 1)),
        PersonSnapshot(INACTIVE_ID, active=False, employment_type="full_time",
                       hire_date=date(2015, 3, 1)),
        PersonSnapshot(CONTRACTOR_ID, active=True, employment_type="contractor",
                       hire_date=date(2019, 9, 1)),
    ])


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session_factory(tmp_path):
    """A fresh SQLite database file for each test."""
    init_engine_from_url(f"sqlite:///{tmp_path}/backoffice_test.db")
    create_tables()
    yield get_session_factory()
    reset_engine()


# =============================================================================
# Events and services
# =============================================================================


class RecordingSink:
    """EventSink that keeps every published event in order."""

    def __init__(self):
        self._lock = threading.Lock()
        self.events = []

    def publish(self, event):
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: str) -> list:
        with self._lock:
            return [e for e in self.events if e.event_type == event_type]


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def lifecycle(session_factory, sink, clock, config, directory):
    return LifecycleAction(
        session_factory,
        sink=sink,
        clock=clock,
        config=config,
        directory=directory,
    )


@pytest.fixture
def benefits(lifecycle):
    return BenefitsService(lifecycle)


@pytest.fixture
def contracts(lifecycle):
    return ContractsService(lifecycle)


@pytest.fixture
def invoices(lifecycle):
    return InvoicesService(lifecycle)


@pytest.fixture
def payments(lifecycle):
    return PaymentsService(lifecycle)


@pytest.fixture
def training(lifecycle):
    return TrainingService(lifecycle)
