"""
Structured JSON logging: record shape, context fields and setup.

Each test gets the ``backoffice_kernel`` logger to itself; the suite-wide
configuration is put back afterwards.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from backoffice_kernel.exceptions import ConflictError, PreconditionFailedError
from backoffice_kernel.logging_config import (
    ROOT_LOGGER,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def unconfigured():
    reset_logging()
    yield logging.getLogger(ROOT_LOGGER)
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def emitted(unconfigured):
    """Configure with an in-memory stream; calling the fixture value parses what was written."""
    buffer = StringIO()
    configure_logging(level=logging.DEBUG, stream=buffer)
    return lambda: [json.loads(line) for line in buffer.getvalue().splitlines() if line]


class TestRecordShape:
    def test_core_keys(self, emitted):
        get_logger("services.lifecycle").info("lifecycle_action_committed")

        (record,) = emitted()
        assert record["message"] == "lifecycle_action_committed"
        assert record["level"] == "INFO"
        assert record["logger"] == "backoffice_kernel.services.lifecycle"
        assert record["ts"].endswith("+00:00")

    def test_extra_is_flattened(self, emitted):
        get_logger("services.lifecycle").info(
            "lifecycle_action_committed", extra={"version": 3, "to_status": "enrolled"}
        )

        (record,) = emitted()
        assert (record["version"], record["to_status"]) == (3, "enrolled")
        assert "extra" not in record

    def test_money_dates_and_ids_become_strings(self, emitted):
        entity_id = uuid4()
        get_logger("engines.valuation").info(
            "valuation_computed",
            extra={"entity_id": entity_id, "effective": date(2024, 6, 3), "premium": Decimal("390.15")},
        )

        (record,) = emitted()
        assert record["entity_id"] == str(entity_id)
        assert record["effective"] == "2024-06-03"
        assert record["premium"] == "390.15"

    def test_debug_suppressed_above_level(self, unconfigured):
        buffer = StringIO()
        configure_logging(level=logging.INFO, stream=buffer)
        log = get_logger("batch.tasks")
        log.debug("sweep_candidate")
        log.info("sweep_selected")
        log.warning("sweep_item_skipped", extra={"reason": "no_longer_eligible"})

        messages = [json.loads(line)["message"] for line in buffer.getvalue().splitlines()]
        assert messages == ["sweep_selected", "sweep_item_skipped"]


class TestExceptions:
    def test_plain_exception(self, emitted):
        try:
            raise LookupError("no such entity")
        except LookupError:
            get_logger("batch.executor").exception("batch_item_unhandled_exception")

        (record,) = emitted()
        assert record["level"] == "ERROR"
        assert record["exc_type"] == "LookupError"
        assert record["exc_message"] == "no such entity"
        assert "Traceback" in record["traceback"]
        assert "exc_code" not in record

    def test_lifecycle_error_attributes(self, emitted):
        try:
            raise PreconditionFailedError("benefit", "b-1", "enroll", "insufficient_service_days")
        except PreconditionFailedError:
            get_logger("services.lifecycle").warning("lifecycle_action_rejected", exc_info=True)

        (record,) = emitted()
        assert record["exc_type"] == "PreconditionFailedError"
        assert record["exc_code"] == "PRECONDITION_FAILED"
        assert record["exc_reason"] == "insufficient_service_days"
        assert record["exc_action"] == "enroll"
        assert record["exc_kind"] == "benefit"

    def test_conflict_code(self, emitted):
        try:
            raise ConflictError("invoice", "i-9")
        except ConflictError:
            get_logger("batch.executor").info("batch_item_conflict_retry", exc_info=True)

        (record,) = emitted()
        assert record["exc_code"] == "OPTIMISTIC_LOCK_CONFLICT"
        assert record["exc_entity_type"] == "invoice"


class TestLogContext:
    def test_fields_ride_along(self, emitted):
        LogContext.set(correlation_id="run-7", entity_id="b-1", action="renew")
        get_logger("services.lifecycle").info("lifecycle_action_committed")

        (record,) = emitted()
        assert record["correlation_id"] == "run-7"
        assert record["entity_id"] == "b-1"
        assert record["action"] == "renew"

    def test_nothing_bound_nothing_written(self, emitted):
        get_logger("services.lifecycle").info("lifecycle_action_committed")

        (record,) = emitted()
        assert not set(LogContext.FIELDS) & set(record)

    def test_set_merges(self):
        LogContext.set(correlation_id="run-7")
        LogContext.set(actor_id="hr-admin", action=None)
        assert LogContext.get_all() == {"correlation_id": "run-7", "actor_id": "hr-admin"}

    def test_clear(self):
        LogContext.set(trace_id="t-1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(entity_id="c-1")
        with LogContext.bind(entity_id="c-2", event_id="ev-1"):
            assert LogContext.get_all() == {"entity_id": "c-2", "event_id": "ev-1"}
        assert LogContext.get_all() == {"entity_id": "c-1"}

    def test_bind_drops_none_and_unknown_names(self):
        with LogContext.bind(entity_id="p-3", action=None, tenant="acme"):
            assert LogContext.get_all() == {"entity_id": "p-3"}
        assert LogContext.get_all() == {}

    def test_values_are_stringified(self):
        entity_id = uuid4()
        with LogContext.bind(entity_id=entity_id):
            assert LogContext.get_all()["entity_id"] == str(entity_id)

    def test_every_field_accepted(self):
        LogContext.set(**{name: f"v-{i}" for i, name in enumerate(LogContext.FIELDS)})
        assert sorted(LogContext.get_all()) == sorted(LogContext.FIELDS)


class TestSetup:
    def test_first_configuration_wins(self, unconfigured):
        first = logging.StreamHandler(StringIO())
        configure_logging(handler=first)
        configure_logging(handler=logging.StreamHandler(StringIO()))

        assert unconfigured.handlers == [first]
        assert isinstance(first.formatter, StructuredFormatter)
        assert unconfigured.propagate is False

    def test_children_share_the_handler(self, emitted):
        get_logger("modules.payments").debug("payment_retry_scheduled")

        (record,) = emitted()
        assert record["logger"] == "backoffice_kernel.modules.payments"

    def test_reset(self, unconfigured):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        reset_logging()

        assert unconfigured.handlers == []
        assert unconfigured.level == logging.WARNING
