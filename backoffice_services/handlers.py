"""
backoffice_services.handlers -- Default side-effect handlers for domain events.

Responsibility:
    The handlers ``EventPublisher`` fans events out to:

    NotificationHandler      notify the owning person of selected actions
    AuditLogHandler          one structured audit line per event
    MetricsHandler           per kind/action counters and amount totals
    PayrollDeductionHandler  benefit events -> payroll deduction rows

Architecture position:
    Services layer.  Handlers see only ``DomainEvent`` values; the payroll
    handler opens its own transaction.

Invariants enforced:
    - Idempotency per event id.  Given a session factory, every handler
      records a ``HandlerReceiptModel`` row per event it applied, so events
      the outbox relay redelivers after a restart are recognised.  The
      payroll handler writes its receipt in the same transaction as its
      effect; the others claim the receipt first and delete it when the
      effect fails.  Without a session factory a bounded in-memory set of
      recent event ids is used instead.
    - Handlers raise on failure so the publisher can retry; they never
      touch lifecycle entities.
"""

from __future__ import annotations

import threading
from collections import Counter, OrderedDict
from collections.abc import Mapping
from decimal import Decimal
from typing import Protocol, runtime_checkable

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.entity import ZERO, DomainEvent, EntityKind, to_date, to_decimal
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.handler_receipt import HandlerReceiptModel
from backoffice_modules.benefits.models import DeductionStatus
from backoffice_modules.benefits.orm import PayrollDeductionModel

logger = get_logger("services.handlers")
audit_logger = get_logger("services.audit")


SEEN_EVENTS_CAPACITY = 10_000


class _SeenEvents:
    """Recently processed event ids, oldest forgotten first once ``capacity`` is reached."""

    def __init__(self, capacity: int = SEEN_EVENTS_CAPACITY) -> None:
        self._ids: OrderedDict = OrderedDict()
        self._capacity = capacity
        self._lock = threading.Lock()

    def claim(self, event: DomainEvent) -> bool:
        with self._lock:
            if event.event_id in self._ids:
                return False
            self._ids[event.event_id] = None
            while len(self._ids) > self._capacity:
                self._ids.popitem(last=False)
            return True

    def release(self, event: DomainEvent) -> None:
        with self._lock:
            self._ids.pop(event.event_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)


class _ReceiptClaims:
    """
    Claims recorded as ``handler_receipts`` rows for one handler name.

    The unique (handler_name, event_id) constraint decides between
    concurrent deliveries: the losing insert fails and reports False.
    """

    def __init__(self, session_factory: sessionmaker[Session], handler_name: str, clock: Clock) -> None:
        self._session_factory = session_factory
        self._handler_name = handler_name
        self._clock = clock

    def claim(self, event: DomainEvent) -> bool:
        session = self._session_factory()
        try:
            session.add(
                HandlerReceiptModel(
                    handler_name=self._handler_name,
                    event_id=event.event_id,
                    processed_at=self._clock.now(),
                )
            )
            session.commit()
            return True
        except IntegrityError:
            session.rollback()
            logger.info(
                "handler_duplicate_delivery",
                extra={"handler": self._handler_name, "event_id": str(event.event_id)},
            )
            return False
        finally:
            session.close()

    def release(self, event: DomainEvent) -> None:
        session = self._session_factory()
        try:
            session.execute(
                delete(HandlerReceiptModel).where(
                    HandlerReceiptModel.handler_name == self._handler_name,
                    HandlerReceiptModel.event_id == event.event_id,
                )
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


def _claims_for(
    handler_name: str,
    session_factory: sessionmaker[Session] | None,
    clock: Clock | None,
) -> _SeenEvents | _ReceiptClaims:
    if session_factory is None:
        return _SeenEvents()
    return _ReceiptClaims(session_factory, handler_name, clock or SystemClock())


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@runtime_checkable
class Notifier(Protocol):
    def notify(self, recipient: str, template: str, context: Mapping[str, object]) -> None: ...


class LoggingNotifier:
    """Notifier that only logs; the default when no delivery channel is wired."""

    def notify(self, recipient: str, template: str, context: Mapping[str, object]) -> None:
        logger.info("notification_sent", extra={"recipient": recipient, "template": template})


NOTIFY_ACTIONS: dict[tuple[EntityKind, str], str] = {
    (EntityKind.BENEFIT, "enroll"): "benefit_enrolled",
    (EntityKind.BENEFIT, "terminate"): "benefit_terminated",
    (EntityKind.BENEFIT, "renew"): "benefit_renewed",
    (EntityKind.CONTRACT, "sign"): "contract_signed",
    (EntityKind.CONTRACT, "flag_renewal"): "contract_renewal_due",
    (EntityKind.CONTRACT, "terminate"): "contract_terminated",
    (EntityKind.CONTRACT, "expire"): "contract_expired",
    (EntityKind.INVOICE, "send"): "invoice_sent",
    (EntityKind.INVOICE, "mark_overdue"): "invoice_overdue",
    (EntityKind.INVOICE, "mark_paid"): "invoice_paid",
    (EntityKind.PAYMENT, "complete"): "payment_completed",
    (EntityKind.PAYMENT, "fail"): "payment_failed",
    (EntityKind.PAYMENT, "refund"): "payment_refunded",
    (EntityKind.TRAINING, "complete"): "training_completed",
    (EntityKind.TRAINING, "fail"): "training_failed",
    (EntityKind.TRAINING, "renew"): "certification_renewed",
}


class NotificationHandler:
    """Sends one notification per notifiable event to the entity's owner."""

    name = "notification"

    def __init__(
        self,
        notifier: Notifier | None = None,
        templates: Mapping[tuple[EntityKind, str], str] | None = None,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
    ):
        self._notifier = notifier or LoggingNotifier()
        self._templates = dict(NOTIFY_ACTIONS if templates is None else templates)
        self._seen = _claims_for(self.name, session_factory, clock)

    def handle(self, event: DomainEvent) -> None:
        template = self._templates.get((event.kind, event.action))
        recipient = event.payload.get("owner_id")
        if template is None or not recipient:
            return
        if not self._seen.claim(event):
            return
        try:
            self._notifier.notify(
                str(recipient),
                template,
                {
                    "entity_id": str(event.entity_id),
                    "from_status": event.from_status,
                    "to_status": event.to_status,
                    "amounts": event.payload.get("amounts_after", {}),
                },
            )
        except Exception:
            # Let the retry attempt send it.
            self._seen.release(event)
            raise


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


class AuditLogHandler:
    """Writes a structured ``lifecycle_audit`` line for every event."""

    name = "audit_log"

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._seen = _claims_for(self.name, session_factory, clock)

    def handle(self, event: DomainEvent) -> None:
        if not self._seen.claim(event):
            return
        audit_logger.info(
            "lifecycle_audit",
            extra={
                "event_id": str(event.event_id),
                "event_type": event.event_type,
                "entity_id": str(event.entity_id),
                "from_status": event.from_status,
                "to_status": event.to_status,
                "occurred_at": event.occurred_at.isoformat(),
                "changed": event.payload.get("changed", []),
                "actor_id": event.actor_id,
            },
        )


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class MetricsHandler:
    """
    In-process counters.

    ``counts[(kind, action)]`` is the number of events; ``amount_totals``
    accumulates, per kind and amount name, the change each event made.
    """

    name = "metrics"

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._seen = _claims_for(self.name, session_factory, clock)
        self._lock = threading.Lock()
        self._counts: Counter = Counter()
        self._amount_totals: dict[tuple[str, str], Decimal] = {}

    def handle(self, event: DomainEvent) -> None:
        if not self._seen.claim(event):
            return
        before = event.payload.get("amounts_before", {})
        after = event.payload.get("amounts_after", {})
        try:
            deltas = {
                name: to_decimal(after.get(name, "0"), name) - to_decimal(before.get(name, "0"), name)
                for name in set(before) | set(after)
            }
        except Exception:
            self._seen.release(event)
            raise
        with self._lock:
            self._counts[(event.kind.value, event.action)] += 1
            for name, delta in deltas.items():
                if delta:
                    key = (event.kind.value, name)
                    self._amount_totals[key] = self._amount_totals.get(key, ZERO) + delta

    def count(self, kind: EntityKind, action: str) -> int:
        with self._lock:
            return self._counts[(kind.value, action)]

    def amount_total(self, kind: EntityKind, name: str) -> Decimal:
        with self._lock:
            return self._amount_totals.get((kind.value, name), ZERO)

    def snapshot(self) -> dict[str, dict[str, str]]:
        with self._lock:
            return {
                "counts": {f"{k}.{a}": str(n) for (k, a), n in sorted(self._counts.items())},
                "amount_totals": {
                    f"{k}.{n}": str(v) for (k, n), v in sorted(self._amount_totals.items())
                },
            }


# ---------------------------------------------------------------------------
# Payroll deductions
# ---------------------------------------------------------------------------


class PayrollDeductionHandler:
    """
    Keeps ``benefit_payroll_deductions`` in step with benefit enrollments.

    enroll              insert an active deduction for the employee share
    renew               update amount and end date, reactivate
    terminate / cancel  deactivate, closing at the benefit's end date

    The receipt row and the deduction change commit together, so a
    redelivered event finds its receipt and does nothing.
    """

    name = "payroll_deduction"

    def __init__(self, session_factory: sessionmaker[Session], clock: Clock | None = None):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def handle(self, event: DomainEvent) -> None:
        if event.kind != EntityKind.BENEFIT or event.action not in (
            "enroll", "renew", "terminate", "cancel",
        ):
            return
        session = self._session_factory()
        try:
            if self._already_processed(session, event):
                return
            self._apply(session, event)
            session.add(
                HandlerReceiptModel(
                    handler_name=self.name,
                    event_id=event.event_id,
                    processed_at=self._clock.now(),
                )
            )
            session.commit()
        except IntegrityError:
            # A concurrent delivery of the same event committed first.
            session.rollback()
            logger.info(
                "payroll_deduction_duplicate_delivery",
                extra={"event_id": str(event.event_id)},
            )
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _already_processed(self, session: Session, event: DomainEvent) -> bool:
        receipt = session.execute(
            select(HandlerReceiptModel.id).where(
                HandlerReceiptModel.handler_name == self.name,
                HandlerReceiptModel.event_id == event.event_id,
            )
        ).scalar_one_or_none()
        return receipt is not None

    def _apply(self, session: Session, event: DomainEvent) -> None:
        row = session.execute(
            select(PayrollDeductionModel).where(PayrollDeductionModel.benefit_id == event.entity_id)
        ).scalar_one_or_none()
        after = event.payload.get("amounts_after", {})
        employee_share = to_decimal(after.get("employee_share", "0"), "employee_share")
        end_date = to_date(event.payload.get("end_date"), "end_date")

        if event.action == "enroll":
            if row is None:
                row = PayrollDeductionModel(
                    benefit_id=event.entity_id,
                    employee_id=str(event.payload.get("owner_id") or ""),
                    frequency="monthly",
                    created_at=self._clock.now(),
                )
                session.add(row)
            row.updated_at = self._clock.now()
            row.amount = employee_share
            row.status = DeductionStatus.ACTIVE.value
            row.start_date = to_date(event.payload.get("effective_date"), "effective_date")
            row.end_date = end_date
        elif row is None:
            # Pending enrollments are cancelled before any deduction exists.
            if event.action != "cancel":
                logger.warning(
                    "payroll_deduction_missing",
                    extra={"benefit_id": str(event.entity_id), "event_type": event.event_type},
                )
            return
        elif event.action == "renew":
            row.amount = employee_share
            row.status = DeductionStatus.ACTIVE.value
            row.end_date = end_date
        else:
            row.status = DeductionStatus.INACTIVE.value
            row.end_date = end_date

        logger.info(
            "payroll_deduction_updated",
            extra={
                "benefit_id": str(event.entity_id),
                "event_type": event.event_type,
                "status": row.status,
                "amount": str(row.amount),
            },
        )


def default_handlers(
    session_factory: sessionmaker[Session],
    clock: Clock | None = None,
    notifier: Notifier | None = None,
) -> list:
    """The standard handler set: notification, audit log, metrics, payroll.

    All four keep their receipts in ``handler_receipts``.
    """
    return [
        NotificationHandler(notifier, session_factory=session_factory, clock=clock),
        AuditLogHandler(session_factory, clock),
        MetricsHandler(session_factory, clock),
        PayrollDeductionHandler(session_factory, clock),
    ]
