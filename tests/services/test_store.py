"""
Tests for backoffice_kernel.services.store.

EntityStore round-trips, optimistic version checks, status queries,
outbox bookkeeping, and the UnitOfWork commit/rollback boundary.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from backoffice_kernel.domain.entity import DomainEvent, EntityKind, LifecycleEntity
from backoffice_kernel.exceptions import ConflictError, EntityNotFoundError
from backoffice_kernel.models.domain_event import DomainEventModel
from backoffice_kernel.models.lifecycle_entity import LifecycleEntityModel
from backoffice_kernel.services.store import UnitOfWork, retry_on_conflict


def _entity(status="draft", end_date=None, **amounts) -> LifecycleEntity:
    return LifecycleEntity(
        id=uuid4(),
        kind=EntityKind.INVOICE,
        status=status,
        amounts=amounts or {"subtotal": Decimal("100.00")},
        attributes={"invoice_number": "INV-1"},
        effective_date=date(2024, 6, 1),
        end_date=end_date,
        owner_id="P-500",
    )


def _event(entity: LifecycleEntity, clock) -> DomainEvent:
    return DomainEvent(
        event_id=uuid4(),
        kind=entity.kind,
        entity_id=entity.id,
        action="create",
        from_status=entity.status,
        to_status=entity.status,
        occurred_at=clock.now(),
        payload={"owner_id": entity.owner_id},
    )


class TestRoundTrip:
    def test_add_then_get(self, session_factory, clock):
        entity = _entity(subtotal=Decimal("100.00"), tax=Decimal("8.25"))
        with UnitOfWork(session_factory, clock) as uow:
            uow.store.add(entity)

        with UnitOfWork(session_factory, clock) as uow:
            loaded = uow.store.get(EntityKind.INVOICE, entity.id)

        assert loaded.status == "draft"
        assert loaded.version == 1
        assert loaded.amount("tax") == Decimal("8.25")
        assert isinstance(loaded.amount("subtotal"), Decimal)
        assert loaded.attr("invoice_number") == "INV-1"
        assert loaded.effective_date == date(2024, 6, 1)

    def test_wrong_kind_not_found(self, session_factory, clock):
        entity = _entity()
        with UnitOfWork(session_factory, clock) as uow:
            uow.store.add(entity)
        with UnitOfWork(session_factory, clock) as uow:
            with pytest.raises(EntityNotFoundError):
                uow.store.get(EntityKind.PAYMENT, entity.id)

    def test_unknown_id_not_found(self, session_factory, clock):
        with UnitOfWork(session_factory, clock) as uow:
            with pytest.raises(EntityNotFoundError):
                uow.store.load(EntityKind.INVOICE, uuid4())


class TestVersioning:
    """Every save bumps the version; a stale save is a ConflictError."""

    def test_save_bumps_version_even_without_field_changes(self, session_factory, clock):
        entity = _entity()
        with UnitOfWork(session_factory, clock) as uow:
            uow.store.add(entity)

        with UnitOfWork(session_factory, clock) as uow:
            model = uow.store.load(EntityKind.INVOICE, entity.id)
            changed = uow.store.save(model, model.to_dto())
        assert changed == []

        with UnitOfWork(session_factory, clock) as uow:
            assert uow.store.get(EntityKind.INVOICE, entity.id).version == 2

    def test_save_reports_changed_fields(self, session_factory, clock):
        entity = _entity()
        with UnitOfWork(session_factory, clock) as uow:
            uow.store.add(entity)

        with UnitOfWork(session_factory, clock) as uow:
            model = uow.store.load(EntityKind.INVOICE, entity.id)
            after = LifecycleEntity(
                id=entity.id,
                kind=entity.kind,
                status="sent",
                amounts=entity.amounts,
                attributes=entity.attributes,
                effective_date=entity.effective_date,
                end_date=entity.end_date,
                owner_id=entity.owner_id,
            )
            changed = uow.store.save(model, after)
        assert changed == ["status"]

    def test_concurrent_bump_raises_conflict(self, session_factory, clock):
        entity = _entity()
        with UnitOfWork(session_factory, clock) as uow:
            uow.store.add(entity)

        table = LifecycleEntityModel.__table__
        with pytest.raises(ConflictError) as exc_info:
            with UnitOfWork(session_factory, clock) as uow:
                model = uow.store.load(EntityKind.INVOICE, entity.id)
                # another writer commits first
                uow.session.execute(
                    table.update()
                    .where(table.c.id == entity.id)
                    .values(version=table.c.version + 1)
                )
                uow.store.save(model, model.to_dto())
        assert exc_info.value.code == "OPTIMISTIC_LOCK_CONFLICT"

        with UnitOfWork(session_factory, clock) as uow:
            assert uow.store.get(EntityKind.INVOICE, entity.id).version == 1


class TestQueries:
    def test_find_by_status_orders_by_end_date(self, session_factory, clock):
        late = _entity(status="sent", end_date=date(2024, 9, 1))
        early = _entity(status="sent", end_date=date(2024, 7, 1))
        other = _entity(status="paid", end_date=date(2024, 6, 1))
        with UnitOfWork(session_factory, clock) as uow:
            for e in (late, early, other):
                uow.store.add(e)

        with UnitOfWork(session_factory, clock) as uow:
            found = uow.store.find_by_status(EntityKind.INVOICE, ["sent"])
            limited = uow.store.find_by_status(EntityKind.INVOICE, ["sent", "paid"], limit=1)
            none = uow.store.find_by_status(EntityKind.PAYMENT, ["sent"])

        assert [e.id for e in found] == [early.id, late.id]
        assert [e.id for e in limited] == [other.id]
        assert none == []

    def test_events_for_entity(self, session_factory, clock):
        entity = _entity()
        with UnitOfWork(session_factory, clock) as uow:
            uow.store.add(entity)
            uow.store.append_event(_event(entity, clock))
            uow.store.append_event(_event(_entity(), clock))

        with UnitOfWork(session_factory, clock) as uow:
            events = uow.store.events_for(entity.id)
        assert len(events) == 1
        assert events[0].entity_id == entity.id
        assert events[0].payload == {"owner_id": "P-500"}


class TestOutbox:
    def test_mark_delivered_once(self, session_factory, clock):
        entity = _entity()
        event = _event(entity, clock)
        with UnitOfWork(session_factory, clock) as uow:
            uow.store.append_event(event)

        with UnitOfWork(session_factory, clock) as uow:
            assert [e.event_id for e in uow.store.undelivered_events()] == [event.event_id]
            assert uow.store.mark_delivered(event.event_id, clock.now()) is True

        with UnitOfWork(session_factory, clock) as uow:
            assert uow.store.mark_delivered(event.event_id, clock.now()) is False
            assert uow.store.undelivered_events() == []

    def test_unknown_event_not_marked(self, session_factory, clock):
        with UnitOfWork(session_factory, clock) as uow:
            assert uow.store.mark_delivered(uuid4(), clock.now()) is False

    def test_events_are_append_only(self, session_factory, clock):
        event = _event(_entity(), clock)
        with UnitOfWork(session_factory, clock) as uow:
            uow.store.append_event(event)

        with pytest.raises(ValueError):
            with UnitOfWork(session_factory, clock) as uow:
                record = uow.session.query(DomainEventModel).filter_by(event_id=event.event_id).one()
                record.action = "rewritten"
                uow.session.flush()


class TestUnitOfWork:
    def test_rollback_on_exception(self, session_factory, clock):
        entity = _entity()
        with pytest.raises(RuntimeError):
            with UnitOfWork(session_factory, clock) as uow:
                uow.store.add(entity)
                raise RuntimeError("boom")

        with UnitOfWork(session_factory, clock) as uow:
            with pytest.raises(EntityNotFoundError):
                uow.store.get(EntityKind.INVOICE, entity.id)

    def test_session_released_on_exit(self, session_factory, clock):
        uow = UnitOfWork(session_factory, clock)
        with uow:
            assert uow.store is not None
        assert uow.session is None
        assert uow.store is None


class TestRetryOnConflict:
    def test_retries_then_succeeds(self):
        calls = []

        def operation():
            calls.append(1)
            if len(calls) < 2:
                raise ConflictError("lifecycle_entity", "x")
            return "ok"

        assert retry_on_conflict(operation, attempts=2) == "ok"
        assert len(calls) == 2

    def test_gives_up_after_attempts(self):
        calls = []

        def operation():
            calls.append(1)
            raise ConflictError("lifecycle_entity", "x")

        with pytest.raises(ConflictError):
            retry_on_conflict(operation, attempts=3)
        assert len(calls) == 3

    def test_other_errors_not_retried(self):
        calls = []

        def operation():
            calls.append(1)
            raise EntityNotFoundError("invoice", "x")

        with pytest.raises(EntityNotFoundError):
            retry_on_conflict(operation)
        assert len(calls) == 1
