"""
EntityStore and UnitOfWork -- persistence boundary for lifecycle records.

Responsibility:
    Load lifecycle rows under a row lock, save them with an optimistic
    version check, append domain event records, and query by status.
    ``UnitOfWork`` owns the transaction: begin on entry, commit on clean
    exit, roll back on any exception.

Architecture position:
    Kernel > Services -- imperative shell.  EntityStore follows the
    flush-only contract: it never commits or rolls back; UnitOfWork does.

Invariants enforced:
    - Row locking: ``load(..., for_update=True)`` issues SELECT ... FOR
      UPDATE on backends that support it.
    - Optimistic locking: every save bumps ``version``; a concurrent
      writer's flush fails with StaleDataError, surfaced as ConflictError.
    - Kind isolation: an id loaded under the wrong kind is "not found".

Failure modes:
    - EntityNotFoundError: no row with that id for that kind.
    - ConflictError: version check failed on flush or commit.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from backoffice_kernel.domain.clock import Clock, SystemClock
from backoffice_kernel.domain.entity import DomainEvent, EntityKind, LifecycleEntity
from backoffice_kernel.exceptions import ConflictError, EntityNotFoundError
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.models.domain_event import DomainEventModel
from backoffice_kernel.models.lifecycle_entity import LifecycleEntityModel

logger = get_logger("services.store")

T = TypeVar("T")


def _coerce_uuid(entity_id: UUID | str) -> UUID:
    return entity_id if isinstance(entity_id, UUID) else UUID(str(entity_id))


class EntityStore:
    """
    Store for ``LifecycleEntityModel`` rows within a caller-owned session.

    Contract:
        Flush-only.  Returns ORM rows from ``load`` so the caller can
        ``save`` them back in the same session; read helpers return
        frozen ``LifecycleEntity`` DTOs.
    Guarantees:
        - ``save`` always issues an UPDATE (``updated_at`` is stamped from
          the clock), so even in-place actions go through the version check.
    Non-goals:
        - No caching; every ``load`` hits the database.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def load(
        self,
        kind: EntityKind,
        entity_id: UUID | str,
        for_update: bool = True,
    ) -> LifecycleEntityModel:
        entity_uuid = _coerce_uuid(entity_id)
        stmt = select(LifecycleEntityModel).where(
            LifecycleEntityModel.id == entity_uuid,
            LifecycleEntityModel.kind == kind.value,
        )
        if for_update:
            stmt = stmt.with_for_update()
        model = self.session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise EntityNotFoundError(kind.value, str(entity_uuid))
        return model

    def get(self, kind: EntityKind, entity_id: UUID | str) -> LifecycleEntity:
        return self.load(kind, entity_id, for_update=False).to_dto()

    def add(self, entity: LifecycleEntity, actor_id: UUID | None = None) -> LifecycleEntityModel:
        model = LifecycleEntityModel.from_dto(entity, actor_id=actor_id)
        now = self._clock.now()
        model.created_at = now
        model.updated_at = now
        self.session.add(model)
        self.session.flush()
        logger.debug(
            "entity_added",
            extra={"kind": entity.kind.value, "entity_id": str(entity.id), "status": entity.status},
        )
        return model

    def save(
        self,
        model: LifecycleEntityModel,
        entity: LifecycleEntity,
        actor_id: UUID | None = None,
    ) -> list[str]:
        """Apply ``entity`` onto ``model`` and flush under the version check."""
        changed = model.apply_dto(entity, actor_id=actor_id)
        model.updated_at = self._clock.now()
        flag_modified(model, "updated_at")
        try:
            self.session.flush()
        except StaleDataError:
            logger.warning(
                "entity_version_conflict",
                extra={"kind": model.kind, "entity_id": str(model.id)},
            )
            raise ConflictError(model.kind, str(model.id)) from None
        return changed

    def append_event(self, domain_event: DomainEvent) -> DomainEventModel:
        record = DomainEventModel.from_dto(domain_event)
        self.session.add(record)
        self.session.flush()
        return record

    def find_by_status(
        self,
        kind: EntityKind,
        statuses: Iterable[str],
        limit: int | None = None,
    ) -> list[LifecycleEntity]:
        stmt = (
            select(LifecycleEntityModel)
            .where(
                LifecycleEntityModel.kind == kind.value,
                LifecycleEntityModel.status.in_(list(statuses)),
            )
            .order_by(LifecycleEntityModel.end_date, LifecycleEntityModel.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def events_for(self, entity_id: UUID | str) -> list[DomainEvent]:
        stmt = (
            select(DomainEventModel)
            .where(DomainEventModel.entity_id == _coerce_uuid(entity_id))
            .order_by(DomainEventModel.occurred_at, DomainEventModel.id)
        )
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def undelivered_events(self, limit: int = 100) -> list[DomainEvent]:
        stmt = (
            select(DomainEventModel)
            .where(DomainEventModel.delivered_at.is_(None))
            .order_by(DomainEventModel.occurred_at, DomainEventModel.id)
            .limit(limit)
        )
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def mark_delivered(self, event_id: UUID, delivered_at: datetime) -> bool:
        record = self.session.execute(
            select(DomainEventModel).where(DomainEventModel.event_id == event_id)
        ).scalar_one_or_none()
        if record is None or record.delivered_at is not None:
            return False
        record.delivered_at = delivered_at
        self.session.flush()
        return True


class UnitOfWork:
    """
    One database transaction around an EntityStore.

    Usage:
        with UnitOfWork(session_factory, clock) as uow:
            model = uow.store.load(EntityKind.BENEFIT, entity_id)
            ...
        # committed here; rolled back if the block raised

    Guarantees:
        - The session is always closed on exit.
        - StaleDataError raised by the final commit becomes ConflictError.
    """

    def __init__(self, session_factory: sessionmaker[Session], clock: Clock | None = None):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self.session: Session | None = None
        self.store: EntityStore | None = None

    def __enter__(self) -> UnitOfWork:
        self.session = self._session_factory()
        self.store = EntityStore(self.session, self._clock)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        assert self.session is not None
        try:
            if exc_type is None:
                self.commit()
            else:
                self.session.rollback()
        finally:
            self.session.close()
            self.session = None
            self.store = None

    def commit(self) -> None:
        assert self.session is not None
        try:
            self.session.commit()
        except StaleDataError:
            self.session.rollback()
            raise ConflictError("lifecycle_entity", "unknown") from None

    def rollback(self) -> None:
        assert self.session is not None
        self.session.rollback()


def retry_on_conflict(
    operation: Callable[[], T],
    attempts: int = 2,
    backoff_seconds: float = 0.0,
) -> T:
    """
    Run ``operation``; on ConflictError reload-and-retry up to ``attempts`` total.

    The operation must open its own unit of work so each attempt sees
    freshly committed state.
    """
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ConflictError as exc:
            if attempt >= attempts:
                raise
            logger.info(
                "conflict_retry",
                extra={
                    "attempt": attempt,
                    "entity_type": exc.entity_type,
                    "entity_id": exc.entity_id,
                },
            )
            if backoff_seconds:
                time.sleep(backoff_seconds * attempt)
    raise AssertionError("unreachable")
