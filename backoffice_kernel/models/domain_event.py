"""
Module: backoffice_kernel.models.domain_event
Responsibility: Append-only record of every committed lifecycle action.
    Doubles as the transactional outbox: rows are written in the same
    transaction as the entity mutation and stamped ``delivered_at`` once
    every handler has acknowledged the event.
Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ and exceptions.py only.

Invariants enforced:
    - event_id uniqueness (UNIQUE constraint).
    - Append-only: an ORM before_update listener rejects changes to any
      column other than ``delivered_at``.

Failure modes:
    - IntegrityError on duplicate event_id.
    - ValueError on an attempted update of an immutable column.

Audit relevance:
    This table replaces free-text notes as the authoritative audit trail.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.orm.attributes import get_history

from backoffice_kernel.db.base import Base, UUIDString
from backoffice_kernel.domain.entity import DomainEvent, EntityKind

_MUTABLE_COLUMNS = frozenset({"delivered_at"})


class DomainEventModel(Base):
    """
    Persisted domain event.

    Contract:
        Once INSERTed, only ``delivered_at`` may change.
    Guarantees:
        - ``to_dto()`` reproduces the event handed to the publisher.
    """

    __tablename__ = "domain_events"

    __table_args__ = (
        Index("idx_domain_event_entity", "entity_id", "occurred_at"),
        Index("idx_domain_event_undelivered", "delivered_at"),
    )

    event_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    from_status: Mapped[str] = mapped_column(String(30), nullable=False)

    to_status: Mapped[str] = mapped_column(String(30), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Outbox marker; NULL until every handler acknowledged the event
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<DomainEvent {self.kind}.{self.action}:{self.event_id}>"

    @classmethod
    def from_dto(cls, domain_event: DomainEvent) -> "DomainEventModel":
        return cls(
            event_id=domain_event.event_id,
            kind=domain_event.kind.value,
            entity_id=domain_event.entity_id,
            action=domain_event.action,
            from_status=domain_event.from_status,
            to_status=domain_event.to_status,
            occurred_at=domain_event.occurred_at,
            payload=dict(domain_event.payload),
            actor_id=domain_event.actor_id,
            correlation_id=domain_event.correlation_id,
        )

    def to_dto(self) -> DomainEvent:
        return DomainEvent(
            event_id=self.event_id,
            kind=EntityKind(self.kind),
            entity_id=self.entity_id,
            action=self.action,
            from_status=self.from_status,
            to_status=self.to_status,
            occurred_at=self.occurred_at,
            payload=dict(self.payload or {}),
            actor_id=self.actor_id,
            correlation_id=self.correlation_id,
        )


@event.listens_for(DomainEventModel, "before_update")
def prevent_event_rewrite(mapper, connection, target):
    """Reject updates to anything but the delivery marker."""
    for attr in mapper.column_attrs:
        if attr.key in _MUTABLE_COLUMNS:
            continue
        if get_history(target, attr.key).has_changes():
            raise ValueError(
                f"Domain events are append-only: cannot modify {attr.key} "
                f"of event {target.event_id}"
            )
