"""
Module: backoffice_kernel.models.lifecycle_entity
Responsibility: ORM persistence for every lifecycle record (benefit
    enrollment, provider contract, invoice, payment, training record) in a
    single ``lifecycle_entities`` table discriminated by ``kind``.
Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ and exceptions.py only.

Invariants enforced:
    - Optimistic locking: ``version`` is SQLAlchemy's ``version_id_col``;
      every UPDATE carries ``WHERE version = :loaded`` and a lost race
      surfaces as StaleDataError (translated to ConflictError by the store).
    - Amounts are stored as a JSON object of decimal strings; no binary
      float ever touches a monetary value.
    - Rows are never deleted; terminal statuses are retained.

Failure modes:
    - StaleDataError on flush when another transaction bumped ``version``.
    - ValidationError from ``to_dto`` when a stored amount is malformed.

Audit relevance:
    The row is the current state only.  The history of how it got there
    is the append-only ``domain_events`` table.
"""

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Date, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from backoffice_kernel.db.base import TrackedBase
from backoffice_kernel.domain.entity import EntityKind, LifecycleEntity, to_decimal


def _dump_amounts(amounts: dict[str, Decimal]) -> dict[str, str]:
    return {name: str(value) for name, value in sorted(amounts.items())}


def _load_amounts(raw: dict[str, Any] | None) -> dict[str, Decimal]:
    return {name: to_decimal(value, name) for name, value in (raw or {}).items()}


class LifecycleEntityModel(TrackedBase):
    """
    Persistence projection of ``LifecycleEntity``.

    Contract:
        Mutated only by ``LifecycleAction`` through ``apply_dto``.
    Guarantees:
        - ``to_dto()`` returns a frozen snapshot detached from the session.
        - ``version`` starts at 1 and increases by exactly one per UPDATE.
    Non-goals:
        - Does not validate status membership; the state machine does.
    """

    __tablename__ = "lifecycle_entities"

    __table_args__ = (
        Index("idx_lifecycle_kind_status", "kind", "status"),
        Index("idx_lifecycle_kind_end_date", "kind", "end_date"),
        Index("idx_lifecycle_owner", "owner_id"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(String(30), nullable=False)

    # Named decimal amounts, serialized as strings
    amounts: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    # Kind-specific non-monetary fields
    attributes: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Employee (benefits, training) or provider (contracts, invoices, payments)
    owner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<LifecycleEntity {self.kind}:{self.id} {self.status} v{self.version}>"

    @classmethod
    def from_dto(cls, entity: LifecycleEntity, actor_id: UUID | None = None) -> "LifecycleEntityModel":
        return cls(
            id=entity.id,
            kind=entity.kind.value,
            status=entity.status,
            amounts=_dump_amounts(dict(entity.amounts)),
            attributes=dict(entity.attributes),
            effective_date=entity.effective_date,
            end_date=entity.end_date,
            owner_id=entity.owner_id,
            created_by_id=actor_id,
            updated_by_id=actor_id,
        )

    def to_dto(self) -> LifecycleEntity:
        return LifecycleEntity(
            id=self.id,
            kind=EntityKind(self.kind),
            status=self.status,
            amounts=_load_amounts(self.amounts),
            attributes=dict(self.attributes or {}),
            effective_date=self.effective_date,
            end_date=self.end_date,
            owner_id=self.owner_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version or 0,
        )

    def apply_dto(self, entity: LifecycleEntity, actor_id: UUID | None = None) -> list[str]:
        """
        Copy mutable fields from ``entity`` onto the row.

        Returns the names of the fields that actually changed; an empty list
        means the flush will not issue an UPDATE.
        """
        changed: list[str] = []
        new_amounts = _dump_amounts(dict(entity.amounts))
        new_attributes = dict(entity.attributes)
        updates = {
            "status": entity.status,
            "amounts": new_amounts,
            "attributes": new_attributes,
            "effective_date": entity.effective_date,
            "end_date": entity.end_date,
            "owner_id": entity.owner_id,
        }
        for name, value in updates.items():
            if getattr(self, name) != value:
                setattr(self, name, value)
                changed.append(name)
        if changed:
            self.updated_by_id = actor_id
        return changed
