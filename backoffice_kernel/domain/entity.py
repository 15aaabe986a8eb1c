"""
Lifecycle entity and domain event value objects.

Responsibility:
    Define the frozen domain view of every lifecycle record (benefit
    enrollment, provider contract, invoice, payment, training record)
    and the immutable ``DomainEvent`` emitted for each committed action.
    Also hosts the money/date coercion helpers shared by engines and
    modules.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - ``amounts`` values are ``Decimal`` (never float); rounding to two
      places uses ROUND_HALF_UP, i.e. half away from zero.
    - Entities are immutable; every change yields a new instance via
      ``dataclasses.replace``.

Failure modes:
    - ValidationError from ``to_decimal`` / ``to_date`` on malformed input.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from backoffice_kernel.exceptions import ValidationError

MONEY_SCALE = 2
_QUANT = Decimal(1).scaleb(-MONEY_SCALE)
ZERO = Decimal("0")
HUNDRED = Decimal("100")


class EntityKind(str, Enum):
    """The five record families governed by a lifecycle."""

    BENEFIT = "benefit"
    CONTRACT = "contract"
    INVOICE = "invoice"
    PAYMENT = "payment"
    TRAINING = "training"


def round_money(value: Decimal) -> Decimal:
    """Round to the money scale, half away from zero."""
    return value.quantize(_QUANT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """Coerce an int/str/Decimal to Decimal.  Floats go through ``str``."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValidationError(field_name, "must be a number", value)
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value)
        except InvalidOperation:
            raise ValidationError(field_name, "is not a valid decimal", value) from None
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise ValidationError(field_name, "must be a number", value)
    if not result.is_finite():
        raise ValidationError(field_name, "must be finite", value)
    return result


def to_date(value: Any, field_name: str = "date") -> date | None:
    """Coerce an ISO string or date to ``date``; None passes through."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            raise ValidationError(field_name, "is not an ISO date", value) from None
    raise ValidationError(field_name, "must be a date", value)


@dataclass(frozen=True)
class LifecycleEntity:
    """
    Domain view of a lifecycle record.

    Contract:
        Frozen.  ``status`` is a member of the workflow registered for
        ``kind``; the state machine is the only component that replaces it.
    Guarantees:
        - ``amount(name)`` never returns None (missing -> 0).
        - ``version`` mirrors the persisted optimistic lock counter.
    Non-goals:
        - Does not validate ``status`` itself; that needs the workflow
          registry, which lives in the engines layer.
    """

    id: UUID
    kind: EntityKind
    status: str
    amounts: Mapping[str, Decimal] = field(default_factory=dict)
    attributes: Mapping[str, Any] = field(default_factory=dict)
    effective_date: date | None = None
    end_date: date | None = None
    owner_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0

    def amount(self, name: str) -> Decimal:
        return self.amounts.get(name, ZERO)

    def attr(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)

    def date_attr(self, name: str) -> date | None:
        return to_date(self.attributes.get(name), name)


@dataclass(frozen=True)
class DomainEvent:
    """
    Immutable record of one committed lifecycle action.

    ``from_status == to_status`` for in-place actions (renew, reconcile,
    record_progress).  ``payload`` carries before/after amounts, the
    changed fields and the command inputs, all JSON-safe.
    """

    event_id: UUID
    kind: EntityKind
    entity_id: UUID
    action: str
    from_status: str
    to_status: str
    occurred_at: datetime
    payload: Mapping[str, Any] = field(default_factory=dict)
    actor_id: str | None = None
    correlation_id: str | None = None

    @property
    def transition(self) -> tuple[str, str]:
        return (self.from_status, self.to_status)

    @property
    def event_type(self) -> str:
        return f"{self.kind.value}.{self.action}"
