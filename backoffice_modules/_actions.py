"""
Shared action declarations for lifecycle modules.

Every module declares its business operations as ``ActionDefinition``
values: which status the action moves to (or which statuses it may run
in place from), how its inputs are validated, which domain preconditions
apply beyond pure status, and how amounts/dates are recomputed.  One
generic executor (``backoffice_services.lifecycle_action``) runs them.

Hooks are plain functions taking an ``ActionContext``; they are pure apart
from reading the context and raise typed kernel exceptions.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from backoffice_config.schema import EngineConfiguration
from backoffice_engines.scheduling import TemporalScheduler
from backoffice_engines.valuation import ValuationPipeline
from backoffice_kernel.domain.entity import (
    ZERO,
    EntityKind,
    LifecycleEntity,
    round_money,
    to_date,
    to_decimal,
)
from backoffice_kernel.domain.person import PersonSnapshot
from backoffice_kernel.exceptions import PreconditionFailedError, ValidationError


@dataclass(frozen=True)
class ActionContext:
    """Everything an action hook may read.  ``entity`` is the pre-action state."""

    entity: LifecycleEntity
    action: str
    inputs: Mapping[str, Any]
    as_of: date
    now: datetime
    config: EngineConfiguration
    pipeline: ValuationPipeline
    scheduler: TemporalScheduler
    owner: PersonSnapshot | None = None
    actor_id: str | None = None

    def has(self, name: str) -> bool:
        return self.inputs.get(name) not in (None, "")

    def text_input(self, name: str, default: str | None = None, required: bool = False) -> str | None:
        value = self.inputs.get(name)
        if value in (None, ""):
            if required:
                raise ValidationError(name, "is required")
            return default
        return str(value)

    def decimal_input(
        self,
        name: str,
        default: Decimal | None = None,
        required: bool = False,
        allow_negative: bool = False,
    ) -> Decimal | None:
        value = self.inputs.get(name)
        if value in (None, ""):
            if required:
                raise ValidationError(name, "is required")
            return default
        result = to_decimal(value, name)
        if result < 0 and not allow_negative:
            raise ValidationError(name, "cannot be negative", value)
        return result

    def date_input(self, name: str, default: date | None = None, required: bool = False) -> date | None:
        value = to_date(self.inputs.get(name), name)
        if value is None:
            if required:
                raise ValidationError(name, "is required")
            return default
        return value

    def fail(self, reason: str) -> PreconditionFailedError:
        """Build (not raise) a precondition error for this entity and action."""
        return PreconditionFailedError(
            self.entity.kind.value, str(self.entity.id), self.action, reason
        )


Hook = Callable[[ActionContext], None]
Apply = Callable[[LifecycleEntity, ActionContext], LifecycleEntity]


@dataclass(frozen=True)
class ActionDefinition:
    """
    One business operation on one kind.

    Contract:
        ``to_status`` is the status a transitioning run requests from the
        state machine.  When the current status is in ``in_place_from`` the
        action runs without a status change.  At least one of the two must
        be set.
    Guarantees:
        - Hooks run in order: ``validate``, ``precondition``, state machine
          (guards), ``apply``.
    """

    kind: EntityKind
    name: str
    description: str
    to_status: str | None = None
    in_place_from: tuple[str, ...] = ()
    validate: Hook | None = None
    precondition: Hook | None = None
    apply: Apply | None = None
    needs_owner: bool = False

    def __post_init__(self) -> None:
        if self.to_status is None and not self.in_place_from:
            raise ValueError(f"Action {self.kind.value}.{self.name} has no target")


@dataclass(frozen=True)
class CreateRequest:
    """Raw fields supplied to a create operation."""

    attributes: Mapping[str, Any] = field(default_factory=dict)
    amounts: Mapping[str, Any] = field(default_factory=dict)
    effective_date: date | None = None
    end_date: date | None = None
    owner_id: str | None = None


@dataclass(frozen=True)
class CreateDefinition:
    """Normalizes and validates a ``CreateRequest`` for one kind."""

    kind: EntityKind
    prepare: Callable[[CreateRequest, EngineConfiguration, date], CreateRequest]


# ---------------------------------------------------------------------------
# Helpers shared by module action tables
# ---------------------------------------------------------------------------


def with_amounts(entity: LifecycleEntity, **amounts: Decimal) -> LifecycleEntity:
    merged = dict(entity.amounts)
    for name, value in amounts.items():
        merged[name] = round_money(value)
    return dataclasses.replace(entity, amounts=merged)


def with_attributes(entity: LifecycleEntity, **attributes: Any) -> LifecycleEntity:
    merged = dict(entity.attributes)
    for name, value in attributes.items():
        merged[name] = json_safe(value)
    return dataclasses.replace(entity, attributes=merged)


def json_safe(value: Any) -> Any:
    """Convert Decimals, dates, UUIDs and enums to JSON-storable values."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [json_safe(v) for v in value]
    return value


def require_amounts_non_negative(amounts: Mapping[str, Any]) -> dict[str, Decimal]:
    result: dict[str, Decimal] = {}
    for name, value in amounts.items():
        amount = to_decimal(value, name)
        if amount < 0:
            raise ValidationError(name, "cannot be negative", value)
        result[name] = round_money(amount)
    return result


def require_date_order(start: date | None, end: date | None, field_name: str = "end_date") -> None:
    if start is not None and end is not None and end < start:
        raise ValidationError(field_name, f"cannot precede {start.isoformat()}", end.isoformat())


def require_choice(value: Any, choices: Mapping[str, Any] | tuple[str, ...], field_name: str) -> str:
    if value is None or str(value) not in choices:
        raise ValidationError(field_name, f"must be one of {', '.join(sorted(choices))}", value)
    return str(value)


def increment(entity: LifecycleEntity, name: str) -> int:
    return int(entity.attr(name, 0) or 0) + 1


def decimal_attr(entity: LifecycleEntity, name: str, default: Decimal = ZERO) -> Decimal:
    value = entity.attr(name)
    if value in (None, ""):
        return default
    return to_decimal(value, name)
