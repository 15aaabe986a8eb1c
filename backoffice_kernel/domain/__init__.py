"""Pure domain value objects for the back-office kernel.  Zero I/O."""

from backoffice_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from backoffice_kernel.domain.entity import (
    MONEY_SCALE,
    DomainEvent,
    EntityKind,
    LifecycleEntity,
    round_money,
    to_date,
    to_decimal,
)
from backoffice_kernel.domain.person import (
    InMemoryPersonDirectory,
    PersonDirectory,
    PersonSnapshot,
)
from backoffice_kernel.domain.workflow import (
    Guard,
    GuardContext,
    Transition,
    Workflow,
    all_of,
)

__all__ = [
    "MONEY_SCALE",
    "Clock",
    "DeterministicClock",
    "DomainEvent",
    "EntityKind",
    "Guard",
    "GuardContext",
    "InMemoryPersonDirectory",
    "LifecycleEntity",
    "PersonDirectory",
    "PersonSnapshot",
    "SystemClock",
    "Transition",
    "Workflow",
    "all_of",
    "round_money",
    "to_date",
    "to_decimal",
]
