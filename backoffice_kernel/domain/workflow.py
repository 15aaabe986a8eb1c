"""
Canonical workflow types (``backoffice_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for lifecycle state machines.  Used by every lifecycle
module (benefits, contracts, invoices, payments, training) so that Guard,
Transition, and Workflow are defined once.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``models/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from backoffice_kernel.domain.entity import LifecycleEntity
    from backoffice_kernel.domain.person import PersonSnapshot


@dataclass(frozen=True)
class GuardContext:
    """Facts a guard may consult besides the entity itself.

    ``as_of`` is today's date from the injected clock; ``owner`` is the
    directory snapshot of the entity's owning person when one applies.
    """
    as_of: date
    owner: PersonSnapshot | None = None
    inputs: Mapping[str, Any] = field(default_factory=dict)


GuardPredicate = Callable[["LifecycleEntity", GuardContext], bool]


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen; ``predicate`` is pure and receives the entity as it
    is before the transition.
    Guarantees: name and description are non-empty at construction.
    Non-goals: does not raise -- the state machine turns a False result
    into ``InvalidTransitionError``.
    """
    name: str
    description: str
    predicate: GuardPredicate | None = field(default=None, compare=False)
    members: tuple[Guard, ...] = ()

    def __post_init__(self) -> None:
        if not self.name or not self.description:
            raise ValueError("Guard name and description are required")

    def first_failure(self, entity: LifecycleEntity, context: GuardContext) -> Guard | None:
        """The first failing leaf guard, or None when the guard passes."""
        for member in self.members:
            failed = member.first_failure(entity, context)
            if failed is not None:
                return failed
        if self.predicate is not None and not self.predicate(entity, context):
            return self
        return None

    def evaluate(self, entity: LifecycleEntity, context: GuardContext) -> bool:
        return self.first_failure(entity, context) is None


def all_of(name: str, description: str, *guards: Guard) -> Guard:
    """Combine guards into one that passes only when every member passes."""
    return Guard(name=name, description=description, members=tuple(guards))


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``action`` names the only operation allowed to drive
    the edge when the caller names one.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for one entity kind.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``.
    ``terminal_states`` are states with no outgoing transitions.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} not in states"
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state} -> {t.to_state}"
                    " references an unknown state"
                )
            if (t.from_state, t.to_state) in seen:
                raise ValueError(
                    f"Workflow {self.name}: duplicate transition {t.from_state} -> {t.to_state}"
                )
            seen.add((t.from_state, t.to_state))
        for state in self.terminal_states:
            if state not in self.states:
                raise ValueError(f"Workflow {self.name}: unknown terminal state {state!r}")
            if any(t.from_state == state for t in self.transitions):
                raise ValueError(
                    f"Workflow {self.name}: terminal state {state!r} has outgoing transitions"
                )

    def find(self, from_state: str, to_state: str, action: str | None = None) -> Transition | None:
        """The edge ``from_state -> to_state``, restricted to ``action`` when given."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t if action is None or t.action == action else None
        return None

    def actions_from(self, state: str) -> frozenset[str]:
        return frozenset(t.action for t in self.transitions if t.from_state == state)

    def successors(self, state: str) -> frozenset[str]:
        return frozenset(t.to_state for t in self.transitions if t.from_state == state)
