"""
backoffice_engines.state_machine -- Table-driven status transition validator.

Responsibility:
    Decide whether an entity may move from its current status to a
    requested one, using the ``Workflow`` registered for the entity's
    kind, and produce the transitioned entity.  Guards attached to a
    transition are evaluated before the status is replaced.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports only kernel domain value objects and exceptions.  Workflows are
    injected by the caller (``backoffice_modules.registry`` builds the
    default set), so the engine has no knowledge of any particular kind.

Invariants enforced:
    - The returned entity's status is always a member of the kind's state set.
    - A rejected transition never produces a new entity; the input is
      untouched (frozen dataclass).
    - Transitions absent from the table are rejected even when a guard
      for them would pass.

Failure modes:
    - InvalidTransitionError(reason="unknown_status") when either status
      is not in the kind's state set.
    - InvalidTransitionError(reason="not_in_table") for a missing edge, or
      an edge that belongs to a different action than the one requested.
    - InvalidTransitionError(reason="guard_failed:<name>") when the edge's
      guard returns False.
    - ValidationError when no workflow is registered for the kind.

Audit relevance:
    Every rejection is logged at WARNING as ``transition_rejected`` with the
    kind, entity id, both statuses and the reason.  Every evaluation is
    traced via ``@traced_engine``.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping

from backoffice_kernel.domain.entity import EntityKind, LifecycleEntity
from backoffice_kernel.domain.workflow import GuardContext, Workflow
from backoffice_kernel.exceptions import InvalidTransitionError, ValidationError
from backoffice_kernel.logging_config import get_logger
from backoffice_engines.tracer import traced_engine

logger = get_logger("engines.state_machine")


class StateMachine:
    """
    Generic state machine parameterized by per-kind workflows.

    Contract:
        No I/O, no clock access.  Anything time-dependent a guard needs
        arrives in the ``GuardContext``.
    Guarantees:
        - ``can_transition`` is a pure table lookup (guards not evaluated).
        - ``transition`` evaluates the edge's guard and returns a new
          frozen entity differing from the input only in ``status``.
        - Safe to share across threads; holds only immutable state.
    Non-goals:
        - Does not persist, recompute amounts, or publish events; that is
          ``LifecycleAction``'s job.
    """

    def __init__(self, workflows: Mapping[EntityKind, Workflow]):
        self._workflows: dict[EntityKind, Workflow] = dict(workflows)

    @property
    def kinds(self) -> tuple[EntityKind, ...]:
        return tuple(self._workflows)

    def workflow_for(self, kind: EntityKind) -> Workflow:
        try:
            return self._workflows[kind]
        except KeyError:
            raise ValidationError("kind", "no workflow registered", kind) from None

    def is_valid_status(self, kind: EntityKind, status: str) -> bool:
        return status in self.workflow_for(kind).states

    def is_terminal(self, kind: EntityKind, status: str) -> bool:
        return status in self.workflow_for(kind).terminal_states

    def successors(self, kind: EntityKind, status: str) -> frozenset[str]:
        return self.workflow_for(kind).successors(status)

    def can_transition(
        self,
        kind: EntityKind,
        current_status: str,
        requested_status: str,
        action: str | None = None,
    ) -> bool:
        """
        True when ``current -> requested`` is an edge of the kind's table and,
        if ``action`` is given, that edge belongs to ``action``.
        """
        return self.workflow_for(kind).find(current_status, requested_status, action) is not None

    @traced_engine(
        "state_machine", "1.0",
        fingerprint_fields=("entity", "requested_status"),
    )
    def transition(
        self,
        entity: LifecycleEntity,
        requested_status: str,
        context: GuardContext,
        action: str | None = None,
    ) -> LifecycleEntity:
        """
        Validate and apply ``entity.status -> requested_status``.

        With ``action`` the edge must also be labelled with that action;
        an edge owned by another action is treated as missing.

        Preconditions:
            ``context.as_of`` is today's date according to the caller's clock.

        Postconditions:
            Returns ``dataclasses.replace(entity, status=requested_status)``.

        Raises:
            InvalidTransitionError: edge missing, status unknown, or guard failed.
        """
        workflow = self.workflow_for(entity.kind)
        current = entity.status

        if current not in workflow.states or requested_status not in workflow.states:
            self._reject(entity, requested_status, "unknown_status")

        edge = workflow.find(current, requested_status, action)
        if edge is None:
            self._reject(entity, requested_status, "not_in_table")

        if edge.guard is not None:
            failed = edge.guard.first_failure(entity, context)
            if failed is not None:
                self._reject(entity, requested_status, f"guard_failed:{failed.name}")

        logger.debug(
            "transition_validated",
            extra={
                "kind": entity.kind.value,
                "entity_id": str(entity.id),
                "from_status": current,
                "to_status": requested_status,
                "guard": edge.guard.name if edge.guard else None,
            },
        )
        return dataclasses.replace(entity, status=requested_status)

    def _reject(self, entity: LifecycleEntity, requested_status: str, reason: str) -> None:
        logger.warning(
            "transition_rejected",
            extra={
                "kind": entity.kind.value,
                "entity_id": str(entity.id),
                "from_status": entity.status,
                "to_status": requested_status,
                "reason": reason,
            },
        )
        raise InvalidTransitionError(
            entity.kind.value,
            str(entity.id),
            entity.status,
            requested_status,
            reason=reason,
        )
