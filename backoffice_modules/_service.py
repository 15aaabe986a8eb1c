"""
Shared base for the per-kind module services.

Each module service is a thin facade that names its kind's operations as
methods and forwards them to the generic ``LifecycleAction`` executor.
The transaction boundary belongs to the executor.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from typing import TYPE_CHECKING, Any
from uuid import UUID

from backoffice_kernel.domain.entity import DomainEvent, EntityKind, LifecycleEntity

if TYPE_CHECKING:
    from backoffice_services.lifecycle_action import LifecycleAction


class LifecycleModuleService:
    """Facade over ``LifecycleAction`` bound to one entity kind."""

    kind: EntityKind

    def __init__(self, lifecycle: LifecycleAction, retry_on_conflict: bool = False):
        self._lifecycle = lifecycle
        self._retry = retry_on_conflict

    @property
    def lifecycle(self) -> LifecycleAction:
        return self._lifecycle

    def get(self, entity_id: UUID) -> LifecycleEntity:
        return self._lifecycle.get(self.kind, entity_id)

    def history(self, entity_id: UUID) -> list[DomainEvent]:
        return self._lifecycle.history(entity_id)

    def available_actions(self) -> list[str]:
        return self._lifecycle.registry.actions_for(self.kind)

    def _create(
        self,
        attributes: Mapping[str, Any],
        amounts: Mapping[str, Any],
        effective_date: date | None = None,
        end_date: date | None = None,
        owner_id: str | None = None,
        actor_id: str | None = None,
        correlation_id: str | None = None,
    ) -> LifecycleEntity:
        return self._lifecycle.create(
            self.kind,
            attributes=attributes,
            amounts=amounts,
            effective_date=effective_date,
            end_date=end_date,
            owner_id=owner_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        )

    def run(
        self,
        entity_id: UUID,
        action: str,
        actor_id: str | None = None,
        correlation_id: str | None = None,
        **inputs: Any,
    ) -> LifecycleEntity:
        """Execute ``action`` on ``entity_id``; ``None``-valued inputs are dropped."""
        from backoffice_services.lifecycle_action import LifecycleCommand

        command = LifecycleCommand(
            kind=self.kind,
            entity_id=entity_id,
            action=action,
            inputs={k: v for k, v in inputs.items() if v is not None},
            actor_id=actor_id,
            correlation_id=correlation_id,
        )
        if self._retry:
            return self._lifecycle.execute_with_retry(command)
        return self._lifecycle.execute(command)
