"""
Training Service (``backoffice_modules.training.service``).

Public entry point for employee training operations, plus a progress
query.  Thin facade over ``LifecycleAction``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from backoffice_kernel.domain.entity import EntityKind, LifecycleEntity
from backoffice_modules._service import LifecycleModuleService
from backoffice_modules.training.actions import progress
from backoffice_modules.training.models import TrainingProgress


class TrainingService(LifecycleModuleService):
    """Employee trainings and certifications."""

    kind = EntityKind.TRAINING

    def create_training(
        self,
        employee_id: str,
        training_name: str,
        total_hours: Decimal,
        is_certification: bool = False,
        provider: str | None = None,
        start_date: date | None = None,
        due_date: date | None = None,
        cost: Decimal | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        attributes = {
            "training_name": training_name,
            "total_hours": total_hours,
            "is_certification": is_certification,
        }
        if provider is not None:
            attributes["provider"] = provider
        return self._create(
            attributes=attributes,
            amounts={"cost": cost} if cost is not None else {},
            effective_date=start_date,
            end_date=due_date,
            owner_id=employee_id,
            actor_id=actor_id,
        )

    def start(self, training_id: UUID, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(training_id, "start", actor_id=actor_id)

    def record_progress(
        self, training_id: UUID, hours_completed: Decimal, actor_id: str | None = None
    ) -> LifecycleEntity:
        return self.run(
            training_id, "record_progress", actor_id=actor_id, hours_completed=hours_completed
        )

    def complete(
        self,
        training_id: UUID,
        score: Decimal | None = None,
        rating: Decimal | None = None,
        completion_date: date | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        return self.run(
            training_id, "complete", actor_id=actor_id,
            score=score, rating=rating, completion_date=completion_date,
        )

    def fail(
        self,
        training_id: UUID,
        score: Decimal | None = None,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        return self.run(training_id, "fail", actor_id=actor_id, score=score, reason=reason)

    def cancel(self, training_id: UUID, reason: str | None = None, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(training_id, "cancel", actor_id=actor_id, reason=reason)

    def reactivate(self, training_id: UUID, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(training_id, "reactivate", actor_id=actor_id)

    def renew_certification(
        self, training_id: UUID, renewal_date: date | None = None, actor_id: str | None = None
    ) -> LifecycleEntity:
        return self.run(training_id, "renew", actor_id=actor_id, renewal_date=renewal_date)

    def progress(self, training_id: UUID) -> TrainingProgress:
        return progress(self.get(training_id))
