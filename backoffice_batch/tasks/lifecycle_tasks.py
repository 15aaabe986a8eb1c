"""
Batch tasks: lifecycle sweeps (overdue invoices, expiring benefits,
contract renewals).

Each sweep selects entities of one kind by status, decides per entity
which lifecycle action applies on ``as_of``, and runs it through
``LifecycleAction`` so the usual guards, preconditions and events apply.
The decision is made again at execution time against freshly loaded
state; an entity that no longer qualifies is skipped.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Any

from backoffice_batch.tasks.base import BatchItemInput, BatchTaskResult
from backoffice_engines.scheduling import TemporalScheduler
from backoffice_kernel.domain.entity import EntityKind, LifecycleEntity
from backoffice_kernel.logging_config import get_logger
from backoffice_kernel.services.store import UnitOfWork

if TYPE_CHECKING:
    from backoffice_services.lifecycle_action import LifecycleAction

logger = get_logger("batch.tasks")


class _LifecycleSweep:
    """Shared selection and execution for status-driven sweeps."""

    kind: EntityKind
    statuses: tuple[str, ...] = ()

    def choose_action(
        self,
        entity: LifecycleEntity,
        parameters: dict[str, Any],
        scheduler: TemporalScheduler,
        as_of: date,
    ) -> str | None:
        raise NotImplementedError

    def action_inputs(self, entity: LifecycleEntity, action: str, parameters: dict[str, Any]) -> dict[str, Any]:
        return {}

    def prepare_items(
        self,
        parameters: dict[str, Any],
        lifecycle: LifecycleAction,
        as_of: date,
    ) -> tuple[BatchItemInput, ...]:
        limit = parameters.get("limit")
        with UnitOfWork(lifecycle.session_factory, lifecycle.clock) as uow:
            candidates = uow.store.find_by_status(self.kind, self.statuses, limit=limit)

        items = []
        for entity in candidates:
            action = self.choose_action(entity, parameters, lifecycle.scheduler, as_of)
            if action is None:
                continue
            items.append(
                BatchItemInput(
                    item_index=len(items),
                    item_key=str(entity.id),
                    payload={"entity_id": str(entity.id), "action": action},
                )
            )
        return tuple(items)

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        lifecycle: LifecycleAction,
        as_of: date,
    ) -> BatchTaskResult:
        from backoffice_services.lifecycle_action import LifecycleCommand

        entity = lifecycle.get(self.kind, item.payload["entity_id"])
        action = self.choose_action(entity, parameters, lifecycle.scheduler, as_of)
        if action is None:
            return BatchTaskResult.skipped("no_longer_eligible", status=entity.status)

        result = lifecycle.execute(
            LifecycleCommand(
                kind=self.kind,
                entity_id=entity.id,
                action=action,
                inputs=self.action_inputs(entity, action, parameters),
                actor_id=parameters.get("actor_id"),
                correlation_id=parameters.get("correlation_id"),
            )
        )
        return BatchTaskResult.succeeded(
            action,
            entity_id=str(result.id),
            from_status=entity.status,
            to_status=result.status,
            version=result.version,
        )


class OverdueInvoicesTask(_LifecycleSweep):
    """Marks sent and partially paid invoices overdue once their due date passes."""

    kind = EntityKind.INVOICE
    statuses = ("sent", "partially_paid")

    task_type = "invoices.mark_overdue"
    description = "Mark invoices past their due date as overdue"

    def choose_action(self, entity, parameters, scheduler, as_of):
        if entity.status not in self.statuses:
            return None
        if entity.end_date is None or entity.end_date >= as_of:
            return None
        return "mark_overdue"


class ExpiringBenefitsTask(_LifecycleSweep):
    """
    Renews enrolled benefits whose coverage ends inside the renewal window.

    Parameters:
        auto_renew  when false (the default) due benefits are reported as
                    skipped with their expiry status instead of renewed
        period, unit  renewal term passed to the renew action
    """

    kind = EntityKind.BENEFIT
    statuses = ("enrolled",)

    task_type = "benefits.renew_expiring"
    description = "Renew enrolled benefits nearing their end date"

    def choose_action(self, entity, parameters, scheduler, as_of):
        if entity.status != "enrolled":
            return None
        if not scheduler.within_renewal_window(entity.end_date, as_of):
            return None
        return "renew"

    def action_inputs(self, entity, action, parameters):
        return {k: parameters[k] for k in ("period", "unit") if parameters.get(k) is not None}

    def execute_item(self, item, parameters, lifecycle, as_of):
        if parameters.get("auto_renew"):
            return super().execute_item(item, parameters, lifecycle, as_of)
        entity = lifecycle.get(self.kind, item.payload["entity_id"])
        expiry = lifecycle.scheduler.classify_expiry(
            entity.end_date, as_of, lifecycle.scheduler.policy.renewal_window_days
        )
        logger.info(
            "benefit_renewal_due",
            extra={
                "entity_id": str(entity.id),
                "end_date": entity.end_date.isoformat() if entity.end_date else None,
                "expiry_status": expiry.value,
            },
        )
        return BatchTaskResult.skipped("auto_renew_disabled", expiry_status=expiry.value)


class ContractRenewalTask(_LifecycleSweep):
    """
    Keeps contract statuses in step with their end dates.

    active, end date passed           -> expire
    active, inside renewal window     -> flag_renewal
    pending_renewal, end date passed  -> expire
    pending_renewal, auto_renewal set -> renew
    """

    kind = EntityKind.CONTRACT
    statuses = ("active", "pending_renewal")

    task_type = "contracts.renewal_sweep"
    description = "Flag contracts due for renewal and expire lapsed ones"

    def choose_action(self, entity, parameters, scheduler, as_of):
        if entity.status not in self.statuses:
            return None
        end = entity.end_date
        if end is not None and end < as_of:
            return "expire"
        if entity.status == "active":
            return "flag_renewal" if scheduler.within_renewal_window(end, as_of) else None
        if entity.attr("auto_renewal", False):
            return "renew"
        return None
