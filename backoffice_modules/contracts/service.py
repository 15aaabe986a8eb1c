"""
Contracts Service (``backoffice_modules.contracts.service``).

Responsibility
--------------
Public entry point for provider contract operations and the contract
metrics query (value incl. commission and bonus, days remaining/elapsed,
completion, renewal probability, performance score, financial impact).

Architecture position
---------------------
**Modules layer** -- thin facade over ``LifecycleAction`` and the pure
``ContractMetricsCalculator``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from backoffice_engines.contract_metrics import ContractMetricsCalculator
from backoffice_kernel.domain.entity import EntityKind, LifecycleEntity
from backoffice_kernel.logging_config import get_logger
from backoffice_modules._service import LifecycleModuleService
from backoffice_modules.contracts.actions import contract_terms
from backoffice_modules.contracts.models import ContractSnapshot

logger = get_logger("modules.contracts.service")


class ContractsService(LifecycleModuleService):
    """Provider contracts."""

    kind = EntityKind.CONTRACT

    def create_contract(
        self,
        provider_id: str,
        contract_number: str | None,
        contract_value: Decimal | None,
        start_date: date | None,
        end_date: date | None,
        commission_rate: Decimal | None = None,
        bonus: Decimal | None = None,
        auto_renewal: bool = False,
        contract_type: str | None = None,
        actor_id: str | None = None,
        **extra_attributes: Any,
    ) -> LifecycleEntity:
        amounts = {}
        if contract_value is not None:
            amounts["contract_value"] = contract_value
        if bonus is not None:
            amounts["bonus"] = bonus
        attributes = {
            "contract_number": contract_number,
            "provider_id": provider_id,
            "auto_renewal": auto_renewal,
            "contract_type": contract_type,
            "commission_rate": commission_rate,
            **extra_attributes,
        }
        return self._create(
            attributes={k: v for k, v in attributes.items() if v is not None},
            amounts=amounts,
            effective_date=start_date,
            end_date=end_date,
            owner_id=provider_id,
            actor_id=actor_id,
        )

    def sign(self, contract_id: UUID, active_contracts: int | None = None, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(contract_id, "sign", actor_id=actor_id, active_contracts=active_contracts)

    def suspend(self, contract_id: UUID, reason: str | None = None, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(contract_id, "suspend", actor_id=actor_id, reason=reason)

    def resume(self, contract_id: UUID, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(contract_id, "resume", actor_id=actor_id)

    def flag_renewal(self, contract_id: UUID, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(contract_id, "flag_renewal", actor_id=actor_id)

    def renew(
        self,
        contract_id: UUID,
        contract_value: Decimal | None = None,
        period: int | None = None,
        unit: str | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        return self.run(
            contract_id, "renew", actor_id=actor_id,
            contract_value=contract_value, period=period, unit=unit,
        )

    def terminate(
        self,
        contract_id: UUID,
        termination_date: date | None = None,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        return self.run(
            contract_id, "terminate", actor_id=actor_id,
            termination_date=termination_date, reason=reason,
        )

    def expire(self, contract_id: UUID, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(contract_id, "expire", actor_id=actor_id)

    def cancel(self, contract_id: UUID, reason: str | None = None, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(contract_id, "cancel", actor_id=actor_id, reason=reason)

    def metrics(self, contract_id: UUID, as_of: date | None = None) -> ContractSnapshot:
        """Contract metrics at ``as_of`` (today by default).  Read-only."""
        entity = self.get(contract_id)
        as_of = as_of or self.lifecycle.clock.today()
        scheduler = self.lifecycle.scheduler
        metrics = ContractMetricsCalculator(scheduler).calculate(contract_terms(entity), as_of)
        snapshot = ContractSnapshot(
            contract_id=entity.id,
            status=entity.status,
            as_of=as_of,
            expiry_status=scheduler.classify_expiry(
                entity.end_date, as_of, scheduler.policy.renewal_window_days
            ),
            metrics=metrics,
        )
        logger.info(
            "contract_metrics_reported",
            extra={
                "contract_id": str(entity.id),
                "status": entity.status,
                "expiry_status": snapshot.expiry_status.value,
            },
        )
        return snapshot
