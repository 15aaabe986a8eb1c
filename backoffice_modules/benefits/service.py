"""
Benefits Service (``backoffice_modules.benefits.service``).

Responsibility
--------------
Public entry point for benefit enrollment operations: create, enroll,
cancel, terminate, renew, plus eligibility checks and payroll deduction
lookups.

Architecture position
---------------------
**Modules layer** -- thin facade.  State changes go through
``LifecycleAction``; read-only helpers open their own session.

Usage::

    service = BenefitsService(lifecycle)
    benefit = service.create_enrollment(
        employee_id="E-100",
        benefit_type="health",
        coverage_level="spouse",
        network_type="ppo",
        base_premium=Decimal("500.00"),
        effective_date=date(2024, 2, 1),
        end_date=date(2025, 1, 31),
    )
    benefit = service.enroll(benefit.id, actor_id="hr-admin")
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from backoffice_kernel.domain.entity import EntityKind, LifecycleEntity
from backoffice_kernel.exceptions import ValidationError
from backoffice_kernel.logging_config import get_logger
from backoffice_modules._service import LifecycleModuleService
from backoffice_modules.benefits.actions import check_eligibility
from backoffice_modules.benefits.models import EligibilityResult, PayrollDeduction
from backoffice_modules.benefits.orm import PayrollDeductionModel

logger = get_logger("modules.benefits.service")


class BenefitsService(LifecycleModuleService):
    """Employee benefit enrollments."""

    kind = EntityKind.BENEFIT

    def create_enrollment(
        self,
        employee_id: str,
        benefit_type: str,
        coverage_level: str,
        network_type: str,
        base_premium: Decimal,
        effective_date: date,
        end_date: date | None = None,
        employee_contribution: Decimal | None = None,
        employer_contribution: Decimal | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        amounts = {"base_premium": base_premium}
        if employee_contribution is not None:
            amounts["employee_contribution"] = employee_contribution
        if employer_contribution is not None:
            amounts["employer_contribution"] = employer_contribution
        return self._create(
            attributes={
                "benefit_type": benefit_type,
                "coverage_level": coverage_level,
                "network_type": network_type,
            },
            amounts=amounts,
            effective_date=effective_date,
            end_date=end_date,
            owner_id=employee_id,
            actor_id=actor_id,
        )

    def enroll(
        self,
        benefit_id: UUID,
        enrolled_count: int | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        return self.run(benefit_id, "enroll", actor_id=actor_id, enrolled_count=enrolled_count)

    def cancel(self, benefit_id: UUID, reason: str | None = None, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(benefit_id, "cancel", actor_id=actor_id, reason=reason)

    def terminate(
        self,
        benefit_id: UUID,
        termination_date: date | None = None,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        return self.run(
            benefit_id, "terminate", actor_id=actor_id,
            termination_date=termination_date, reason=reason,
        )

    def renew(
        self,
        benefit_id: UUID,
        base_premium: Decimal | None = None,
        period: int | None = None,
        unit: str | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        return self.run(
            benefit_id, "renew", actor_id=actor_id,
            base_premium=base_premium, period=period, unit=unit,
        )

    def check_eligibility(self, employee_id: str) -> EligibilityResult:
        directory = self.lifecycle.directory
        if directory is None:
            raise ValidationError("directory", "no person directory configured")
        result = check_eligibility(
            directory.lookup(employee_id),
            employee_id,
            self.lifecycle.config,
            self.lifecycle.clock.today(),
        )
        logger.info(
            "benefit_eligibility_checked",
            extra={
                "employee_id": employee_id,
                "eligible": result.eligible,
                "reasons": list(result.reasons),
            },
        )
        return result

    def payroll_deduction(self, benefit_id: UUID) -> PayrollDeduction | None:
        with self.lifecycle.session_factory() as session:
            row = session.execute(
                select(PayrollDeductionModel).where(PayrollDeductionModel.benefit_id == benefit_id)
            ).scalar_one_or_none()
            return row.to_dto() if row is not None else None
