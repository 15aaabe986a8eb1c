"""
Payments Service (``backoffice_modules.payments.service``).

Public entry point for provider payment operations.  Thin facade over
``LifecycleAction``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from backoffice_kernel.domain.entity import EntityKind, LifecycleEntity
from backoffice_modules._service import LifecycleModuleService


class PaymentsService(LifecycleModuleService):
    """Provider payments."""

    kind = EntityKind.PAYMENT

    def create_payment(
        self,
        provider_id: str,
        amount: Decimal,
        payment_method: str,
        payment_date: date | None = None,
        due_date: date | None = None,
        invoice_id: UUID | None = None,
        reference_number: str | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        attributes = {"provider_id": provider_id, "payment_method": payment_method}
        if invoice_id is not None:
            attributes["invoice_id"] = str(invoice_id)
        if reference_number is not None:
            attributes["reference_number"] = reference_number
        return self._create(
            attributes=attributes,
            amounts={"amount": amount},
            effective_date=payment_date,
            end_date=due_date,
            owner_id=provider_id,
            actor_id=actor_id,
        )

    def process(self, payment_id: UUID, transaction_id: str | None = None, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(payment_id, "process", actor_id=actor_id, transaction_id=transaction_id)

    def complete(self, payment_id: UUID, transaction_id: str | None = None, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(payment_id, "complete", actor_id=actor_id, transaction_id=transaction_id)

    def fail(self, payment_id: UUID, reason: str | None = None, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(payment_id, "fail", actor_id=actor_id, reason=reason)

    def cancel(self, payment_id: UUID, reason: str | None = None, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(payment_id, "cancel", actor_id=actor_id, reason=reason)

    def refund(
        self,
        payment_id: UUID,
        amount: Decimal | None = None,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        return self.run(payment_id, "refund", actor_id=actor_id, amount=amount, reason=reason)

    def retry(self, payment_id: UUID, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(payment_id, "retry", actor_id=actor_id)

    def reconcile(
        self,
        payment_id: UUID,
        reconciliation_reference: str,
        statement_amount: Decimal | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        return self.run(
            payment_id, "reconcile", actor_id=actor_id,
            reconciliation_reference=reconciliation_reference,
            statement_amount=statement_amount,
        )
