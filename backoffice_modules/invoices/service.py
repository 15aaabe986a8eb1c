"""
Invoices Service (``backoffice_modules.invoices.service``).

Public entry point for provider invoice operations.  Thin facade over
``LifecycleAction``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from backoffice_kernel.domain.entity import EntityKind, LifecycleEntity
from backoffice_modules._service import LifecycleModuleService


class InvoicesService(LifecycleModuleService):
    """Provider invoices."""

    kind = EntityKind.INVOICE

    def create_invoice(
        self,
        provider_id: str,
        invoice_number: str,
        subtotal: Decimal | None,
        tax: Decimal | None = None,
        shipping: Decimal | None = None,
        discount: Decimal | None = None,
        invoice_date: date | None = None,
        due_date: date | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        amounts = {
            name: value
            for name, value in (
                ("subtotal", subtotal),
                ("tax", tax),
                ("shipping", shipping),
                ("discount", discount),
            )
            if value is not None
        }
        return self._create(
            attributes={"invoice_number": invoice_number, "provider_id": provider_id},
            amounts=amounts,
            effective_date=invoice_date,
            end_date=due_date,
            owner_id=provider_id,
            actor_id=actor_id,
        )

    def send(self, invoice_id: UUID, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(invoice_id, "send", actor_id=actor_id)

    def record_partial_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        payment_date: date | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        return self.run(
            invoice_id, "record_partial_payment", actor_id=actor_id,
            amount=amount, payment_date=payment_date,
        )

    def mark_overdue(self, invoice_id: UUID, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(invoice_id, "mark_overdue", actor_id=actor_id)

    def mark_paid(
        self,
        invoice_id: UUID,
        payment_date: date | None = None,
        payment_reference: str | None = None,
        actor_id: str | None = None,
    ) -> LifecycleEntity:
        return self.run(
            invoice_id, "mark_paid", actor_id=actor_id,
            payment_date=payment_date, payment_reference=payment_reference,
        )

    def cancel(self, invoice_id: UUID, reason: str | None = None, actor_id: str | None = None) -> LifecycleEntity:
        return self.run(invoice_id, "cancel", actor_id=actor_id, reason=reason)
