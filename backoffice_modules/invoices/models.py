"""
Invoices Domain Models (``backoffice_modules.invoices.models``).

Responsibility
--------------
Invoice status enum and the total breakdown
(``subtotal + tax + shipping - discount``).

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from backoffice_kernel.domain.entity import ZERO, round_money


class InvoiceStatus(Enum):
    """Provider invoice states.  Must align with ``INVOICE_WORKFLOW.states``."""
    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"
    PAID = "paid"
    CANCELLED = "cancelled"


BREAKDOWN_FIELDS = ("subtotal", "tax", "shipping", "discount")


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal

    @property
    def total(self) -> Decimal:
        return round_money(self.subtotal + self.tax + self.shipping - self.discount)

    @classmethod
    def from_amounts(cls, amounts: Mapping[str, Decimal]) -> "InvoiceTotals":
        return cls(**{name: amounts.get(name, ZERO) for name in BREAKDOWN_FIELDS})
