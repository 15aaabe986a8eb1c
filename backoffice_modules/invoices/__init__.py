"""
Invoices Module (``backoffice_modules.invoices``).

Provider invoices: total breakdown, sending, partial payments, overdue
marking, settlement with late fees, cancellation.
"""

from backoffice_modules.invoices.models import InvoiceStatus, InvoiceTotals
from backoffice_modules.invoices.workflows import INVOICE_WORKFLOW

__all__ = ["InvoiceStatus", "InvoiceTotals", "INVOICE_WORKFLOW"]
