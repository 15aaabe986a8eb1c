"""
Payments Module (``backoffice_modules.payments``).

Provider payments: processing with late fees, completion against a
transaction id, failure and retry, refunds, reconciliation.
"""

from backoffice_modules.payments.models import PaymentMethod, PaymentStatus
from backoffice_modules.payments.workflows import PAYMENT_WORKFLOW

__all__ = ["PaymentMethod", "PaymentStatus", "PAYMENT_WORKFLOW"]
