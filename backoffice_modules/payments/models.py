"""
Payments Domain Models (``backoffice_modules.payments.models``).

Status and method enums for provider payments.  Pure data definitions.
"""

from enum import Enum


class PaymentStatus(Enum):
    """Provider payment states.  Must align with ``PAYMENT_WORKFLOW.states``."""
    PENDING = "pending"
    PROCESSED = "processed"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class PaymentMethod(Enum):
    BANK_TRANSFER = "bank_transfer"
    WIRE_TRANSFER = "wire_transfer"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    CASH = "cash"


PAYMENT_METHODS = tuple(m.value for m in PaymentMethod)
