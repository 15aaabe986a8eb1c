"""ORM models for the back-office kernel."""

from backoffice_kernel.models.domain_event import DomainEventModel
from backoffice_kernel.models.handler_receipt import HandlerReceiptModel
from backoffice_kernel.models.lifecycle_entity import LifecycleEntityModel

__all__ = [
    "DomainEventModel",
    "HandlerReceiptModel",
    "LifecycleEntityModel",
]
