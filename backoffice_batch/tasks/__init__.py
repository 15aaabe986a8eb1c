"""Batch task implementations and the task registry."""

from backoffice_batch.tasks.base import (
    BatchItemInput,
    BatchTask,
    BatchTaskResult,
    TaskRegistry,
    default_task_registry,
)
from backoffice_batch.tasks.lifecycle_tasks import (
    ContractRenewalTask,
    ExpiringBenefitsTask,
    OverdueInvoicesTask,
)

__all__ = [
    "BatchItemInput",
    "BatchTask",
    "BatchTaskResult",
    "ContractRenewalTask",
    "ExpiringBenefitsTask",
    "OverdueInvoicesTask",
    "TaskRegistry",
    "default_task_registry",
]
