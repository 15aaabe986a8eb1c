"""
Batch processing for lifecycle sweeps.

``BatchExecutor`` runs a registered ``BatchTask`` item by item, each item
in its own ``LifecycleAction`` unit of work.  The standard tasks mark
overdue invoices, renew expiring benefits and keep contract renewal
statuses current.
"""

from backoffice_batch.executor import BatchExecutor
from backoffice_batch.tasks import (
    BatchItemInput,
    BatchTask,
    BatchTaskResult,
    ContractRenewalTask,
    ExpiringBenefitsTask,
    OverdueInvoicesTask,
    TaskRegistry,
    default_task_registry,
)
from backoffice_batch.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchRunResult,
    BatchRunStatus,
)

__all__ = [
    "BatchExecutor",
    "BatchItemInput",
    "BatchItemResult",
    "BatchItemStatus",
    "BatchRunResult",
    "BatchRunStatus",
    "BatchTask",
    "BatchTaskResult",
    "ContractRenewalTask",
    "ExpiringBenefitsTask",
    "OverdueInvoicesTask",
    "TaskRegistry",
    "default_task_registry",
]
