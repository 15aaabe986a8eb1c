"""
Outcome records for batch sweeps.

A run reports one BatchItemResult per selected entity and a
BatchRunResult whose counters add up to ``total_items``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class BatchRunStatus(str, Enum):
    """
    COMPLETED when nothing failed or was skipped, FAILED when nothing
    succeeded and something failed, PARTIALLY_COMPLETED otherwise.
    """

    COMPLETED = "completed"
    PARTIALLY_COMPLETED = "partially_completed"
    FAILED = "failed"


class BatchItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # no longer eligible, or renewal left to a person


@dataclass(frozen=True)
class BatchItemResult:
    """
    What happened to one entity.  ``retry_count`` is 1 after a retried
    version conflict; ``error_code`` is the lifecycle error code.
    """

    item_index: int
    item_key: str  # entity id
    status: BatchItemStatus
    action: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None
    retry_count: int = 0
    duration_ms: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True)
class BatchRunResult:
    """Returned by ``BatchExecutor.run()``; ``error_summary`` is set when selection failed."""

    run_id: UUID
    task_type: str
    status: BatchRunStatus
    as_of: date
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BatchItemResult, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    correlation_id: str | None = None
    error_summary: str | None = None

    def items_with_status(self, status: BatchItemStatus) -> tuple[BatchItemResult, ...]:
        return tuple(r for r in self.item_results if r.status == status)
