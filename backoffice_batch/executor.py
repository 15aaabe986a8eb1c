"""
BatchExecutor -- runs a lifecycle sweep item by item.

A run asks its task for the items to process (``prepare_items``) and
hands each one to ``execute_item``.  Every item commits or rolls back in
its own ``LifecycleAction`` unit of work, so one bad entity costs that
entity only.

Invariants enforced:
    - A failed item never stops the run.
    - An item that lost a version race is retried once, on reloaded state.
    - ``as_of`` and every timestamp come from the lifecycle clock.
    - ``succeeded + failed + skipped == total_items``.
"""

from __future__ import annotations

import time
from collections import Counter
from datetime import date, datetime
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from backoffice_batch.tasks.base import BatchItemInput, BatchTask, TaskRegistry, default_task_registry
from backoffice_batch.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchRunResult,
    BatchRunStatus,
)
from backoffice_kernel.exceptions import BackofficeError, ConflictError
from backoffice_kernel.logging_config import LogContext, get_logger

if TYPE_CHECKING:
    from backoffice_services.lifecycle_action import LifecycleAction

logger = get_logger("batch.executor")

CONFLICT_RETRIES = 1


def _elapsed_ms(since: float) -> int:
    return int((time.monotonic() - since) * 1000)


def _run_status(counts: Counter) -> BatchRunStatus:
    succeeded = counts[BatchItemStatus.SUCCEEDED]
    failed = counts[BatchItemStatus.FAILED]
    skipped = counts[BatchItemStatus.SKIPPED]
    if not failed and not skipped:
        return BatchRunStatus.COMPLETED
    if failed and not succeeded:
        return BatchRunStatus.FAILED
    return BatchRunStatus.PARTIALLY_COMPLETED


class BatchExecutor:
    """
    Runs registered batch tasks against one ``LifecycleAction``.

    Results are returned and logged, not stored; scheduling runs is the
    caller's business.
    """

    def __init__(
        self,
        lifecycle: LifecycleAction,
        task_registry: TaskRegistry | None = None,
    ):
        self._lifecycle = lifecycle
        self._clock = lifecycle.clock
        self._registry = task_registry or default_task_registry()

    @property
    def task_registry(self) -> TaskRegistry:
        return self._registry

    def run(
        self,
        task_type: str,
        parameters: dict[str, Any] | None = None,
        actor_id: str | None = None,
        correlation_id: str | None = None,
    ) -> BatchRunResult:
        """
        Run ``task_type`` for everything it selects on today's date.

        ``actor_id`` and ``correlation_id`` are added to ``parameters``
        unless already there.  A failing ``prepare_items`` gives a FAILED
        run with no items.  Raises KeyError for an unregistered task type.
        """
        task = self._registry.get(task_type)
        run_id = uuid4()
        correlation_id = correlation_id or str(run_id)
        params = {"actor_id": actor_id, "correlation_id": correlation_id, **(parameters or {})}

        as_of = self._clock.today()
        run = {
            "run_id": run_id,
            "task_type": task_type,
            "as_of": as_of,
            "started_at": self._clock.now(),
            "correlation_id": correlation_id,
        }
        t0 = time.monotonic()

        with LogContext.bind(correlation_id=correlation_id, actor_id=actor_id):
            logger.info(
                "batch_run_started",
                extra={"run_id": str(run_id), "task_type": task_type, "as_of": as_of.isoformat()},
            )
            try:
                items = task.prepare_items(params, self._lifecycle, as_of)
            except Exception as exc:
                logger.exception("batch_prepare_failed", extra={"run_id": str(run_id), "task_type": task_type})
                return BatchRunResult(
                    **run,
                    status=BatchRunStatus.FAILED,
                    total_items=0,
                    succeeded=0,
                    failed=0,
                    skipped=0,
                    completed_at=self._clock.now(),
                    duration_ms=_elapsed_ms(t0),
                    error_summary=f"prepare_items failed: {exc}",
                )

            results = tuple(self._run_item(task, item, params, as_of) for item in items)

        counts = Counter(r.status for r in results)
        status = _run_status(counts)
        failed = counts[BatchItemStatus.FAILED]
        outcome = BatchRunResult(
            **run,
            status=status,
            total_items=len(results),
            succeeded=counts[BatchItemStatus.SUCCEEDED],
            failed=failed,
            skipped=counts[BatchItemStatus.SKIPPED],
            item_results=results,
            completed_at=self._clock.now(),
            duration_ms=_elapsed_ms(t0),
            error_summary=f"{failed} item(s) failed" if failed else None,
        )
        logger.info(
            "batch_run_completed",
            extra={
                "run_id": str(run_id),
                "task_type": task_type,
                "status": status.value,
                "total_items": outcome.total_items,
                "succeeded": outcome.succeeded,
                "failed": outcome.failed,
                "skipped": outcome.skipped,
                "duration_ms": outcome.duration_ms,
                "correlation_id": correlation_id,
            },
        )
        return outcome

    def _run_item(
        self,
        task: BatchTask,
        item: BatchItemInput,
        parameters: dict[str, Any],
        as_of: date,
    ) -> BatchItemResult:
        t0 = time.monotonic()
        started_at = self._clock.now()
        retries = 0

        with LogContext.bind(entity_id=item.item_key):
            while True:
                try:
                    result = task.execute_item(item, parameters, self._lifecycle, as_of)
                    break
                except ConflictError as exc:
                    if retries >= CONFLICT_RETRIES:
                        return self._failure(item, exc.code, str(exc), retries, t0, started_at)
                    retries += 1
                    logger.info(
                        "batch_item_conflict_retry",
                        extra={"item_key": item.item_key, "attempt": retries},
                    )
                except BackofficeError as exc:
                    logger.warning(
                        "batch_item_failed",
                        extra={"item_key": item.item_key, "error_code": exc.code, "error": str(exc)},
                    )
                    return self._failure(item, exc.code, str(exc), retries, t0, started_at)
                except Exception as exc:
                    logger.exception("batch_item_unhandled_exception", extra={"item_key": item.item_key})
                    return self._failure(item, "UNHANDLED_EXCEPTION", str(exc), retries, t0, started_at)

        return BatchItemResult(
            item_index=item.item_index,
            item_key=item.item_key,
            status=result.status,
            action=result.action,
            error_code=result.error_code,
            error_message=result.error_message,
            result_data=result.result_data,
            retry_count=retries,
            duration_ms=_elapsed_ms(t0),
            started_at=started_at,
            completed_at=self._clock.now(),
        )

    def _failure(
        self,
        item: BatchItemInput,
        code: str,
        message: str,
        retries: int,
        t0: float,
        started_at: datetime,
    ) -> BatchItemResult:
        return BatchItemResult(
            item_index=item.item_index,
            item_key=item.item_key,
            status=BatchItemStatus.FAILED,
            action=item.payload.get("action"),
            error_code=code,
            error_message=message,
            retry_count=retries,
            duration_ms=_elapsed_ms(t0),
            started_at=started_at,
            completed_at=self._clock.now(),
        )
