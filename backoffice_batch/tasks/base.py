"""
BatchTask protocol, item DTOs and TaskRegistry.

Contract:
    A task selects the entities a sweep should touch (``prepare_items``)
    and processes one of them (``execute_item``).  Selection happens in a
    read-only unit of work; every change goes through ``LifecycleAction``
    so guards, preconditions and events apply as for interactive calls.

Invariants enforced:
    - One task per ``task_type``.
    - ``as_of`` is handed in by the executor from the lifecycle clock.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from backoffice_batch.types import BatchItemStatus

if TYPE_CHECKING:
    from backoffice_services.lifecycle_action import LifecycleAction


@dataclass(frozen=True)
class BatchItemInput:
    """One selected entity.  ``payload`` carries the entity id and the chosen action."""

    item_index: int
    item_key: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BatchTaskResult:
    """Outcome of ``execute_item``; errors are raised, not returned."""

    status: BatchItemStatus
    action: str | None = None
    result_data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def succeeded(cls, action: str, **data: Any) -> BatchTaskResult:
        return cls(status=BatchItemStatus.SUCCEEDED, action=action, result_data=data)

    @classmethod
    def skipped(cls, reason: str, **data: Any) -> BatchTaskResult:
        return cls(status=BatchItemStatus.SKIPPED, result_data={**data, "reason": reason})


@runtime_checkable
class BatchTask(Protocol):
    """
    Interface of a batch task.

    Tasks let lifecycle errors propagate; the executor records them and
    retries once on ConflictError.
    """

    task_type: str
    description: str

    def prepare_items(
        self,
        parameters: dict[str, Any],
        lifecycle: LifecycleAction,
        as_of: date,
    ) -> tuple[BatchItemInput, ...]: ...

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        lifecycle: LifecycleAction,
        as_of: date,
    ) -> BatchTaskResult: ...


class TaskRegistry:
    """Tasks keyed by ``task_type``."""

    def __init__(self, tasks: Iterable[BatchTask] = ()) -> None:
        self._tasks: dict[str, BatchTask] = {}
        for task in tasks:
            self.register(task)

    def register(self, task: BatchTask) -> None:
        """Raises ValueError when ``task.task_type`` is taken."""
        if task.task_type in self._tasks:
            raise ValueError(f"Task type '{task.task_type}' is already registered")
        self._tasks[task.task_type] = task

    def get(self, task_type: str) -> BatchTask:
        """Raises KeyError naming the registered types when ``task_type`` is unknown."""
        task = self._tasks.get(task_type)
        if task is None:
            raise KeyError(
                f"No task registered for type '{task_type}'. "
                f"Available: {list(self.list_tasks())}"
            )
        return task

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(sorted(self._tasks))

    def __iter__(self) -> Iterator[BatchTask]:
        return iter(self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._tasks


def default_task_registry() -> TaskRegistry:
    """The overdue-invoice, expiring-benefit and contract-renewal sweeps."""
    from backoffice_batch.tasks.lifecycle_tasks import (
        ContractRenewalTask,
        ExpiringBenefitsTask,
        OverdueInvoicesTask,
    )

    return TaskRegistry([OverdueInvoicesTask(), ExpiringBenefitsTask(), ContractRenewalTask()])
