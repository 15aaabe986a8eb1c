"""
Tests for BatchExecutor and TaskRegistry.

Uses scripted tasks so per-item isolation, the single conflict retry and
run-status aggregation can be checked without real entities.
"""

from datetime import date

import pytest

from backoffice_batch import (
    BatchExecutor,
    BatchItemInput,
    BatchItemStatus,
    BatchRunStatus,
    BatchTask,
    BatchTaskResult,
    TaskRegistry,
    default_task_registry,
)
from backoffice_kernel.exceptions import ConflictError, ValidationError

TODAY = date(2024, 6, 3)


class ScriptedTask:
    """Runs each item according to a script of outcomes keyed by item_key.

    An outcome is either a BatchItemStatus or a list of exceptions to raise
    on successive calls before succeeding.
    """

    task_type = "test.scripted"
    description = "Scripted outcomes"

    def __init__(self, script):
        self.script = script
        self.calls = {}
        self.seen_as_of = []

    def prepare_items(self, parameters, lifecycle, as_of):
        self.seen_as_of.append(as_of)
        return tuple(
            BatchItemInput(item_index=i, item_key=key, payload={"action": "poke"})
            for i, key in enumerate(self.script)
        )

    def execute_item(self, item, parameters, lifecycle, as_of):
        self.calls[item.item_key] = self.calls.get(item.item_key, 0) + 1
        outcome = self.script[item.item_key]
        if isinstance(outcome, list):
            attempt = self.calls[item.item_key] - 1
            if attempt < len(outcome):
                raise outcome[attempt]
            return BatchTaskResult(status=BatchItemStatus.SUCCEEDED, action="poke")
        return BatchTaskResult(
            status=outcome,
            action="poke",
            result_data={"actor_id": parameters["actor_id"]},
        )


class BrokenPrepareTask(ScriptedTask):
    task_type = "test.broken_prepare"

    def prepare_items(self, parameters, lifecycle, as_of):
        raise RuntimeError("selection query failed")


def _executor(lifecycle, *tasks):
    registry = TaskRegistry()
    for task in tasks:
        registry.register(task)
    return BatchExecutor(lifecycle, registry)


class TestTaskRegistry:
    def test_default_registry_holds_sweeps(self):
        registry = default_task_registry()
        assert registry.list_tasks() == (
            "benefits.renew_expiring",
            "contracts.renewal_sweep",
            "invoices.mark_overdue",
        )
        assert len(registry) == 3
        assert "invoices.mark_overdue" in registry
        assert all(isinstance(registry.get(t), BatchTask) for t in registry.list_tasks())

    def test_duplicate_rejected(self):
        registry = TaskRegistry()
        registry.register(ScriptedTask({}))
        with pytest.raises(ValueError):
            registry.register(ScriptedTask({}))

    def test_seeded_and_iterable(self):
        task = ScriptedTask({})
        registry = TaskRegistry([task])
        assert list(registry) == [task]
        with pytest.raises(ValueError):
            TaskRegistry([task, ScriptedTask({})])

    def test_result_constructors(self):
        done = BatchTaskResult.succeeded("renew", version=2)
        assert (done.status, done.action, done.result_data) == (
            BatchItemStatus.SUCCEEDED, "renew", {"version": 2},
        )
        skipped = BatchTaskResult.skipped("no_longer_eligible", status="paid")
        assert skipped.status == BatchItemStatus.SKIPPED
        assert skipped.action is None
        assert skipped.result_data == {"status": "paid", "reason": "no_longer_eligible"}

    def test_unknown_task_lists_available(self):
        registry = TaskRegistry()
        registry.register(ScriptedTask({}))
        with pytest.raises(KeyError) as exc_info:
            registry.get("test.missing")
        assert "test.scripted" in str(exc_info.value)


class TestRun:
    def test_all_succeed(self, lifecycle):
        task = ScriptedTask({"a": BatchItemStatus.SUCCEEDED, "b": BatchItemStatus.SUCCEEDED})
        result = _executor(lifecycle, task).run("test.scripted", actor_id="scheduler")

        assert result.status == BatchRunStatus.COMPLETED
        assert (result.total_items, result.succeeded, result.failed, result.skipped) == (2, 2, 0, 0)
        assert result.as_of == TODAY
        assert task.seen_as_of == [TODAY]
        assert result.error_summary is None
        assert [r.item_key for r in result.item_results] == ["a", "b"]
        assert result.item_results[0].result_data == {"actor_id": "scheduler"}

    def test_nothing_to_do_is_completed(self, lifecycle):
        result = _executor(lifecycle, ScriptedTask({})).run("test.scripted")
        assert result.status == BatchRunStatus.COMPLETED
        assert result.total_items == 0

    def test_failure_is_isolated(self, lifecycle):
        task = ScriptedTask({
            "a": BatchItemStatus.SUCCEEDED,
            "b": [ValidationError("amount", "must be positive")] * 3,
            "c": BatchItemStatus.SUCCEEDED,
        })
        result = _executor(lifecycle, task).run("test.scripted")

        assert result.status == BatchRunStatus.PARTIALLY_COMPLETED
        assert (result.succeeded, result.failed) == (2, 1)
        assert result.error_summary == "1 item(s) failed"
        (failed,) = result.items_with_status(BatchItemStatus.FAILED)
        assert failed.item_key == "b"
        assert failed.error_code == "VALIDATION_ERROR"
        assert failed.action == "poke"
        assert task.calls["b"] == 1

    def test_every_item_failing_fails_the_run(self, lifecycle):
        task = ScriptedTask({"a": [RuntimeError("boom")] * 2})
        result = _executor(lifecycle, task).run("test.scripted")
        assert result.status == BatchRunStatus.FAILED
        (item,) = result.item_results
        assert item.error_code == "UNHANDLED_EXCEPTION"
        assert item.error_message == "boom"

    def test_skipped_only_is_partial(self, lifecycle):
        result = _executor(lifecycle, ScriptedTask({"a": BatchItemStatus.SKIPPED})).run("test.scripted")
        assert result.status == BatchRunStatus.PARTIALLY_COMPLETED
        assert result.skipped == 1

    def test_counts_add_up(self, lifecycle):
        task = ScriptedTask({
            "a": BatchItemStatus.SUCCEEDED,
            "b": BatchItemStatus.SKIPPED,
            "c": [RuntimeError("x")] * 2,
        })
        result = _executor(lifecycle, task).run("test.scripted")
        assert result.succeeded + result.failed + result.skipped == result.total_items == 3

    def test_unknown_task_type(self, lifecycle):
        with pytest.raises(KeyError):
            _executor(lifecycle).run("test.missing")

    def test_prepare_failure(self, lifecycle, captured_logs):
        result = _executor(lifecycle, BrokenPrepareTask({})).run("test.broken_prepare")
        assert result.status == BatchRunStatus.FAILED
        assert result.total_items == 0
        assert "selection query failed" in result.error_summary
        assert any(r["message"] == "batch_prepare_failed" for r in captured_logs())

    def test_correlation_id(self, lifecycle):
        executor = _executor(lifecycle, ScriptedTask({}))
        assert executor.run("test.scripted", correlation_id="sweep-1").correlation_id == "sweep-1"
        generated = executor.run("test.scripted")
        assert generated.correlation_id == str(generated.run_id)


class TestConflictRetry:
    def test_retried_once(self, lifecycle, captured_logs):
        task = ScriptedTask({"a": [ConflictError("benefit", "a")]})
        result = _executor(lifecycle, task).run("test.scripted")

        (item,) = result.item_results
        assert item.status == BatchItemStatus.SUCCEEDED
        assert item.retry_count == 1
        assert task.calls["a"] == 2
        retries = [r for r in captured_logs() if r["message"] == "batch_item_conflict_retry"]
        assert len(retries) == 1

    def test_second_conflict_fails(self, lifecycle):
        task = ScriptedTask({"a": [ConflictError("benefit", "a")] * 2})
        result = _executor(lifecycle, task).run("test.scripted")

        (item,) = result.item_results
        assert item.status == BatchItemStatus.FAILED
        assert item.error_code == "OPTIMISTIC_LOCK_CONFLICT"
        assert item.retry_count == 1
        assert task.calls["a"] == 2


class TestLogging:
    def test_run_summary_logged(self, lifecycle, captured_logs):
        task = ScriptedTask({"a": BatchItemStatus.SUCCEEDED})
        _executor(lifecycle, task).run("test.scripted", correlation_id="sweep-2")

        (summary,) = [r for r in captured_logs() if r["message"] == "batch_run_completed"]
        assert summary["logger"] == "backoffice_kernel.batch.executor"
        assert summary["status"] == "completed"
        assert summary["succeeded"] == 1
        assert summary["correlation_id"] == "sweep-2"
