from __future__ import annotations

import threading
import time
from datetime import UTC, datetime
from pathlib import Path

import allure
import pytest

from agent_batch.orchestrator.models import BatchGroup, ExecutionResult
from agent_batch.orchestrator.parallel import ParallelExecutionManager
from agent_batch.orchestrator.planner import group_files, to_batch_groups

pytestmark = [
    allure.epic("Batch Execution"),
    allure.feature("Parallel Dispatch"),
]


def _result(group: BatchGroup, *, success: bool = True) -> ExecutionResult:
    now = datetime.now(tz=UTC)
    return ExecutionResult(
        file=group.identifier,
        files=group.files,
        tool="claude",
        model="sonnet",
        stdout="",
        stderr="" if success else "boom",
        started_at=now,
        finished_at=now,
        success=success,
        exit_code=0 if success else 1,
    )


def _groups(count: int, batch_size: int) -> list[BatchGroup]:
    files = [Path(f"f{index}.md") for index in range(1, count + 1)]
    return to_batch_groups(group_files(files, batch_size))


def test_every_group_runs_exactly_once_within_worker_limit() -> None:
    groups = _groups(7, 3)
    seen: list[int] = []
    active = 0
    peak = 0
    lock = threading.Lock()

    def _execute(group: BatchGroup) -> ExecutionResult:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
            seen.append(group.index)
        time.sleep(0.02)
        with lock:
            active -= 1
        return _result(group)

    manager = ParallelExecutionManager(max_workers=2)
    completed = list(manager.run(groups, _execute, on_worker_error=_on_error))

    assert [len(group.files) for group in groups] == [3, 3, 1]
    assert sorted(seen) == [1, 2, 3]
    assert sorted(group.index for group, _ in completed) == [1, 2, 3]
    assert all(result is not None and result.success for _, result in completed)
    assert peak <= 2


def test_worker_crash_becomes_a_failed_result() -> None:
    groups = _groups(3, 1)

    def _execute(group: BatchGroup) -> ExecutionResult:
        if group.index == 2:
            raise RuntimeError("worker exploded")
        return _result(group)

    completed = dict(
        ParallelExecutionManager(max_workers=3).run(groups, _execute, on_worker_error=_on_error),
    )

    crashed = completed[groups[1]]
    assert crashed is not None
    assert not crashed.success
    assert "worker exploded" in crashed.stderr
    assert completed[groups[0]] is not None
    assert completed[groups[0]].success


def test_stopping_early_drops_queue_and_cancels_inflight() -> None:
    groups = _groups(6, 1)
    started: list[int] = []
    cancelled = threading.Event()
    lock = threading.Lock()

    def _execute(group: BatchGroup) -> ExecutionResult:
        with lock:
            started.append(group.index)
        if group.index != 1:
            cancelled.wait(timeout=5)
        return _result(group)

    stream = ParallelExecutionManager(max_workers=2).run(
        groups,
        _execute,
        on_worker_error=_on_error,
        cancel_inflight=cancelled.set,
    )
    first_group, _ = next(stream)
    stream.close()

    assert first_group.index == 1
    assert cancelled.is_set()
    assert len(started) <= 3


def test_max_workers_must_be_positive() -> None:
    with pytest.raises(ValueError, match="max_workers"):
        ParallelExecutionManager(max_workers=0)


def _on_error(group: BatchGroup, error: BaseException) -> ExecutionResult:
    now = datetime.now(tz=UTC)
    return ExecutionResult(
        file=group.identifier,
        files=group.files,
        tool="claude",
        model="sonnet",
        stdout="",
        stderr=f"Worker failed: {error}",
        started_at=now,
        finished_at=now,
        success=False,
        exit_code=1,
    )
