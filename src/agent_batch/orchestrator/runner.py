"""Coordinator: plans batches, dispatches them, and enforces the error budget."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path

from agent_batch.orchestrator.budget import ErrorBudget
from agent_batch.orchestrator.executor import ExecutionCore, failed_result
from agent_batch.orchestrator.models import (
    BatchGroup,
    ExecutionMode,
    ExecutionResult,
    RequestTemplate,
    RunSummary,
)
from agent_batch.orchestrator.modification_gate import GitModificationGate
from agent_batch.orchestrator.parallel import DEFAULT_MAX_WORKERS, ParallelExecutionManager
from agent_batch.orchestrator.planner import group_files, to_batch_groups, window_files

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RunPlan:
    """How the file list is windowed, grouped and dispatched."""

    batch_size: int = 1
    skip: int = 0
    first: int | None = None
    last: int | None = None
    mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    max_workers: int = DEFAULT_MAX_WORKERS
    skip_modified: bool = False


class Orchestrator:
    """Drives one run over a file list and streams results as they complete."""

    def __init__(
        self,
        *,
        core: ExecutionCore,
        budget: ErrorBudget,
        gate: GitModificationGate | None = None,
    ) -> None:
        self.core = core
        self.budget = budget
        self.gate = gate
        self.summary = RunSummary()

    def plan(self, files: Sequence[Path], plan: RunPlan) -> list[BatchGroup]:
        """Window, drop files from the modification sweep, then group."""

        selected = window_files(files, skip=plan.skip, first=plan.first, last=plan.last)
        if plan.skip_modified and self.gate is not None and plan.batch_size > 1:
            snapshot = self.gate.snapshot()
            kept = self.gate.filter_unmodified(selected, snapshot)
            self.summary.skipped_files += len(selected) - len(kept)
            selected = kept
        return to_batch_groups(group_files(selected, plan.batch_size))

    def run(
        self,
        files: Sequence[Path],
        template: RequestTemplate,
        plan: RunPlan,
    ) -> Iterator[ExecutionResult]:
        """Yield one result per executed batch until done or bailed out."""

        groups = self.plan(files, plan)
        self.summary.planned = len(groups)
        logger.info(
            "Planned %d batch(es) from %d file(s) for %s in %s mode",
            len(groups),
            len(files),
            template.tool,
            plan.mode.value,
        )

        with closing(self._dispatch(groups, template, plan)) as completed:
            for group, result in completed:
                if result is None:
                    self.summary.skipped_batches += 1
                    self.summary.skipped_files += len(group.files)
                    continue
                self._observe(result)
                yield result
                if self.budget.bailed_out:
                    self.summary.bailed_out = True
                    break

    def _observe(self, result: ExecutionResult) -> None:
        self.summary.processed += 1
        if result.success:
            self.summary.succeeded += 1
        else:
            self.summary.failed += 1
            self.summary.failed_exit_codes.append(result.exit_code)
        decision = self.budget.record(result.output_text, result.success)
        if decision.is_token_error:
            logger.warning("Quota or credit failure on %s", result.file)

    def _dispatch(
        self,
        groups: list[BatchGroup],
        template: RequestTemplate,
        plan: RunPlan,
    ) -> Iterator[tuple[BatchGroup, ExecutionResult | None]]:
        def _execute(group: BatchGroup) -> ExecutionResult | None:
            return self.core.execute(group, template)

        def _on_worker_error(group: BatchGroup, error: BaseException) -> ExecutionResult:
            return failed_result(group=group, template=template, message=f"Worker failed: {error}")

        if plan.mode is ExecutionMode.PARALLEL and len(groups) > 1:
            manager = ParallelExecutionManager(max_workers=plan.max_workers)
            yield from manager.run(
                groups,
                _execute,
                on_worker_error=_on_worker_error,
                cancel_inflight=self.core.cancel,
            )
            return

        for group in groups:
            try:
                result = _execute(group)
            except Exception as error:  # noqa: BLE001
                logger.exception("Batch %s crashed", group.identifier)
                result = _on_worker_error(group, error)
            yield group, result
