"""Execution core: one batch in, one normalized result out."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

from agent_batch.orchestrator.backend import builder_for
from agent_batch.orchestrator.backend.base import BuiltCommand, CommandRunner
from agent_batch.orchestrator.models import (
    AttemptOutcome,
    BatchGroup,
    ExecutionRequest,
    ExecutionResult,
    RequestTemplate,
    RetryStatus,
    ToolDescriptor,
)
from agent_batch.orchestrator.modification_gate import GitModificationGate
from agent_batch.orchestrator.prompts import assemble_prompt
from agent_batch.orchestrator.registry import ToolRegistry
from agent_batch.orchestrator.retry import RetryEngine, RetryPolicy

logger = logging.getLogger(__name__)

WORKER_FAILURE_EXIT_CODE = 1


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class ExecutionCore:
    """Runs one batch through the selected tool.

    The core never edits target files; the external tool does. It only
    observes the exit code and captured text. Tool failures come back as
    failed results, never as exceptions.
    """

    def __init__(
        self,
        *,
        registry: ToolRegistry,
        runner: CommandRunner,
        retry_policy: RetryPolicy | None = None,
        gate: GitModificationGate | None = None,
        skip_modified: bool = False,
    ) -> None:
        if skip_modified and gate is None:
            raise ValueError("skip_modified requires a modification gate.")
        self.registry = registry
        self.runner = runner
        self.retry_policy = retry_policy or RetryPolicy()
        self.gate = gate
        self.skip_modified = skip_modified
        self.invocations = 0
        self._invocations_lock = threading.Lock()

    def execute(self, group: BatchGroup, template: RequestTemplate) -> ExecutionResult | None:
        """Execute one batch; ``None`` means every file was already modified."""

        files = self._fresh_files(group)
        if not files:
            logger.info("Skipping %s: every file already has pending changes", group.identifier)
            return None
        if len(files) != len(group.files):
            group = replace(group, files=files)

        descriptor = self._descriptor(template.tool)
        builder = builder_for(descriptor)
        assembled = assemble_prompt(
            base_prompt=template.prompt,
            files=files,
            static_context=template.context_files,
            dynamic_context=template.dynamic_context,
            batch_mode=template.batch_mode,
            inline_context=not builder.native_context,
        )
        request = ExecutionRequest(
            files=files,
            prompt=assembled.text,
            model=template.model,
            reasoning_effort=template.reasoning_effort,
            bypass_permissions=template.bypass_permissions,
            context_files=assembled.context_files,
            dynamic_context=template.dynamic_context,
        )
        command = builder.build(request)

        started_at = utc_now()
        if self.runner.live:
            outcome = self._attempt(command, group, attempt=1)
            status = (
                RetryStatus.SUCCEEDED if outcome.succeeded else RetryStatus.FAILED_NON_RETRYABLE
            )
            attempts = 1
            failure_class = None
        else:
            engine = RetryEngine(
                self.retry_policy,
                sleep=self.runner.wait_cancelled,
                should_stop=lambda: self.runner.cancelled,
            )
            retry_result = engine.run(
                lambda attempt: self._attempt(command, group, attempt=attempt),
                label=group.identifier,
            )
            outcome = retry_result.outcome
            status = retry_result.status
            attempts = retry_result.attempts
            failure_class = (
                retry_result.classification.failure_class
                if retry_result.classification is not None
                else None
            )
        finished_at = utc_now()

        result = ExecutionResult(
            file=group.identifier,
            files=files,
            tool=descriptor.name,
            model=template.model,
            stdout=outcome.stdout,
            stderr=outcome.stderr,
            started_at=started_at,
            finished_at=finished_at,
            success=outcome.succeeded,
            exit_code=outcome.exit_code,
            attempts=attempts,
            retry_status=status,
            failure_class=failure_class,
        )
        logger.info(
            "%s %s via %s: exit=%d attempts=%d duration=%.1fs",
            "Finished" if result.success else "Failed",
            group.identifier,
            descriptor.name,
            result.exit_code,
            attempts,
            result.duration_seconds,
        )
        return result

    def cancel(self) -> None:
        self.runner.cancel()

    def _fresh_files(self, group: BatchGroup) -> tuple[Path, ...]:
        if not self.skip_modified or self.gate is None:
            return group.files
        kept: list[Path] = []
        for path in group.files:
            if self.gate.recheck(path):
                logger.info("Skipping %s: changed since the batch was planned", path)
                continue
            kept.append(path)
        return tuple(kept)

    def _descriptor(self, tool: str) -> ToolDescriptor:
        descriptor = self.registry.resolve(tool)
        if descriptor is None:
            raise ValueError(f"Unknown tool: {tool!r}")
        return descriptor

    def _attempt(self, command: BuiltCommand, group: BatchGroup, *, attempt: int) -> AttemptOutcome:
        with self._invocations_lock:
            self.invocations += 1
        logger.debug("Attempt %d for %s", attempt, group.identifier)
        return self.runner.run(command)


def failed_result(
    *,
    group: BatchGroup,
    template: RequestTemplate,
    message: str,
    exit_code: int = WORKER_FAILURE_EXIT_CODE,
) -> ExecutionResult:
    """Result for a batch whose worker crashed instead of the tool failing."""

    now = utc_now()
    return ExecutionResult(
        file=group.identifier,
        files=group.files,
        tool=template.tool,
        model=template.model,
        stdout="",
        stderr=message,
        started_at=now,
        finished_at=now,
        success=False,
        exit_code=exit_code,
        attempts=0,
        retry_status=RetryStatus.FAILED_NON_RETRYABLE,
        failure_class=None,
    )
