"""Controllers for batch CLI commands."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from agent_batch.config import Settings
from agent_batch.orchestrator.backend import CliToolRunner
from agent_batch.orchestrator.budget import ErrorBudget
from agent_batch.orchestrator.detection import (
    ToolProbeResult,
    compact_output,
    detect_first_installed,
    detect_installed,
)
from agent_batch.orchestrator.executor import ExecutionCore
from agent_batch.orchestrator.inputs import (
    combine_context_rules,
    expand_targets,
    parse_context_rule,
    resolve_prompt,
)
from agent_batch.orchestrator.models import (
    ExecutionMode,
    ExecutionResult,
    ReasoningEffort,
    RequestTemplate,
    RunSummary,
    ToolDescriptor,
)
from agent_batch.orchestrator.modification_gate import GitModificationGate
from agent_batch.orchestrator.registry import ALL_TOOLS, ToolRegistry, default_registry
from agent_batch.orchestrator.runner import Orchestrator, RunPlan

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("text", "json")
OUTPUT_PREVIEW_LIMIT = 240


@dataclass(slots=True)
class InvokeCommand:
    """CLI input for batch invocation."""

    paths: tuple[str, ...]
    prompt: str
    tool: str | None = None
    model: str | None = None
    reasoning_effort: str | None = None
    context_files: tuple[Path, ...] = ()
    context_rules: tuple[str, ...] = ()
    batch_size: int = 1
    parallel: bool = False
    max_workers: int | None = None
    retry: bool | None = None
    max_retry_minutes: float | None = None
    skip: int = 0
    first: int | None = None
    last: int | None = None
    skip_modified: bool = False
    commit_depth: int | None = None
    raw: bool = False
    bypass_permissions: bool | None = None
    output_format: str = "text"


@dataclass(slots=True)
class InvokeReport:
    """Per-tool summaries and the process exit code."""

    summaries: dict[str, RunSummary]
    exit_code: int


@dataclass(slots=True)
class DetectCommand:
    """CLI input for installed-tool detection."""

    timeout_seconds: float | None = None


@dataclass(slots=True)
class DetectReport:
    """Detection report to render in CLI."""

    lines: list[str]
    success: bool


class OrchestratorCliController:
    """Coordinates tool resolution, orchestration runs and rendering."""

    def __init__(self, registry: ToolRegistry | None = None) -> None:
        self.registry = registry or default_registry()

    def invoke(self, command: InvokeCommand, emit: Callable[[str], None]) -> InvokeReport:
        """Run the batch for every selected tool, emitting lines as results arrive."""

        if command.output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported output format: {command.output_format!r}")
        settings = Settings.from_env(registry=self.registry)
        files = expand_targets(command.paths)
        if not files:
            raise ValueError("No target files matched the given paths.")
        prompt = resolve_prompt(command.prompt)
        tools = self._resolve_tools(command, settings)
        dynamic_context = combine_context_rules(
            parse_context_rule(rule) for rule in command.context_rules
        )
        effort = (
            ReasoningEffort(command.reasoning_effort.lower())
            if command.reasoning_effort
            else ReasoningEffort.NONE
        )
        mode = _execution_mode(command)
        gate = (
            GitModificationGate(
                Path.cwd(),
                commit_depth=(
                    command.commit_depth
                    if command.commit_depth is not None
                    else settings.execution.commit_depth
                ),
            )
            if command.skip_modified
            else None
        )
        plan = RunPlan(
            batch_size=command.batch_size,
            skip=command.skip,
            first=command.first,
            last=command.last,
            mode=mode,
            max_workers=command.max_workers or settings.execution.max_workers,
            skip_modified=command.skip_modified,
        )

        summaries: dict[str, RunSummary] = {}
        for descriptor in tools:
            template = RequestTemplate(
                tool=descriptor.name,
                prompt=prompt,
                model=command.model
                or settings.tools.model_for(descriptor.name, descriptor.default_model),
                reasoning_effort=effort,
                bypass_permissions=(
                    command.bypass_permissions
                    if command.bypass_permissions is not None
                    else settings.tools.bypass_permissions
                ),
                context_files=command.context_files,
                dynamic_context=dynamic_context,
                batch_mode=command.batch_size > 1,
            )
            core = ExecutionCore(
                registry=self.registry,
                runner=CliToolRunner(live=command.raw),
                retry_policy=settings.retry.to_policy(
                    enabled=command.retry,
                    max_total_minutes=command.max_retry_minutes,
                ),
                gate=gate,
                skip_modified=command.skip_modified,
            )
            orchestrator = Orchestrator(
                core=core,
                budget=ErrorBudget(
                    max_errors=settings.budget.max_errors,
                    max_token_errors=settings.budget.max_token_errors,
                ),
                gate=gate,
            )
            for result in orchestrator.run(files, template, plan):
                if not command.raw:
                    emit(render_result(result, output_format=command.output_format))

            summary = orchestrator.summary
            summaries[descriptor.name] = summary
            if command.output_format == "text":
                emit(render_summary(descriptor.name, summary))

        return InvokeReport(
            summaries=summaries,
            exit_code=_exit_code(summaries.values(), raw=command.raw),
        )

    def list_tools(self) -> list[str]:
        lines = []
        for descriptor in self.registry.list_by_priority():
            aliases = ", ".join(descriptor.aliases) or "-"
            lines.append(
                f"{descriptor.name} priority={descriptor.priority} "
                f"executable={descriptor.executable} default_model={descriptor.default_model} "
                f"aliases={aliases}",
            )
        return lines

    def detect(self, command: DetectCommand) -> DetectReport:
        settings = Settings.from_env(registry=self.registry)
        timeout = command.timeout_seconds or settings.tools.probe_timeout_seconds
        results = detect_installed(self.registry, timeout_seconds=timeout)
        lines: list[str] = []
        ready = 0
        for result in results:
            if result.probe_ok:
                ready += 1
            line = (
                f"tool={result.tool} available={'yes' if result.available else 'no'} "
                f"probe={'ok' if result.probe_ok else 'failed'}"
            )
            if result.version:
                line += f" version={result.version}"
            if result.error:
                line += f" error={result.error}"
            lines.append(line)
            descriptor = self.registry.resolve(result.tool)
            if descriptor is not None:
                lines.extend(_setup_hints(descriptor, result))
        lines.append(f"Detect status: {ready} of {len(results)} tool(s) ready")
        return DetectReport(lines=lines, success=ready > 0)

    def _resolve_tools(self, command: InvokeCommand, settings: Settings) -> list[ToolDescriptor]:
        requested = command.tool or settings.tools.default_tool
        timeout = settings.tools.probe_timeout_seconds

        if requested is not None and requested.strip().lower() == ALL_TOOLS:
            if command.model:
                raise ValueError("--model cannot be combined with --tool all.")
            installed = [
                descriptor
                for descriptor, probe in zip(
                    self.registry.list_by_priority(),
                    detect_installed(self.registry, timeout_seconds=timeout),
                    strict=True,
                )
                if probe.probe_ok
            ]
            if not installed:
                raise ValueError("No installed AI CLI tools were detected.")
            return installed

        if requested is not None:
            descriptor = self.registry.resolve(requested)
            if descriptor is None:
                raise ValueError(
                    f"Unknown tool: {requested!r}. Use one of "
                    f"{', '.join(self.registry.names())} or {ALL_TOOLS}.",
                )
            return [descriptor]

        descriptor = detect_first_installed(self.registry, timeout_seconds=timeout)
        if descriptor is None:
            raise ValueError("No tool given and no installed AI CLI tool was detected.")
        return [descriptor]


def render_result(result: ExecutionResult, *, output_format: str = "text") -> str:
    """Render one result as a text line block or a JSON line."""

    if output_format == "json":
        return json.dumps(result.to_dict(), ensure_ascii=False)

    status = "ok" if result.success else "failed"
    line = (
        f"[{status}] {result.file} tool={result.tool} model={result.model} "
        f"exit={result.exit_code} attempts={result.attempts} "
        f"duration={result.duration_seconds:.1f}s"
    )
    if result.success:
        return line
    details = [f"{line} retry={result.retry_status.value}"]
    if result.failure_class is not None:
        details[0] += f" class={result.failure_class.value}"
    stderr = compact_output(result.stderr, limit=OUTPUT_PREVIEW_LIMIT)
    stdout = compact_output(result.stdout, limit=OUTPUT_PREVIEW_LIMIT)
    if stderr:
        details.append(f"  stderr: {stderr}")
    if stdout:
        details.append(f"  stdout: {stdout}")
    return "\n".join(details)


def render_summary(tool: str, summary: RunSummary) -> str:
    return (
        f"Invoke summary: tool={tool} planned={summary.planned} "
        f"processed={summary.processed} succeeded={summary.succeeded} "
        f"failed={summary.failed} skipped_files={summary.skipped_files} "
        f"skipped_batches={summary.skipped_batches} "
        f"bailed_out={'yes' if summary.bailed_out else 'no'}"
    )


def _execution_mode(command: InvokeCommand) -> ExecutionMode:
    if command.raw:
        if command.parallel:
            logger.warning("Raw mode streams the tool's own output; running sequentially.")
        return ExecutionMode.LIVE
    if command.parallel:
        return ExecutionMode.PARALLEL
    return ExecutionMode.SEQUENTIAL


def _exit_code(summaries, *, raw: bool) -> int:
    summaries = list(summaries)
    if raw:
        for summary in reversed(summaries):
            if summary.failed_exit_codes:
                return summary.failed_exit_codes[-1] or 1
        return 1 if any(summary.bailed_out for summary in summaries) else 0
    return 0 if all(summary.all_succeeded for summary in summaries) else 1


def _setup_hints(descriptor: ToolDescriptor, result: ToolProbeResult) -> list[str]:
    if not result.available and descriptor.install_command:
        return [f"  install: {descriptor.install_command}"]
    if result.available and not result.probe_ok and descriptor.init_command:
        return [f"  set up: {descriptor.init_command}"]
    return []
