"""Domain models for batch execution."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class ReasoningEffort(str, Enum):
    """Coarse deliberation hint passed to (or simulated for) the model."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FailureClass(str, Enum):
    """Normalized failure classes used by retry policy and error budget."""

    NON_RETRYABLE = "non_retryable"
    RETRYABLE = "retryable"
    QUOTA_EXHAUSTED = "quota_exhausted"


class RetryStatus(str, Enum):
    """Retry engine states."""

    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED_NON_RETRYABLE = "failed_non_retryable"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"


class ExecutionMode(str, Enum):
    """How batches are dispatched."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    LIVE = "live"


DynamicContextFn = Callable[[Path], Path | None]


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    """Static metadata for one external AI CLI."""

    name: str
    executable: str
    permission_bypass_flag: str
    model_flag: str
    default_model: str
    priority: int
    aliases: tuple[str, ...] = ()
    install_command: str = ""
    init_command: str = ""


@dataclass(frozen=True, slots=True)
class RequestTemplate:
    """Per-run request parameters shared by every batch."""

    tool: str
    prompt: str
    model: str
    reasoning_effort: ReasoningEffort = ReasoningEffort.NONE
    bypass_permissions: bool = True
    context_files: tuple[Path, ...] = ()
    dynamic_context: DynamicContextFn | None = None
    batch_mode: bool = False


@dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """Input to one subprocess invocation."""

    files: tuple[Path, ...]
    prompt: str
    model: str
    reasoning_effort: ReasoningEffort = ReasoningEffort.NONE
    bypass_permissions: bool = True
    context_files: tuple[Path, ...] = ()
    dynamic_context: DynamicContextFn | None = None


@dataclass(frozen=True, slots=True)
class AttemptOutcome:
    """Exit code and captured text of one subprocess run."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def text(self) -> str:
        return f"{self.stderr}\n{self.stdout}"


@dataclass(frozen=True, slots=True)
class BatchGroup:
    """One planned unit of work."""

    index: int
    total: int
    files: tuple[Path, ...]

    @property
    def identifier(self) -> str:
        if len(self.files) == 1:
            return str(self.files[0])
        names = ", ".join(path.name for path in self.files)
        return f"batch {self.index}/{self.total} ({names})"


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Normalized record for one executed batch."""

    file: str
    files: tuple[Path, ...]
    tool: str
    model: str
    stdout: str
    stderr: str
    started_at: datetime
    finished_at: datetime
    success: bool
    exit_code: int
    attempts: int = 1
    retry_status: RetryStatus = RetryStatus.SUCCEEDED
    failure_class: FailureClass | None = None

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def output_text(self) -> str:
        return f"{self.stderr}\n{self.stdout}"

    def to_dict(self) -> dict[str, object]:
        """Serialize the result for JSON output."""

        return {
            "file": self.file,
            "files": [str(path) for path in self.files],
            "tool": self.tool,
            "model": self.model,
            "success": self.success,
            "exit_code": self.exit_code,
            "attempts": self.attempts,
            "retry_status": self.retry_status.value,
            "failure_class": self.failure_class.value if self.failure_class else None,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "stdout": self.stdout,
            "stderr": self.stderr,
        }


@dataclass(slots=True)
class RunSummary:
    """Aggregate counters for CLI reporting."""

    planned: int = 0
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped_files: int = 0
    skipped_batches: int = 0
    bailed_out: bool = False
    failed_exit_codes: list[int] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return self.failed == 0 and not self.bailed_out
