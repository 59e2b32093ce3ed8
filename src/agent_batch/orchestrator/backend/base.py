"""Backend interfaces for argv construction and subprocess execution."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from agent_batch.orchestrator.models import AttemptOutcome, ExecutionRequest, ToolDescriptor


@dataclass(frozen=True, slots=True)
class BuiltCommand:
    """Rendered command for one tool invocation."""

    argv: tuple[str, ...]
    stdin_text: str | None = None

    @property
    def command_head(self) -> str:
        return self.argv[0] if self.argv else ""


class ArgumentBuilder(Protocol):
    """Protocol implemented by per-vendor argv builders."""

    descriptor: ToolDescriptor
    native_context: bool

    def build(self, request: ExecutionRequest) -> BuiltCommand:
        """Render argv (and optional stdin payload) for one request."""


@runtime_checkable
class CommandRunner(Protocol):
    """Protocol implemented by subprocess runners and their test doubles."""

    live: bool

    @property
    def cancelled(self) -> bool:
        """True once ``cancel`` has been called."""

    def run(self, command: BuiltCommand) -> AttemptOutcome:
        """Run the command to completion and return its outcome."""

    def wait_cancelled(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True early if cancelled."""

    def cancel(self) -> None:
        """Stop new launches and terminate in-flight children."""
