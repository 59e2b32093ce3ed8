"""Backend implementations: per-vendor argv builders and the subprocess runner."""

from agent_batch.orchestrator.backend.base import ArgumentBuilder, BuiltCommand, CommandRunner
from agent_batch.orchestrator.backend.builders import BUILDERS, builder_for
from agent_batch.orchestrator.backend.cli_backend import CliToolRunner

__all__ = [
    "BUILDERS",
    "ArgumentBuilder",
    "BuiltCommand",
    "CliToolRunner",
    "CommandRunner",
    "builder_for",
]
