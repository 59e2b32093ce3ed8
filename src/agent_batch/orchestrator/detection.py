"""Version probes used to detect which AI CLIs are installed."""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass

from agent_batch.orchestrator.models import ToolDescriptor
from agent_batch.orchestrator.registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT_SECONDS = 10


@dataclass(slots=True)
class ToolProbeResult:
    """One tool availability check."""

    tool: str
    executable: str
    resolved_executable: str | None
    available: bool
    probe_ok: bool
    version: str
    error: str | None


def probe_tool(
    descriptor: ToolDescriptor,
    *,
    timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
) -> ToolProbeResult:
    """Check that the tool's executable is on PATH and answers a version probe."""

    resolved_executable = shutil.which(descriptor.executable)
    if resolved_executable is None:
        return ToolProbeResult(
            tool=descriptor.name,
            executable=descriptor.executable,
            resolved_executable=None,
            available=False,
            probe_ok=False,
            version="",
            error=f"Executable not found in PATH: {descriptor.executable}",
        )

    probe_ok, error, output = _run_probe(
        executable=resolved_executable,
        timeout_seconds=timeout_seconds,
    )
    return ToolProbeResult(
        tool=descriptor.name,
        executable=descriptor.executable,
        resolved_executable=resolved_executable,
        available=True,
        probe_ok=probe_ok,
        version=output if probe_ok else "",
        error=error,
    )


def detect_installed(
    registry: ToolRegistry,
    *,
    timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
) -> list[ToolProbeResult]:
    """Probe every registered tool in priority order."""

    return [
        probe_tool(descriptor, timeout_seconds=timeout_seconds)
        for descriptor in registry.list_by_priority()
    ]


def detect_first_installed(
    registry: ToolRegistry,
    *,
    timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
) -> ToolDescriptor | None:
    """Return the most preferred tool that responds to a version probe."""

    for descriptor in registry.list_by_priority():
        result = probe_tool(descriptor, timeout_seconds=timeout_seconds)
        if result.probe_ok:
            logger.info("Auto-detected tool %s (%s)", descriptor.name, result.version)
            return descriptor
        logger.debug("Tool %s not usable: %s", descriptor.name, result.error)
    return None


def _run_probe(*, executable: str, timeout_seconds: float) -> tuple[bool, str | None, str]:
    output = ""
    for probe_args in ([executable, "--version"], [executable, "--help"]):
        try:
            completed = subprocess.run(  # noqa: S603
                probe_args,
                check=False,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                stdin=subprocess.DEVNULL,
                timeout=timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            return False, "Probe timed out.", ""
        except OSError as error:
            return False, f"Probe failed to start: {error}", ""

        output = compact_output(completed.stdout or completed.stderr)
        if completed.returncode == 0:
            return True, None, output

    return False, "Probe command failed.", output


def compact_output(value: str, *, limit: int = 120) -> str:
    """Single-line, length-capped rendering of tool output."""

    compact = value.strip().replace("\n", " ")
    if len(compact) <= limit:
        return compact
    return compact[:limit] + "..."
