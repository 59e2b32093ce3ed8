"""Subprocess-based runner for external AI CLIs."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
from collections.abc import Mapping

from agent_batch.orchestrator.backend.base import BuiltCommand
from agent_batch.orchestrator.models import AttemptOutcome

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND_EXIT_CODE = 127
START_FAILED_EXIT_CODE = 126
CANCELLED_EXIT_CODE = 130


class CliToolRunner:
    """Run built commands, tracking children so a bail-out can kill them.

    In captured mode stdout/stderr are collected for classification. In live
    mode the child inherits this process's stdout/stderr and the outcome only
    carries the exit code.
    """

    def __init__(self, *, live: bool = False, env: Mapping[str, str] | None = None) -> None:
        self.live = live
        self.env = dict(env) if env is not None else None
        self._lock = threading.Lock()
        self._active: set[subprocess.Popen[str]] = set()
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self, command: BuiltCommand) -> AttemptOutcome:
        if not command.argv:
            return AttemptOutcome(
                exit_code=START_FAILED_EXIT_CODE,
                stderr="CLI tool command is empty.",
            )
        if self._cancelled.is_set():
            return AttemptOutcome(exit_code=CANCELLED_EXIT_CODE, stderr="Cancelled before start.")

        argv = list(command.argv)
        resolved = shutil.which(argv[0], path=(self.env or os.environ).get("PATH"))
        if resolved is not None:
            argv[0] = resolved
        capture = None if self.live else subprocess.PIPE
        logger.debug("Spawning: %s", " ".join(command.argv[:8]))

        try:
            process = subprocess.Popen(  # noqa: S603
                argv,
                stdin=subprocess.PIPE if command.stdin_text is not None else subprocess.DEVNULL,
                stdout=capture,
                stderr=capture,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=self.env,
            )
        except FileNotFoundError:
            return AttemptOutcome(
                exit_code=COMMAND_NOT_FOUND_EXIT_CODE,
                stderr=f"CLI tool command not found: {command.command_head}",
            )
        except OSError as error:
            return AttemptOutcome(
                exit_code=START_FAILED_EXIT_CODE,
                stderr=f"CLI tool failed to start: {error}",
            )

        with self._lock:
            self._active.add(process)
            cancelled = self._cancelled.is_set()
        if cancelled:
            _terminate_process(process)

        try:
            stdout, stderr = process.communicate(input=command.stdin_text)
        finally:
            with self._lock:
                self._active.discard(process)
        return AttemptOutcome(
            exit_code=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
        )

    def wait_cancelled(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return early with True once cancelled."""

        return self._cancelled.wait(timeout=max(0.0, seconds))

    def cancel(self) -> None:
        """Stop new launches and terminate every in-flight child."""

        self._cancelled.set()
        with self._lock:
            processes = list(self._active)
        for process in processes:
            logger.warning("Terminating in-flight tool process pid=%s", process.pid)
            _terminate_process(process)


def _terminate_process(process: subprocess.Popen[str]) -> None:
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
