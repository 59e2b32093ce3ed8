"""Shared test fixtures."""

from __future__ import annotations

import os
import shutil
import stat
import subprocess
import sys
import threading
from collections.abc import Callable
from pathlib import Path

import pytest

from agent_batch.orchestrator.backend import BuiltCommand
from agent_batch.orchestrator.models import AttemptOutcome

_ECHO_AGENT_MODULE = "agent_batch.orchestrator.backend.echo_agent"


@pytest.fixture(autouse=True)
def _clean_agent_batch_env(monkeypatch):
    """Keep developer AGENT_BATCH_* settings out of tests."""
    for name in list(os.environ):
        if name.startswith("AGENT_BATCH_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def fake_tools(tmp_path: Path, monkeypatch) -> Callable[..., Path]:
    """Put launchers for the echo agent on PATH under the given executable names."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    def _install(*names: str) -> Path:
        for name in names:
            if os.name == "nt":
                launcher = bin_dir / f"{name}.cmd"
                launcher.write_text(
                    f'@echo off\r\n"{sys.executable}" -m {_ECHO_AGENT_MODULE} %*\r\n',
                    "utf-8",
                )
            else:
                launcher = bin_dir / name
                launcher.write_text(
                    f'#!/bin/sh\nexec "{sys.executable}" -m {_ECHO_AGENT_MODULE} "$@"\n',
                    "utf-8",
                )
                launcher.chmod(launcher.stat().st_mode | stat.S_IXUSR)
        return bin_dir

    return _install


@pytest.fixture()
def isolated_path(tmp_path: Path, monkeypatch) -> Path:
    """PATH with nothing but an empty directory, so no real tool is detected."""
    empty = tmp_path / "empty-bin"
    empty.mkdir()
    monkeypatch.setenv("PATH", str(empty))
    return empty


requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(repo: Path, *args: str) -> str:
    completed = subprocess.run(  # noqa: S603
        ["git", "-C", str(repo), *args],  # noqa: S607
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout


@pytest.fixture()
def git_repo(tmp_path: Path) -> Path:
    """A git repo on ``main`` with three committed text files."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "checkout", "-q", "-b", "main")
    git(repo, "config", "user.email", "tests@example.com")
    git(repo, "config", "user.name", "Tests")
    git(repo, "config", "commit.gpgsign", "false")
    for name in ("a.txt", "b.txt", "c.txt"):
        (repo / name).write_text(f"{name}\n", "utf-8")
    git(repo, "add", ".")
    git(repo, "commit", "-q", "-m", "initial")
    return repo


class FakeRunner:
    """Replays scripted outcomes instead of spawning processes."""

    def __init__(self, *outcomes: AttemptOutcome, live: bool = False) -> None:
        self.live = live
        self.commands: list[BuiltCommand] = []
        self.sleeps: list[float] = []
        self._outcomes = list(outcomes) or [AttemptOutcome(exit_code=0, stdout="ok")]
        self._lock = threading.Lock()
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def run(self, command: BuiltCommand) -> AttemptOutcome:
        with self._lock:
            self.commands.append(command)
            if len(self._outcomes) > 1:
                return self._outcomes.pop(0)
            return self._outcomes[0]

    def wait_cancelled(self, seconds: float) -> bool:
        self.sleeps.append(seconds)
        return self.cancelled

    def cancel(self) -> None:
        self._cancelled.set()
