"""Git-backed check for files that already carry pending changes.

Skipping such files makes re-running an interrupted batch idempotent: a file
the tool already edited shows up as modified and is not sent again. Whenever
git cannot answer, the file is treated as modified.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

MAIN_BRANCHES = frozenset({"main", "master", "trunk"})
DEFAULT_COMMIT_DEPTH = 1
GIT_TIMEOUT_SECONDS = 30


class GitQueryError(RuntimeError):
    """A git command failed or could not be started."""


GitRunner = Callable[[Sequence[str], Path], str]


@dataclass(frozen=True, slots=True)
class ModifiedFileSnapshot:
    """Normalized paths known to have pending changes at sweep time."""

    paths: frozenset[str]
    available: bool = True

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        if not self.available:
            return True
        return normalize_path(path) in self.paths

    def __len__(self) -> int:
        return len(self.paths)


def normalize_path(path: str | Path) -> str:
    """Absolute, resolved, forward-slash form used for set lookups."""

    return Path(path).resolve().as_posix()


def run_git(args: Sequence[str], cwd: Path) -> str:
    """Run one git command and return stdout; raise ``GitQueryError`` on failure."""

    try:
        completed = subprocess.run(  # noqa: S603
            ["git", "-c", "core.quotePath=false", "-C", str(cwd), *args],  # noqa: S607
            check=False,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            stdin=subprocess.DEVNULL,
            timeout=GIT_TIMEOUT_SECONDS,
        )
    except subprocess.TimeoutExpired as error:
        raise GitQueryError(f"git {' '.join(args)} timed out") from error
    except OSError as error:
        raise GitQueryError(f"git could not be started: {error}") from error
    if completed.returncode != 0:
        raise GitQueryError(
            f"git {' '.join(args)} exited with {completed.returncode}: {completed.stderr.strip()}",
        )
    return completed.stdout


class GitModificationGate:
    """Answers "does this file already have pending changes?" via git."""

    def __init__(
        self,
        root: Path | None = None,
        *,
        commit_depth: int = DEFAULT_COMMIT_DEPTH,
        runner: GitRunner = run_git,
    ) -> None:
        if commit_depth < 0:
            raise ValueError("commit_depth must be >= 0.")
        self.root = (root or Path.cwd()).resolve()
        self.commit_depth = commit_depth
        self._git = runner

    def snapshot(self) -> ModifiedFileSnapshot:
        """Sweep working tree, index, untracked files and the commit window once."""

        try:
            paths = self._changed_paths(self.root)
        except GitQueryError as error:
            logger.warning("Modification sweep failed, every file counts as modified: %s", error)
            return ModifiedFileSnapshot(paths=frozenset(), available=False)

        logger.info("Modification sweep found %d changed file(s) under %s", len(paths), self.root)
        return ModifiedFileSnapshot(paths=paths)

    @staticmethod
    def is_modified(path: Path, snapshot: ModifiedFileSnapshot) -> bool:
        return path in snapshot

    def recheck(self, path: Path) -> bool:
        """Fresh single-file query right before dispatch, same rules as the sweep."""

        target = path.resolve()
        try:
            changed = self._changed_paths(target.parent, target)
        except GitQueryError as error:
            logger.warning("Modification check failed for %s, skipping it: %s", path, error)
            return True
        return normalize_path(target) in changed

    def filter_unmodified(
        self,
        files: Iterable[Path],
        snapshot: ModifiedFileSnapshot,
    ) -> list[Path]:
        """Drop files present in the snapshot, keeping input order."""

        kept: list[Path] = []
        for path in files:
            if self.is_modified(path, snapshot):
                logger.info("Skipping modified file: %s", path)
                continue
            kept.append(path)
        return kept

    def _changed_paths(self, cwd: Path, target: Path | None = None) -> frozenset[str]:
        top = Path(self._git(["rev-parse", "--show-toplevel"], cwd).strip())
        pathspec = ["--", str(target)] if target is not None else []
        names: set[str] = set()
        names.update(_names(self._git(["diff", "--name-only", *pathspec], top)))
        names.update(_names(self._git(["diff", "--name-only", "--cached", *pathspec], top)))
        untracked = ["ls-files", "--others", "--exclude-standard", "--full-name", *pathspec]
        names.update(_names(self._git(untracked, top)))
        if self.commit_depth > 0:
            # No pathspec here: with one, -n would count commits touching the file.
            range_args = self._commit_range_args(top)
            history = self._git(["log", *range_args, "--name-only", "--pretty=format:"], top)
            names.update(_names(history))
        return frozenset(normalize_path(top / name) for name in names)

    def _commit_range_args(self, cwd: Path) -> list[str]:
        branch = self._git(["rev-parse", "--abbrev-ref", "HEAD"], cwd).strip()
        if branch not in MAIN_BRANCHES:
            try:
                self._git(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"], cwd)
            except GitQueryError:
                logger.debug(
                    "Branch %s has no upstream; using last %d commits",
                    branch,
                    self.commit_depth,
                )
            else:
                return ["@{u}..HEAD"]
        return ["-n", str(self.commit_depth)]


def _names(output: str) -> set[str]:
    return {line.strip() for line in output.splitlines() if line.strip()}
