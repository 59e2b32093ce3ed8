from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import allure
import pytest
from conftest import git, requires_git

from agent_batch.orchestrator.modification_gate import (
    GitModificationGate,
    GitQueryError,
    ModifiedFileSnapshot,
    normalize_path,
)

pytestmark = [
    allure.epic("Batch Execution"),
    allure.feature("Skip Modified Files"),
]


def _failing_runner(args: Sequence[str], cwd: Path) -> str:
    raise GitQueryError(f"git {' '.join(args)} failed in {cwd}")


def test_unavailable_snapshot_reports_every_file_as_modified(tmp_path: Path) -> None:
    gate = GitModificationGate(tmp_path, runner=_failing_runner)

    snapshot = gate.snapshot()

    assert not snapshot.available
    assert gate.is_modified(tmp_path / "anything.txt", snapshot)
    assert gate.filter_unmodified([tmp_path / "a.txt"], snapshot) == []


def test_recheck_reports_modified_when_git_fails(tmp_path: Path) -> None:
    gate = GitModificationGate(tmp_path, runner=_failing_runner)

    assert gate.recheck(tmp_path / "a.txt") is True


def test_snapshot_membership_uses_normalized_paths(tmp_path: Path) -> None:
    target = tmp_path / "docs" / "a.md"
    snapshot = ModifiedFileSnapshot(paths=frozenset({normalize_path(target)}))

    assert tmp_path / "docs" / ".." / "docs" / "a.md" in snapshot
    assert str(target) in snapshot
    assert tmp_path / "docs" / "b.md" not in snapshot
    assert 42 not in snapshot


def test_commit_depth_must_not_be_negative(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="commit_depth"):
        GitModificationGate(tmp_path, commit_depth=-1)


@requires_git
def test_clean_tree_has_no_modified_files(git_repo: Path) -> None:
    gate = GitModificationGate(git_repo, commit_depth=0)

    snapshot = gate.snapshot()

    assert snapshot.available
    assert len(snapshot) == 0
    assert gate.recheck(git_repo / "a.txt") is False


@requires_git
def test_unstaged_and_staged_changes_are_modified(git_repo: Path) -> None:
    (git_repo / "a.txt").write_text("changed\n", "utf-8")
    (git_repo / "b.txt").write_text("staged\n", "utf-8")
    git(git_repo, "add", "b.txt")
    gate = GitModificationGate(git_repo, commit_depth=0)

    snapshot = gate.snapshot()
    files = [git_repo / "a.txt", git_repo / "b.txt", git_repo / "c.txt"]

    assert gate.filter_unmodified(files, snapshot) == [git_repo / "c.txt"]
    assert gate.recheck(git_repo / "a.txt") is True
    assert gate.recheck(git_repo / "b.txt") is True
    assert gate.recheck(git_repo / "c.txt") is False


@requires_git
def test_recent_commits_count_as_modified_on_main(git_repo: Path) -> None:
    (git_repo / "b.txt").write_text("second commit\n", "utf-8")
    git(git_repo, "commit", "-q", "-am", "touch b")

    shallow = GitModificationGate(git_repo, commit_depth=1)
    deeper = GitModificationGate(git_repo, commit_depth=2)

    assert gate_modified(shallow, git_repo) == {"b.txt"}
    assert gate_modified(deeper, git_repo) == {"a.txt", "b.txt", "c.txt"}
    assert shallow.recheck(git_repo / "b.txt") is True
    assert shallow.recheck(git_repo / "a.txt") is False


@requires_git
def test_outside_a_repository_everything_counts_as_modified(tmp_path: Path) -> None:
    outside = tmp_path / "plain"
    outside.mkdir()
    (outside / "a.txt").write_text("x\n", "utf-8")
    gate = GitModificationGate(outside, commit_depth=0)

    assert not gate.snapshot().available
    assert gate.recheck(outside / "a.txt") is True


@requires_git
def test_untracked_files_are_modified_for_sweep_and_recheck(git_repo: Path) -> None:
    (git_repo / ".gitignore").write_text("*.log\n", "utf-8")
    (git_repo / "new.txt").write_text("fresh\n", "utf-8")
    (git_repo / "debug.log").write_text("ignored\n", "utf-8")
    gate = GitModificationGate(git_repo, commit_depth=0)

    snapshot = gate.snapshot()

    assert gate.is_modified(git_repo / "new.txt", snapshot)
    assert gate.recheck(git_repo / "new.txt") is True
    assert not gate.is_modified(git_repo / "debug.log", snapshot)
    assert gate.recheck(git_repo / "debug.log") is False


@requires_git
def test_feature_branch_window_is_commits_ahead_of_upstream(
    git_repo: Path,
    tmp_path: Path,
) -> None:
    git(tmp_path, "init", "-q", "--bare", "remote.git")
    git(git_repo, "remote", "add", "origin", str(tmp_path / "remote.git"))
    git(git_repo, "checkout", "-q", "-b", "feature")
    (git_repo / "a.txt").write_text("pushed\n", "utf-8")
    git(git_repo, "commit", "-q", "-am", "touch a")
    git(git_repo, "push", "-q", "-u", "origin", "feature")
    for name in ("b.txt", "c.txt"):
        (git_repo / name).write_text("ahead\n", "utf-8")
        git(git_repo, "commit", "-q", "-am", f"touch {name}")

    gate = GitModificationGate(git_repo, commit_depth=1)

    assert gate_modified(gate, git_repo) == {"b.txt", "c.txt"}
    assert gate.recheck(git_repo / "a.txt") is False
    assert gate.recheck(git_repo / "b.txt") is True
    assert gate.recheck(git_repo / "c.txt") is True


@requires_git
def test_branch_without_upstream_falls_back_to_commit_depth(git_repo: Path) -> None:
    git(git_repo, "checkout", "-q", "-b", "local-only")
    (git_repo / "b.txt").write_text("one\n", "utf-8")
    git(git_repo, "commit", "-q", "-am", "touch b")
    (git_repo / "c.txt").write_text("two\n", "utf-8")
    git(git_repo, "commit", "-q", "-am", "touch c")

    gate = GitModificationGate(git_repo, commit_depth=1)

    assert gate_modified(gate, git_repo) == {"c.txt"}
    assert gate.recheck(git_repo / "b.txt") is False
    assert gate.recheck(git_repo / "c.txt") is True


def gate_modified(gate: GitModificationGate, repo: Path) -> set[str]:
    snapshot = gate.snapshot()
    return {
        path.name
        for path in (repo / "a.txt", repo / "b.txt", repo / "c.txt")
        if gate.is_modified(path, snapshot)
    }
