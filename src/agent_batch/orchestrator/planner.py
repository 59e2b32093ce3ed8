"""Batch planning: windowing and fixed-size grouping of target files."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TypeVar

from agent_batch.orchestrator.models import BatchGroup

T = TypeVar("T")


def window_files(
    files: Sequence[T],
    *,
    skip: int = 0,
    first: int | None = None,
    last: int | None = None,
) -> list[T]:
    """Apply skip, then first, then last to the input order."""

    if skip < 0:
        raise ValueError("skip must be >= 0.")
    if first is not None and first < 0:
        raise ValueError("first must be >= 0.")
    if last is not None and last < 0:
        raise ValueError("last must be >= 0.")

    selected = list(files[skip:])
    if first is not None:
        selected = selected[:first]
    if last is not None:
        selected = selected[max(0, len(selected) - last) :]
    return selected


def group_files(files: Sequence[T], batch_size: int) -> list[list[T]]:
    """Split files into chunks of ``batch_size``; the last chunk may be smaller."""

    if batch_size < 1:
        raise ValueError("batch_size must be >= 1.")
    return [list(files[start : start + batch_size]) for start in range(0, len(files), batch_size)]


def plan_batches(
    files: Sequence[T],
    *,
    batch_size: int = 1,
    skip: int = 0,
    first: int | None = None,
    last: int | None = None,
) -> list[list[T]]:
    """Window the file list and group what remains."""

    return group_files(window_files(files, skip=skip, first=first, last=last), batch_size)


def to_batch_groups(groups: Sequence[Sequence[Path]]) -> list[BatchGroup]:
    """Number planned groups for identification in results."""

    total = len(groups)
    return [
        BatchGroup(index=index, total=total, files=tuple(group))
        for index, group in enumerate(groups, start=1)
    ]
