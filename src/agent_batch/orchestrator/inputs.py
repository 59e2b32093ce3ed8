"""Resolution of CLI inputs: target files, prompt sources and context rules."""

from __future__ import annotations

import glob
import logging
import re
from collections.abc import Iterable
from pathlib import Path

from agent_batch.orchestrator.models import DynamicContextFn

logger = logging.getLogger(__name__)

CONTEXT_RULE_SEPARATOR = "=>"
_GLOB_CHARS = frozenset("*?[")


def expand_targets(patterns: Iterable[str]) -> list[Path]:
    """Expand target paths and glob patterns into an ordered, de-duplicated file list."""

    targets: list[Path] = []
    seen: set[Path] = set()
    for pattern in patterns:
        if _has_glob(pattern):
            matches = sorted(glob.glob(pattern, recursive=True))
            if not matches:
                logger.warning("Pattern matched no files: %s", pattern)
        else:
            if not Path(pattern).exists():
                raise ValueError(f"Target file not found: {pattern}")
            matches = [pattern]

        for match in matches:
            path = Path(match)
            if path.is_dir():
                logger.warning("Skipping directory target: %s", path)
                continue
            key = path.resolve()
            if key in seen:
                continue
            seen.add(key)
            targets.append(path)
    return targets


def resolve_prompt(value: str) -> str:
    """Return prompt text from a literal, a prompt file, or a glob of prompt files.

    Glob matches are read in sorted order and joined with blank lines.
    """

    if not value.strip():
        raise ValueError("Prompt must not be empty.")
    if "\n" in value:
        return value

    if _has_glob(value):
        matches = [Path(item) for item in sorted(glob.glob(value, recursive=True))]
        files = [path for path in matches if path.is_file()]
        if files:
            logger.info("Loaded prompt from %d file(s) matching %s", len(files), value)
            return "\n\n".join(path.read_text("utf-8").strip() for path in files)

    try:
        candidate = Path(value)
        if candidate.is_file():
            logger.info("Loaded prompt from %s", candidate)
            return candidate.read_text("utf-8")
    except OSError as error:
        logger.debug("Prompt is not a readable path, using it literally: %s", error)
    return value


def parse_context_rule(rule: str) -> DynamicContextFn:
    """Build a dynamic-context function from ``PATTERN=>REPLACEMENT``.

    The regex is searched in the target's forward-slash path; on a match the
    first occurrence is substituted and the result is the context path, for
    example ``/de/=>/en/`` maps a German translation to its English original.
    """

    if CONTEXT_RULE_SEPARATOR not in rule:
        raise ValueError(
            f"Invalid dynamic context rule {rule!r}. Expected 'PATTERN{CONTEXT_RULE_SEPARATOR}"
            "REPLACEMENT'.",
        )
    pattern_text, replacement = rule.split(CONTEXT_RULE_SEPARATOR, 1)
    if not pattern_text:
        raise ValueError(f"Invalid dynamic context rule {rule!r}: empty pattern.")
    try:
        pattern = re.compile(pattern_text)
    except re.error as error:
        raise ValueError(f"Invalid dynamic context pattern {pattern_text!r}: {error}") from error

    def _derive(path: Path) -> Path | None:
        source = path.as_posix()
        if pattern.search(source) is None:
            return None
        return Path(pattern.sub(replacement, source, count=1))

    return _derive


def combine_context_rules(rules: Iterable[DynamicContextFn]) -> DynamicContextFn | None:
    """Chain rules; the first one that yields a path wins."""

    chain = list(rules)
    if not chain:
        return None
    if len(chain) == 1:
        return chain[0]

    def _derive(path: Path) -> Path | None:
        for rule in chain:
            derived = rule(path)
            if derived is not None:
                return derived
        return None

    return _derive


def _has_glob(value: str) -> bool:
    return any(char in _GLOB_CHARS for char in value)
