"""Prompt assembly for one batch."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from agent_batch.orchestrator.models import DynamicContextFn

logger = logging.getLogger(__name__)

JSON_ONLY_INSTRUCTION = (
    "IMPORTANT: Output raw JSON only. Do not wrap it in markdown code fences "
    "and do not add any text before or after the JSON."
)


@dataclass(frozen=True, slots=True)
class AssembledPrompt:
    """Prompt text plus the context files it refers to."""

    text: str
    context_files: tuple[Path, ...]


def assemble_prompt(  # noqa: PLR0913
    *,
    base_prompt: str,
    files: Sequence[Path],
    static_context: Sequence[Path] = (),
    dynamic_context: DynamicContextFn | None = None,
    batch_mode: bool = False,
    inline_context: bool = True,
) -> AssembledPrompt:
    """Build the full prompt for one batch.

    Order: base prompt, static context, dynamic context (deduplicated against
    paths already added), then the batch files. In batch mode each file's
    content follows a ``FILE:`` header; in single-file mode only the path is
    referenced. A single JSON static context file appends the raw-JSON
    instruction as the final text.
    """

    parts = [base_prompt.strip()]
    context_files = _collect_context_files(
        files=files,
        static_context=static_context,
        dynamic_context=dynamic_context,
    )

    if inline_context:
        for path in context_files:
            parts.append(
                f"=== CONTEXT: {path.as_posix()} ===\n"
                f"{_read_text(path).rstrip()}\n"
                f"=== END CONTEXT ===",
            )

    if batch_mode:
        for path in files:
            parts.append(f"FILE: {path.as_posix()}\n{_read_text(path)}")
    else:
        for path in files:
            parts.append(f"Target file: {path.resolve().as_posix()}")

    if is_single_json_context(static_context):
        parts.append(JSON_ONLY_INSTRUCTION)

    return AssembledPrompt(
        text="\n\n".join(part for part in parts if part),
        context_files=tuple(context_files),
    )


def is_single_json_context(static_context: Sequence[Path]) -> bool:
    return len(static_context) == 1 and static_context[0].suffix.lower() == ".json"


def _collect_context_files(
    *,
    files: Sequence[Path],
    static_context: Sequence[Path],
    dynamic_context: DynamicContextFn | None,
) -> list[Path]:
    seen: set[Path] = set()
    collected: list[Path] = []

    def _add(path: Path, *, kind: str) -> None:
        if not path.is_file():
            logger.warning("%s context file not found, skipping: %s", kind.capitalize(), path)
            return
        key = path.resolve()
        if key in seen:
            return
        seen.add(key)
        collected.append(path)

    for path in static_context:
        _add(path, kind="static")

    if dynamic_context is not None:
        targets = {path.resolve() for path in files}
        for target in files:
            derived = dynamic_context(target)
            if derived is None or derived.resolve() in targets:
                continue
            _add(derived, kind="dynamic")

    return collected


def _read_text(path: Path) -> str:
    return path.read_text("utf-8", errors="replace")
