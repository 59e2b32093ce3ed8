"""Per-vendor argv builders.

Each vendor CLI has its own conventions for prompt delivery, context files and
reasoning effort. The differences are intentional and kept per builder:

- claude and codex read the prompt from stdin, the others take it as an
  argument.
- gemini and qwen reference context files with ``@path`` in the prompt,
  copilot names their paths in the prompt and grants directory access with
  ``--add-dir``; everywhere else the orchestrator inlines context contents
  into the prompt.
- codex has a native reasoning-effort setting, claude has none and gets a
  trigger phrase appended to the prompt; the rest ignore the hint.
"""

from __future__ import annotations

import logging
from pathlib import Path

from agent_batch.orchestrator.backend.base import ArgumentBuilder, BuiltCommand
from agent_batch.orchestrator.models import ExecutionRequest, ReasoningEffort, ToolDescriptor

logger = logging.getLogger(__name__)

CLAUDE_REASONING_PHRASES: dict[ReasoningEffort, str] = {
    ReasoningEffort.LOW: "think",
    ReasoningEffort.MEDIUM: "think hard",
    ReasoningEffort.HIGH: "ultrathink",
}


class _BaseBuilder:
    native_context = False

    def __init__(self, descriptor: ToolDescriptor) -> None:
        self.descriptor = descriptor

    def _model_args(self, request: ExecutionRequest) -> list[str]:
        model = request.model.strip()
        if not model or not self.descriptor.model_flag:
            return []
        return [self.descriptor.model_flag, model]

    def _bypass_args(self, request: ExecutionRequest) -> list[str]:
        if not request.bypass_permissions or not self.descriptor.permission_bypass_flag:
            return []
        return [self.descriptor.permission_bypass_flag]

    def _ignore_reasoning_effort(self, request: ExecutionRequest) -> None:
        if request.reasoning_effort is not ReasoningEffort.NONE:
            logger.debug(
                "%s has no reasoning-effort setting; ignoring %s",
                self.descriptor.name,
                request.reasoning_effort.value,
            )


class ClaudeBuilder(_BaseBuilder):
    """``claude -p`` with the prompt piped through stdin."""

    def build(self, request: ExecutionRequest) -> BuiltCommand:
        argv = [
            self.descriptor.executable,
            "-p",
            "--output-format",
            "text",
            *self._model_args(request),
            *self._bypass_args(request),
        ]
        return BuiltCommand(
            argv=tuple(argv),
            stdin_text=_with_reasoning_phrase(request.prompt, request.reasoning_effort),
        )


class CodexBuilder(_BaseBuilder):
    """``codex exec`` reading the prompt from stdin (``-``)."""

    def build(self, request: ExecutionRequest) -> BuiltCommand:
        argv = [
            self.descriptor.executable,
            "exec",
            *self._model_args(request),
            *self._bypass_args(request),
        ]
        if request.reasoning_effort is not ReasoningEffort.NONE:
            argv.extend(["-c", f"model_reasoning_effort={request.reasoning_effort.value}"])
        argv.append("-")
        return BuiltCommand(argv=tuple(argv), stdin_text=request.prompt)


class GeminiBuilder(_BaseBuilder):
    """``gemini --prompt`` with ``@path`` context references."""

    native_context = True

    def build(self, request: ExecutionRequest) -> BuiltCommand:
        self._ignore_reasoning_effort(request)
        prompt = _with_context_list(request.prompt, existing_context_files(request))
        argv = [
            self.descriptor.executable,
            *self._model_args(request),
            *self._bypass_args(request),
            "--prompt",
            prompt,
        ]
        return BuiltCommand(argv=tuple(argv))


class QwenBuilder(GeminiBuilder):
    """Qwen Code is a Gemini CLI fork and shares its conventions."""


class CopilotBuilder(_BaseBuilder):
    """``copilot -p`` naming context paths in the prompt, ``--add-dir`` per directory."""

    native_context = True

    def build(self, request: ExecutionRequest) -> BuiltCommand:
        self._ignore_reasoning_effort(request)
        context_files = existing_context_files(request)
        argv = [
            self.descriptor.executable,
            "-p",
            _with_context_list(request.prompt, context_files, marker=""),
            *self._model_args(request),
            *self._bypass_args(request),
        ]
        seen: set[Path] = set()
        for path in context_files:
            directory = path.parent
            if directory in seen:
                continue
            seen.add(directory)
            argv.extend(["--add-dir", str(directory)])
        return BuiltCommand(argv=tuple(argv))


class CursorBuilder(_BaseBuilder):
    """``cursor-agent -p`` with a positional prompt."""

    def build(self, request: ExecutionRequest) -> BuiltCommand:
        self._ignore_reasoning_effort(request)
        argv = [
            self.descriptor.executable,
            "-p",
            "--output-format",
            "text",
            *self._model_args(request),
            *self._bypass_args(request),
            request.prompt,
        ]
        return BuiltCommand(argv=tuple(argv))


class GenericBuilder(_BaseBuilder):
    """Fallback for custom registry entries: flags first, prompt last."""

    def build(self, request: ExecutionRequest) -> BuiltCommand:
        self._ignore_reasoning_effort(request)
        argv = [
            self.descriptor.executable,
            *self._model_args(request),
            *self._bypass_args(request),
            request.prompt,
        ]
        return BuiltCommand(argv=tuple(argv))


BUILDERS: dict[str, type[_BaseBuilder]] = {
    "claude": ClaudeBuilder,
    "codex": CodexBuilder,
    "gemini": GeminiBuilder,
    "qwen": QwenBuilder,
    "copilot": CopilotBuilder,
    "cursor": CursorBuilder,
}


def builder_for(descriptor: ToolDescriptor) -> ArgumentBuilder:
    """Return the argv builder registered for the descriptor's canonical name."""

    builder_cls = BUILDERS.get(descriptor.name, GenericBuilder)
    return builder_cls(descriptor)


def existing_context_files(request: ExecutionRequest) -> list[Path]:
    """Resolve context files to absolute paths, skipping missing ones."""

    resolved: list[Path] = []
    for path in request.context_files:
        if not path.exists():
            logger.warning("Context file not found, skipping: %s", path)
            continue
        resolved.append(path.resolve())
    return resolved


def _with_reasoning_phrase(prompt: str, effort: ReasoningEffort) -> str:
    phrase = CLAUDE_REASONING_PHRASES.get(effort)
    if phrase is None:
        return prompt
    return f"{prompt}\n\n{phrase}"


def _with_context_list(prompt: str, paths: list[Path], *, marker: str = "@") -> str:
    if not paths:
        return prompt
    references = " ".join(f"{marker}{path.as_posix()}" for path in paths)
    return f"{prompt}\n\nContext files: {references}"
