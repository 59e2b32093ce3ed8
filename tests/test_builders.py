from __future__ import annotations

from pathlib import Path

import allure

from agent_batch.orchestrator.backend import builder_for
from agent_batch.orchestrator.backend.builders import GenericBuilder
from agent_batch.orchestrator.models import ExecutionRequest, ReasoningEffort, ToolDescriptor
from agent_batch.orchestrator.registry import default_registry

pytestmark = [
    allure.epic("Tool Registry"),
    allure.feature("Argument Builders"),
]


def _build(tool: str, **overrides):
    descriptor = default_registry().resolve(tool)
    assert descriptor is not None
    request = ExecutionRequest(
        files=(Path("a.md"),),
        prompt=overrides.pop("prompt", "Fix typos"),
        model=overrides.pop("model", descriptor.default_model),
        **overrides,
    )
    return builder_for(descriptor).build(request)


def test_claude_pipes_prompt_and_appends_reasoning_phrase() -> None:
    command = _build("claude", reasoning_effort=ReasoningEffort.HIGH)

    assert command.argv == (
        "claude",
        "-p",
        "--output-format",
        "text",
        "--model",
        "sonnet",
        "--dangerously-skip-permissions",
    )
    assert command.stdin_text == "Fix typos\n\nultrathink"


def test_claude_without_effort_keeps_prompt_unchanged() -> None:
    command = _build("claude")

    assert command.stdin_text == "Fix typos"


def test_codex_passes_native_reasoning_effort_and_reads_stdin() -> None:
    command = _build("codex", reasoning_effort=ReasoningEffort.MEDIUM)

    assert command.argv == (
        "codex",
        "exec",
        "--model",
        "gpt-5-codex",
        "--dangerously-bypass-approvals-and-sandbox",
        "-c",
        "model_reasoning_effort=medium",
        "-",
    )
    assert command.stdin_text == "Fix typos"


def test_bypass_flag_is_omitted_when_disabled() -> None:
    command = _build("codex", bypass_permissions=False)

    assert "--dangerously-bypass-approvals-and-sandbox" not in command.argv


def test_gemini_references_context_files_with_at_paths(tmp_path: Path) -> None:
    context = tmp_path / "style.md"
    context.write_text("be terse", "utf-8")
    missing = tmp_path / "missing.md"

    command = _build("gemini", context_files=(context, missing))

    assert command.argv[:4] == ("gemini", "--model", "gemini-2.5-pro", "--yolo")
    assert command.argv[4] == "--prompt"
    assert command.argv[5] == f"Fix typos\n\nContext files: @{context.resolve().as_posix()}"
    assert command.stdin_text is None


def test_qwen_shares_gemini_conventions() -> None:
    command = _build("qwen", reasoning_effort=ReasoningEffort.HIGH)

    assert command.argv == (
        "qwen",
        "--model",
        "qwen3-coder-plus",
        "--yolo",
        "--prompt",
        "Fix typos",
    )


def test_copilot_adds_each_context_directory_once(tmp_path: Path) -> None:
    first = tmp_path / "a.md"
    second = tmp_path / "b.md"
    first.write_text("a", "utf-8")
    second.write_text("b", "utf-8")

    command = _build("copilot", context_files=(first, second))

    assert command.argv[:2] == ("copilot", "-p")
    assert command.argv[2].startswith("Fix typos")
    assert command.argv.count("--add-dir") == 1
    assert command.argv[-1] == str(tmp_path.resolve())
    assert "--allow-all-tools" in command.argv


def test_copilot_names_context_files_in_the_prompt(tmp_path: Path) -> None:
    glossary = tmp_path / "ctx" / "glossary.json"
    glossary.parent.mkdir()
    glossary.write_text("{}", "utf-8")

    command = _build("copilot", context_files=(glossary,))

    prompt = command.argv[2]
    assert f"Context files: {glossary.resolve().as_posix()}" in prompt
    assert f"@{glossary.resolve().as_posix()}" not in prompt
    assert command.argv[-2:] == ("--add-dir", str(glossary.parent.resolve()))


def test_cursor_takes_prompt_as_last_argument() -> None:
    command = _build("cursor")

    assert command.argv[0] == "cursor-agent"
    assert command.argv[-1] == "Fix typos"
    assert "--force" in command.argv


def test_unknown_descriptor_uses_generic_builder() -> None:
    descriptor = ToolDescriptor(
        name="aider",
        executable="aider",
        permission_bypass_flag="--yes-always",
        model_flag="--model",
        default_model="sonnet",
        priority=9,
    )
    builder = builder_for(descriptor)

    command = builder.build(
        ExecutionRequest(files=(Path("a.md"),), prompt="Fix typos", model="sonnet"),
    )

    assert isinstance(builder, GenericBuilder)
    assert command.argv == ("aider", "--model", "sonnet", "--yes-always", "Fix typos")
