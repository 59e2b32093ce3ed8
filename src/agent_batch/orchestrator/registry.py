"""Static registry of supported AI coding-assistant CLIs."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from functools import lru_cache

from agent_batch.orchestrator.models import ToolDescriptor

ALL_TOOLS = "all"

DEFAULT_TOOLS: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        name="claude",
        executable="claude",
        permission_bypass_flag="--dangerously-skip-permissions",
        model_flag="--model",
        default_model="sonnet",
        priority=1,
        aliases=("code", "claude-code", "claudecode"),
        install_command="npm install -g @anthropic-ai/claude-code",
        init_command="claude",
    ),
    ToolDescriptor(
        name="codex",
        executable="codex",
        permission_bypass_flag="--dangerously-bypass-approvals-and-sandbox",
        model_flag="--model",
        default_model="gpt-5-codex",
        priority=2,
        aliases=("openai", "openai-codex"),
        install_command="npm install -g @openai/codex",
        init_command="codex login",
    ),
    ToolDescriptor(
        name="gemini",
        executable="gemini",
        permission_bypass_flag="--yolo",
        model_flag="--model",
        default_model="gemini-2.5-pro",
        priority=3,
        aliases=("gemini-cli", "google"),
        install_command="npm install -g @google/gemini-cli",
        init_command="gemini",
    ),
    ToolDescriptor(
        name="copilot",
        executable="copilot",
        permission_bypass_flag="--allow-all-tools",
        model_flag="--model",
        default_model="claude-sonnet-4.5",
        priority=4,
        aliases=("github-copilot", "gh-copilot"),
        install_command="npm install -g @github/copilot",
        init_command="copilot",
    ),
    ToolDescriptor(
        name="cursor",
        executable="cursor-agent",
        permission_bypass_flag="--force",
        model_flag="--model",
        default_model="auto",
        priority=5,
        aliases=("cursor-agent", "cursor-cli"),
        install_command="curl https://cursor.com/install -fsS | bash",
        init_command="cursor-agent login",
    ),
    ToolDescriptor(
        name="qwen",
        executable="qwen",
        permission_bypass_flag="--yolo",
        model_flag="--model",
        default_model="qwen3-coder-plus",
        priority=6,
        aliases=("qwen-code", "qwen-coder"),
        install_command="npm install -g @qwen-code/qwen-code",
        init_command="qwen",
    ),
)


class ToolRegistry:
    """Immutable lookup table from tool names and aliases to descriptors."""

    def __init__(self, descriptors: Iterable[ToolDescriptor]) -> None:
        by_name: dict[str, ToolDescriptor] = {}
        aliases: dict[str, str] = {}
        for descriptor in descriptors:
            name = _normalize_name(descriptor.name)
            if not name:
                raise ValueError("Tool descriptor name must not be empty.")
            if name == ALL_TOOLS:
                raise ValueError(f"Tool name {ALL_TOOLS!r} is reserved.")
            by_name[name] = descriptor
            for alias in descriptor.aliases:
                aliases[_normalize_name(alias)] = name
        self._by_name: Mapping[str, ToolDescriptor] = by_name
        self._aliases: Mapping[str, str] = {
            alias: name for alias, name in aliases.items() if alias not in by_name
        }

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.resolve(name) is not None

    def __len__(self) -> int:
        return len(self._by_name)

    def resolve(self, alias_or_name: str) -> ToolDescriptor | None:
        """Return the descriptor for a canonical name or alias, case-insensitively."""

        key = _normalize_name(alias_or_name)
        descriptor = self._by_name.get(key)
        if descriptor is not None:
            return descriptor
        canonical = self._aliases.get(key)
        if canonical is None:
            return None
        return self._by_name[canonical]

    def list_by_priority(self) -> list[ToolDescriptor]:
        """Return descriptors in auto-detection preference order."""

        return sorted(self._by_name.values(), key=lambda item: (item.priority, item.name))

    def names(self) -> tuple[str, ...]:
        return tuple(descriptor.name for descriptor in self.list_by_priority())

    def extended(self, *descriptors: ToolDescriptor) -> ToolRegistry:
        """Return a new registry with extra or replacement descriptors."""

        return ToolRegistry((*self._by_name.values(), *descriptors))


@lru_cache(maxsize=1)
def default_registry() -> ToolRegistry:
    """Build the shared registry of built-in tools once per process."""

    return ToolRegistry(DEFAULT_TOOLS)


def _normalize_name(value: str) -> str:
    return value.strip().lower()
