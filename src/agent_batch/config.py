"""Runtime configuration for batch execution."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from agent_batch.orchestrator.budget import DEFAULT_MAX_ERRORS, DEFAULT_MAX_TOKEN_ERRORS
from agent_batch.orchestrator.detection import DEFAULT_PROBE_TIMEOUT_SECONDS
from agent_batch.orchestrator.modification_gate import DEFAULT_COMMIT_DEPTH
from agent_batch.orchestrator.parallel import DEFAULT_MAX_WORKERS
from agent_batch.orchestrator.registry import ToolRegistry, default_registry
from agent_batch.orchestrator.retry import (
    DEFAULT_INITIAL_DELAY_MINUTES,
    DEFAULT_MAX_TOTAL_MINUTES,
    RetryPolicy,
)

ENV_PREFIX = "AGENT_BATCH_"


@dataclass(slots=True)
class ToolSettings:
    """Tool selection defaults."""

    default_tool: str | None = None
    default_model: str | None = None
    model_overrides: dict[str, str] = field(default_factory=dict)
    bypass_permissions: bool = True
    probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS

    def model_for(self, tool: str, fallback: str) -> str:
        """Resolve the model for a tool: per-tool override, global default, descriptor default."""

        return self.model_overrides.get(tool) or self.default_model or fallback


@dataclass(slots=True)
class RetrySettings:
    """Backoff retry settings."""

    enabled: bool = True
    initial_delay_minutes: float = DEFAULT_INITIAL_DELAY_MINUTES
    max_total_minutes: float = DEFAULT_MAX_TOTAL_MINUTES

    def to_policy(
        self,
        *,
        enabled: bool | None = None,
        max_total_minutes: float | None = None,
    ) -> RetryPolicy:
        return RetryPolicy(
            enabled=self.enabled if enabled is None else enabled,
            initial_delay_minutes=self.initial_delay_minutes,
            max_total_minutes=(
                self.max_total_minutes if max_total_minutes is None else max_total_minutes
            ),
        )


@dataclass(slots=True)
class BudgetSettings:
    """Error-budget thresholds."""

    max_errors: int = DEFAULT_MAX_ERRORS
    max_token_errors: int = DEFAULT_MAX_TOKEN_ERRORS


@dataclass(slots=True)
class ExecutionSettings:
    """Dispatch defaults."""

    max_workers: int = DEFAULT_MAX_WORKERS
    commit_depth: int = DEFAULT_COMMIT_DEPTH


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    tools: ToolSettings = field(default_factory=ToolSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    budget: BudgetSettings = field(default_factory=BudgetSettings)
    execution: ExecutionSettings = field(default_factory=ExecutionSettings)

    @classmethod
    def from_env(cls, registry: ToolRegistry | None = None) -> Settings:
        """Load settings from ``AGENT_BATCH_*`` environment variables."""

        settings = cls(
            tools=ToolSettings(
                default_tool=_env_str("AGENT_BATCH_DEFAULT_TOOL"),
                default_model=_env_str("AGENT_BATCH_DEFAULT_MODEL"),
                model_overrides=_collect_model_overrides(registry),
                bypass_permissions=_env_bool("AGENT_BATCH_BYPASS_PERMISSIONS", default=True),
                probe_timeout_seconds=_env_float(
                    "AGENT_BATCH_PROBE_TIMEOUT_SECONDS",
                    DEFAULT_PROBE_TIMEOUT_SECONDS,
                ),
            ),
            retry=RetrySettings(
                enabled=_env_bool("AGENT_BATCH_RETRY_ENABLED", default=True),
                initial_delay_minutes=_env_float(
                    "AGENT_BATCH_RETRY_INITIAL_DELAY_MINUTES",
                    DEFAULT_INITIAL_DELAY_MINUTES,
                ),
                max_total_minutes=_env_float(
                    "AGENT_BATCH_RETRY_MAX_MINUTES",
                    DEFAULT_MAX_TOTAL_MINUTES,
                ),
            ),
            budget=BudgetSettings(
                max_errors=_env_int("AGENT_BATCH_MAX_ERRORS", DEFAULT_MAX_ERRORS),
                max_token_errors=_env_int("AGENT_BATCH_MAX_TOKEN_ERRORS", DEFAULT_MAX_TOKEN_ERRORS),
            ),
            execution=ExecutionSettings(
                max_workers=_env_int("AGENT_BATCH_MAX_WORKERS", DEFAULT_MAX_WORKERS),
                commit_depth=_env_int("AGENT_BATCH_COMMIT_DEPTH", DEFAULT_COMMIT_DEPTH),
            ),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise ``ValueError`` naming the offending variable."""

        if self.retry.initial_delay_minutes <= 0:
            raise ValueError("AGENT_BATCH_RETRY_INITIAL_DELAY_MINUTES must be > 0.")
        if self.retry.max_total_minutes < 0:
            raise ValueError("AGENT_BATCH_RETRY_MAX_MINUTES must be >= 0.")
        if self.budget.max_errors < 1:
            raise ValueError("AGENT_BATCH_MAX_ERRORS must be >= 1.")
        if self.budget.max_token_errors < 1:
            raise ValueError("AGENT_BATCH_MAX_TOKEN_ERRORS must be >= 1.")
        if self.execution.max_workers < 1:
            raise ValueError("AGENT_BATCH_MAX_WORKERS must be >= 1.")
        if self.execution.commit_depth < 0:
            raise ValueError("AGENT_BATCH_COMMIT_DEPTH must be >= 0.")
        if self.tools.probe_timeout_seconds <= 0:
            raise ValueError("AGENT_BATCH_PROBE_TIMEOUT_SECONDS must be > 0.")


def _collect_model_overrides(registry: ToolRegistry | None) -> dict[str, str]:
    registry = registry or default_registry()
    overrides: dict[str, str] = {}
    for name in registry.names():
        env_name = f"{ENV_PREFIX}{name.upper().replace('-', '_')}_MODEL"
        value = _env_str(env_name)
        if value is not None:
            overrides[name] = value
    return overrides


def _env_str(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
