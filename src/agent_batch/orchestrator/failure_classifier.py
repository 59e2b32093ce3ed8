"""Deterministic failure classification from free-form tool output.

The wrapped CLIs expose no structured error channel, so retry policy and the
error budget are driven by pattern matching over stdout/stderr. All patterns
live here so they can be tested and swapped in one place.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from agent_batch.orchestrator.models import FailureClass

FAILURE_CLASSIFIER_VERSION = 1

_AUTH_PATTERNS: tuple[str, ...] = (
    r"unauthori[sz]ed",
    r"invalid api key",
    r"api key (?:is )?(?:missing|not set|not found)",
    r"authentication",
    r"not logged in",
    r"please (?:log ?in|login|sign in)",
    r"forbidden",
    r"\b401\b",
    r"\b403\b",
    r"permission denied",
)
_INVALID_PARAMETER_PATTERNS: tuple[str, ...] = (
    r"invalid argument",
    r"invalid option",
    r"unknown option",
    r"unrecognized (?:argument|option)",
    r"unexpected argument",
    r"invalid model",
    r"unknown model",
    r"model not found",
    r"unsupported model",
)
_MISSING_FILE_PATTERNS: tuple[str, ...] = (
    r"no such file",
    r"file not found",
    r"command not found",
    r"enoent",
)
_CONFIGURATION_PATTERNS: tuple[str, ...] = (
    r"config(?:uration)? error",
    r"invalid config(?:uration)?",
    r"malformed config(?:uration)?",
)
_QUOTA_PATTERNS: tuple[str, ...] = (
    r"quota",
    r"insufficient[_ ]quota",
    r"credit",
    r"billing",
    r"payment required",
    r"usage limit",
    r"resource[_ ]exhausted",
    r"out of tokens",
)
_RETRYABLE_PATTERNS: tuple[str, ...] = (
    r"timed? ?out",
    r"\b429\b",
    r"too many requests",
    r"rate[ _-]?limit",
    r"\b5(?:00|02|03|04|29)\b",
    r"internal server error",
    r"bad gateway",
    r"service unavailable",
    r"gateway timeout",
    r"connection (?:reset|refused|error|closed|aborted)",
    r"econnreset",
    r"econnrefused",
    r"etimedout",
    r"network error",
    r"socket hang up",
    r"temporarily unavailable",
    r"overloaded",
    r"capacity",
    r"try again",
)

_NON_RETRYABLE_RULES: tuple[tuple[str, tuple[re.Pattern[str], ...]], ...] = (
    ("auth", tuple(re.compile(item) for item in _AUTH_PATTERNS)),
    ("invalid_parameters", tuple(re.compile(item) for item in _INVALID_PARAMETER_PATTERNS)),
    ("missing_file", tuple(re.compile(item) for item in _MISSING_FILE_PATTERNS)),
    ("configuration", tuple(re.compile(item) for item in _CONFIGURATION_PATTERNS)),
)
_QUOTA_RULE = tuple(re.compile(item) for item in _QUOTA_PATTERNS)
_RETRYABLE_RULE = tuple(re.compile(item) for item in _RETRYABLE_PATTERNS)


@dataclass(frozen=True, slots=True)
class FailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    matched_rule: str
    matched_pattern: str | None

    @property
    def retryable(self) -> bool:
        return self.failure_class in {FailureClass.RETRYABLE, FailureClass.QUOTA_EXHAUSTED}


def classify_failure(
    *,
    exit_code: int,
    stdout: str,
    stderr: str,
    transient_exit_codes: tuple[int, ...] = (137, 143),
) -> FailureClassification:
    """Classify a non-zero exit into a retry class.

    Non-retryable patterns win over retryable ones so that auth and
    configuration problems fail fast instead of burning the retry budget.
    """

    haystack = _normalize_text(stdout=stdout, stderr=stderr)

    for rule_name, patterns in _NON_RETRYABLE_RULES:
        pattern = _first_match(haystack, patterns)
        if pattern is not None:
            return FailureClassification(
                failure_class=FailureClass.NON_RETRYABLE,
                matched_rule=rule_name,
                matched_pattern=pattern,
            )

    pattern = _first_match(haystack, _QUOTA_RULE)
    if pattern is not None:
        return FailureClassification(
            failure_class=FailureClass.QUOTA_EXHAUSTED,
            matched_rule="quota",
            matched_pattern=pattern,
        )

    pattern = _first_match(haystack, _RETRYABLE_RULE)
    if pattern is not None or exit_code in transient_exit_codes:
        return FailureClassification(
            failure_class=FailureClass.RETRYABLE,
            matched_rule=(
                "transient_exit_code"
                if exit_code in transient_exit_codes and pattern is None
                else "transient"
            ),
            matched_pattern=pattern,
        )

    return FailureClassification(
        failure_class=FailureClass.NON_RETRYABLE,
        matched_rule="fallback_non_retryable",
        matched_pattern=None,
    )


def is_token_error(text: str) -> bool:
    """Return True when output mentions quota, credit or billing exhaustion."""

    return _first_match(text.lower(), _QUOTA_RULE) is not None


def _normalize_text(*, stdout: str, stderr: str) -> str:
    return f"{stderr}\n{stdout}".lower()


def _first_match(haystack: str, patterns: tuple[re.Pattern[str], ...]) -> str | None:
    for pattern in patterns:
        if pattern.search(haystack):
            return pattern.pattern
    return None
