"""Exponential-backoff retry state machine around one tool invocation."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from agent_batch.orchestrator.failure_classifier import FailureClassification, classify_failure
from agent_batch.orchestrator.models import AttemptOutcome, RetryStatus

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_DELAY_MINUTES = 2.0
DEFAULT_MAX_TOTAL_MINUTES = 240.0


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Backoff parameters; delays are expressed in minutes."""

    enabled: bool = True
    initial_delay_minutes: float = DEFAULT_INITIAL_DELAY_MINUTES
    max_total_minutes: float = DEFAULT_MAX_TOTAL_MINUTES
    seconds_per_minute: float = 60.0
    transient_exit_codes: tuple[int, ...] = (137, 143)

    def __post_init__(self) -> None:
        if self.initial_delay_minutes <= 0:
            raise ValueError("Retry initial delay must be > 0 minutes.")
        if self.max_total_minutes < 0:
            raise ValueError("Retry ceiling must be >= 0 minutes.")
        if self.seconds_per_minute < 0:
            raise ValueError("seconds_per_minute must be >= 0.")


@dataclass(slots=True)
class RetryState:
    """Mutable loop state scoped to one engine run."""

    attempt: int = 1
    cumulative_delay_minutes: float = 0.0
    status: RetryStatus = RetryStatus.ATTEMPTING

    def next_delay_minutes(self, policy: RetryPolicy) -> float:
        return policy.initial_delay_minutes * (2 ** (self.attempt - 1))


@dataclass(frozen=True, slots=True)
class Transition:
    """Decision taken after one attempt."""

    status: RetryStatus
    classification: FailureClassification | None
    delay_minutes: float | None


@dataclass(frozen=True, slots=True)
class RetryResult:
    """Final disposition of an engine run."""

    outcome: AttemptOutcome
    status: RetryStatus
    attempts: int
    cumulative_delay_minutes: float
    classification: FailureClassification | None

    @property
    def succeeded(self) -> bool:
        return self.status is RetryStatus.SUCCEEDED


def next_transition(state: RetryState, outcome: AttemptOutcome, policy: RetryPolicy) -> Transition:
    """Decide what follows an attempt without sleeping or mutating state."""

    if outcome.succeeded:
        return Transition(status=RetryStatus.SUCCEEDED, classification=None, delay_minutes=None)

    classification = classify_failure(
        exit_code=outcome.exit_code,
        stdout=outcome.stdout,
        stderr=outcome.stderr,
        transient_exit_codes=policy.transient_exit_codes,
    )
    if not classification.retryable:
        return Transition(
            status=RetryStatus.FAILED_NON_RETRYABLE,
            classification=classification,
            delay_minutes=None,
        )
    if not policy.enabled:
        return Transition(
            status=RetryStatus.EXHAUSTED,
            classification=classification,
            delay_minutes=None,
        )

    delay = state.next_delay_minutes(policy)
    if state.cumulative_delay_minutes + delay > policy.max_total_minutes:
        return Transition(
            status=RetryStatus.EXHAUSTED,
            classification=classification,
            delay_minutes=None,
        )
    return Transition(
        status=RetryStatus.ATTEMPTING,
        classification=classification,
        delay_minutes=delay,
    )


class RetryEngine:
    """Runs an operation until success, a fatal failure, or the time ceiling."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], object] = time.sleep,
        should_stop: Callable[[], bool] | None = None,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._should_stop = should_stop or (lambda: False)

    def run(self, operation: Callable[[int], AttemptOutcome], *, label: str = "") -> RetryResult:
        """Call ``operation(attempt)`` until a terminal state; never raises for tool failures."""

        state = RetryState()
        while True:
            outcome = operation(state.attempt)
            transition = next_transition(state, outcome, self.policy)
            state.status = transition.status

            if transition.status is not RetryStatus.ATTEMPTING:
                if transition.status is RetryStatus.EXHAUSTED and self.policy.enabled:
                    logger.warning(
                        "Retry budget exhausted for %s after %d attempt(s) (%.0f min waited)",
                        label or "invocation",
                        state.attempt,
                        state.cumulative_delay_minutes,
                    )
                return self._result(state, outcome, transition.classification)

            if self._should_stop():
                state.status = RetryStatus.CANCELLED
                return self._result(state, outcome, transition.classification)

            delay = transition.delay_minutes or 0.0
            logger.warning(
                "Attempt %d for %s failed (%s: %s); retrying in %.0f min",
                state.attempt,
                label or "invocation",
                transition.classification.matched_rule if transition.classification else "",
                transition.classification.matched_pattern if transition.classification else "",
                delay,
            )
            self._sleep(delay * self.policy.seconds_per_minute)
            state.cumulative_delay_minutes += delay
            if self._should_stop():
                state.status = RetryStatus.CANCELLED
                return self._result(state, outcome, transition.classification)
            state.attempt += 1

    @staticmethod
    def _result(
        state: RetryState,
        outcome: AttemptOutcome,
        classification: FailureClassification | None,
    ) -> RetryResult:
        return RetryResult(
            outcome=outcome,
            status=state.status,
            attempts=state.attempt,
            cumulative_delay_minutes=state.cumulative_delay_minutes,
            classification=classification,
        )
