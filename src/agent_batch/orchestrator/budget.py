"""Cross-batch error budget that triggers a global bail-out."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from agent_batch.orchestrator.failure_classifier import is_token_error

logger = logging.getLogger(__name__)

DEFAULT_MAX_ERRORS = 10
DEFAULT_MAX_TOKEN_ERRORS = 3


@dataclass(frozen=True, slots=True)
class BudgetDecision:
    """Outcome of recording one batch result."""

    should_bail_out: bool
    is_token_error: bool


class ErrorBudget:
    """Counts general and quota failures; mutated only by the coordinator.

    Quota/credit exhaustion is account-wide and does not go away by moving on
    to the next file, so it gets a stricter threshold than general failures.
    """

    def __init__(
        self,
        *,
        max_errors: int = DEFAULT_MAX_ERRORS,
        max_token_errors: int = DEFAULT_MAX_TOKEN_ERRORS,
    ) -> None:
        if max_errors < 1:
            raise ValueError("max_errors must be >= 1.")
        if max_token_errors < 1:
            raise ValueError("max_token_errors must be >= 1.")
        self.max_errors = max_errors
        self.max_token_errors = max_token_errors
        self.general_error_count = 0
        self.token_error_count = 0
        self.bailed_out = False

    def record(self, result_text: str, success: bool) -> BudgetDecision:
        if success:
            return BudgetDecision(should_bail_out=self.bailed_out, is_token_error=False)

        token_error = is_token_error(result_text)
        if token_error:
            self.token_error_count += 1
        else:
            self.general_error_count += 1

        if not self.bailed_out and (
            self.token_error_count >= self.max_token_errors
            or self.general_error_count >= self.max_errors
        ):
            self.bailed_out = True
            logger.error(
                "Error budget exhausted: general=%d/%d token=%d/%d; stopping dispatch",
                self.general_error_count,
                self.max_errors,
                self.token_error_count,
                self.max_token_errors,
            )
        return BudgetDecision(should_bail_out=self.bailed_out, is_token_error=token_error)
