"""Retry logic for LLM formatting errors.

Retries only on JSON parse or schema validation failures.
Does NOT retry on adapter transport errors.
"""

import logging
from typing import List, Optional, Type, TypeVar

from pydantic import BaseModel

from llm_analysis.adapter import BaseLLMAdapter
from llm_analysis.validator import LLMOutputValidationError, validate_llm_output

logger = logging.getLogger(__name__)

_RETRYABLE_STAGES = frozenset({"json_parse", "schema"})

OutputT = TypeVar("OutputT", bound=BaseModel)


class LLMRetryExhaustedError(Exception):
    """Raised when all retry attempts fail validation.

    Attributes:
        attempts: Total number of attempts made (initial + retries).
        last_error: The validation error from the final attempt.
        history: Validation errors from every failed attempt.
    """

    def __init__(
        self,
        attempts: int,
        last_error: LLMOutputValidationError,
        history: List[LLMOutputValidationError],
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        self.history = history
        super().__init__(
            f"LLM output validation failed after {attempts} attempt(s). "
            f"Last error: {last_error}"
        )


def generate_with_retry(
    adapter: BaseLLMAdapter,
    prompt: str,
    output_model: Type[OutputT],
    max_retries: int = 2,
    image_base64: Optional[str] = None,
) -> OutputT:
    """Generate LLM output with retry on formatting errors.

    Args:
        adapter: An LLM adapter implementing ``generate``.
        prompt: The fully formatted prompt string.
        output_model: Output contract the response must satisfy.
        max_retries: Additional attempts after the first failure.
        image_base64: Optional screenshot forwarded on every attempt.

    Returns:
        A validated ``output_model`` instance.

    Raises:
        LLMAdapterError: If the adapter transport fails (not retried).
        LLMRetryExhaustedError: If all attempts fail with retryable errors.
    """
    errors: List[LLMOutputValidationError] = []
    total_attempts = 1 + max(0, max_retries)

    for attempt in range(1, total_attempts + 1):
        raw = adapter.generate(prompt, image_base64=image_base64)

        try:
            result = validate_llm_output(raw, output_model)
            if attempt > 1:
                logger.info(
                    "LLM output validated on attempt %d/%d",
                    attempt,
                    total_attempts,
                )
            return result

        except LLMOutputValidationError as exc:
            if exc.stage not in _RETRYABLE_STAGES:
                raise

            errors.append(exc)
            logger.warning(
                "Attempt %d/%d failed at stage '%s': %s",
                attempt,
                total_attempts,
                exc.stage,
                "; ".join(exc.errors),
            )

    raise LLMRetryExhaustedError(
        attempts=total_attempts,
        last_error=errors[-1],
        history=errors,
    )
