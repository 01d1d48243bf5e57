"""Retry/backoff policy for provider submission calls."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from auto_proxy.domain.errors import ProviderError, RetriesExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_SECONDS = 1.0


def is_retryable(exc: BaseException) -> bool:
    """Only provider errors carrying a 5xx status are transient."""
    return isinstance(exc, ProviderError) and exc.retryable


@dataclass
class RetryPolicy:
    """Exponential backoff: attempt *k* (0-indexed) waits ``base * 2**k``.

    Every retryable failure, including the last one, is followed by its
    wait; once ``max_attempts`` calls have failed the policy raises
    :class:`RetriesExhaustedError` rather than the underlying error.
    Non-retryable errors propagate immediately.
    """

    base_seconds: float = DEFAULT_BASE_SECONDS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def backoff(self, attempt: int) -> float:
        return self.base_seconds * (2**attempt)

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        return attempt < self.max_attempts and is_retryable(exc)

    def call(self, label: str, func: Callable[[], T]) -> T:
        last_error: BaseException | None = None
        for attempt in range(self.max_attempts):
            try:
                return func()
            except ProviderError as exc:
                if not self.should_retry(exc, attempt):
                    logger.error("%s non-retryable error: %s", label, exc)
                    raise
                last_error = exc
                wait = self.backoff(attempt)
                logger.warning(
                    "%s retryable error (%d/%d): %s, waiting %gs",
                    label,
                    attempt + 1,
                    self.max_attempts,
                    exc,
                    wait,
                )
                self.sleep(wait)

        logger.error("%s failed after %d retries", label, self.max_attempts)
        raise RetriesExhaustedError(label, self.max_attempts, last_error)
