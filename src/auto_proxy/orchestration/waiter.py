"""Polls a provider's long-running operation until it is terminal."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from auto_proxy.domain.errors import OperationFailedError, OperationTimeoutError
from auto_proxy.domain.models import OperationHandle, OperationStatus
from auto_proxy.providers.base import CloudProvider

logger = logging.getLogger(__name__)

DEFAULT_POLL_SECONDS = 2.0


class OperationWaiter:
    """Fixed-interval poller for :class:`OperationHandle` values.

    Status-check failures propagate unchanged: this layer never retries
    them. With ``timeout=None`` (the default) polling is unbounded.
    """

    def __init__(
        self,
        provider: CloudProvider,
        poll_seconds: float = DEFAULT_POLL_SECONDS,
        timeout: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._provider = provider
        self._poll_seconds = poll_seconds
        self._timeout = timeout
        self._sleep = sleep
        self._clock = clock

    def wait(self, handle: OperationHandle) -> OperationStatus:
        deadline = None if self._timeout is None else self._clock() + self._timeout
        polls = 0
        while True:
            status = self._provider.get_operation(handle)
            polls += 1
            if status.done:
                if status.error is not None:
                    logger.error(
                        "%s operation %s failed: %s", handle.kind, handle.token, status.error
                    )
                    raise OperationFailedError(handle, status.error)
                logger.info(
                    "%s operation %s done after %d poll(s)", handle.kind, handle.token, polls
                )
                return status

            if deadline is not None and self._clock() >= deadline:
                raise OperationTimeoutError(handle, self._timeout or 0.0)
            logger.info(
                "Waiting for %s %s (%s)...", handle.kind, handle.token, status.state or "pending"
            )
            self._sleep(self._poll_seconds)
