"""TCP reachability probe used before remote configuration."""

from __future__ import annotations

import logging
import socket
import time
from collections.abc import Callable

from auto_proxy.domain.errors import NotReadyError

logger = logging.getLogger(__name__)

SSH_PORT = 22


def _tcp_connect(host: str, port: int, timeout: float) -> None:
    with socket.create_connection((host, port), timeout=timeout):
        pass


class ReadinessProber:
    """Wait until ``host:port`` accepts a TCP connection or the timeout expires."""

    def __init__(
        self,
        port: int = SSH_PORT,
        poll_seconds: float = 2.0,
        connect_timeout: float = 2.0,
        connect: Callable[[str, int, float], None] = _tcp_connect,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.port = port
        self._poll_seconds = poll_seconds
        self._connect_timeout = connect_timeout
        self._connect = connect
        self._sleep = sleep
        self._clock = clock

    def wait_until_ready(self, host: str, timeout: float) -> int:
        """Return the number of attempts it took; raise :class:`NotReadyError` on expiry."""
        deadline = self._clock() + timeout
        attempts = 0
        while self._clock() < deadline:
            attempts += 1
            try:
                self._connect(host, self.port, self._connect_timeout)
            except OSError as exc:
                logger.info(
                    "%s:%d not ready (attempt %d): %s", host, self.port, attempts, exc
                )
                self._sleep(self._poll_seconds)
                continue
            logger.info("%s:%d reachable after %d attempt(s)", host, self.port, attempts)
            return attempts

        logger.error("%s:%d not ready after %gs", host, self.port, timeout)
        raise NotReadyError(host, self.port, timeout)
