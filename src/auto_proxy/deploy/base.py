"""Remote configurator interface and the proxy service settings it applies."""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass
from typing import Protocol

from auto_proxy.config import ProxySettings


@dataclass(frozen=True)
class ShadowsocksConfig:
    port: int
    password: str
    method: str = "aes-256-gcm"
    timeout: int = 300
    server: str = "0.0.0.0"
    fast_open: bool = True

    def as_dict(self) -> dict[str, object]:
        return {
            "server": self.server,
            "server_port": self.port,
            "password": self.password,
            "timeout": self.timeout,
            "method": self.method,
            "fast_open": self.fast_open,
        }

    def to_json(self) -> str:
        return json.dumps(self.as_dict(), indent=4)

    @classmethod
    def from_settings(cls, settings: ProxySettings) -> "ShadowsocksConfig":
        return cls(
            port=settings.port,
            password=settings.password or secrets.token_urlsafe(18),
            method=settings.method,
            timeout=settings.timeout,
        )


class RemoteConfigurator(Protocol):
    """Push and apply the proxy configuration to a reachable host.

    Raises :class:`~auto_proxy.domain.errors.ConfigurationError` on failure.
    """

    service: ShadowsocksConfig

    def deploy(self, address: str) -> None: ...
