"""Cloud provider adapters and the registry that selects one by name."""

from __future__ import annotations

from collections.abc import Callable

from auto_proxy.config import ProviderSettings
from auto_proxy.providers.aws_ec2 import EC2Provider
from auto_proxy.providers.base import CloudProvider

ProviderFactory = Callable[[ProviderSettings], CloudProvider]

_PROVIDERS: dict[str, ProviderFactory] = {
    EC2Provider.name: EC2Provider,
}


def available_providers() -> list[str]:
    return sorted(_PROVIDERS)


def register_provider(name: str, factory: ProviderFactory) -> None:
    _PROVIDERS[name] = factory


def build_provider(settings: ProviderSettings) -> CloudProvider:
    try:
        factory = _PROVIDERS[settings.name]
    except KeyError:
        raise ValueError(
            f"Unknown provider {settings.name!r}; available: {', '.join(available_providers())}"
        ) from None
    return factory(settings)


__all__ = [
    "CloudProvider",
    "EC2Provider",
    "available_providers",
    "build_provider",
    "register_provider",
]
