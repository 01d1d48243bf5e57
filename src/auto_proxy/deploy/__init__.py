"""Remote configuration of provisioned hosts."""

from auto_proxy.deploy.ansible import AnsibleConfigurator
from auto_proxy.deploy.base import RemoteConfigurator, ShadowsocksConfig

__all__ = ["AnsibleConfigurator", "RemoteConfigurator", "ShadowsocksConfig"]
