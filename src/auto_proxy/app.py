"""Application context assembly."""

from __future__ import annotations

from dataclasses import dataclass

from auto_proxy.config import Settings, load_settings
from auto_proxy.deploy.ansible import AnsibleConfigurator, LineSink
from auto_proxy.deploy.base import ShadowsocksConfig
from auto_proxy.orchestration.provisioning import ProvisioningPipeline
from auto_proxy.orchestration.readiness import ReadinessProber
from auto_proxy.orchestration.retry import RetryPolicy
from auto_proxy.orchestration.teardown import TeardownPipeline
from auto_proxy.orchestration.waiter import OperationWaiter
from auto_proxy.providers import build_provider
from auto_proxy.providers.base import CloudProvider
from auto_proxy.regions import RegionCatalog, load_region_catalog
from auto_proxy.storage.records import JsonRecordStore


@dataclass
class AppContext:
    """Everything one CLI invocation needs, built once from settings."""

    settings: Settings
    provider: CloudProvider
    store: JsonRecordStore
    regions: RegionCatalog
    configurator: AnsibleConfigurator
    retry: RetryPolicy
    waiter: OperationWaiter
    prober: ReadinessProber

    def provisioning(self) -> ProvisioningPipeline:
        return ProvisioningPipeline(
            provider=self.provider,
            configurator=self.configurator,
            store=self.store,
            retry=self.retry,
            waiter=self.waiter,
            prober=self.prober,
            regions=self.regions,
            readiness_timeout=self.settings.orchestration.readiness_timeout_seconds,
        )

    def teardown(self) -> TeardownPipeline:
        return TeardownPipeline(
            provider=self.provider,
            store=self.store,
            retry=self.retry,
            waiter=self.waiter,
        )


def build_app_context(
    settings: Settings | None = None,
    line_sink: LineSink | None = None,
) -> AppContext:
    settings = settings or load_settings()
    orchestration = settings.orchestration
    provider = build_provider(settings.provider)

    return AppContext(
        settings=settings,
        provider=provider,
        store=JsonRecordStore(settings.storage.records_path),
        regions=load_region_catalog(provider.name, settings.storage.region_map_path),
        configurator=AnsibleConfigurator(
            service=ShadowsocksConfig.from_settings(settings.proxy),
            ssh_user=settings.deploy.ssh_user,
            ssh_key_path=settings.deploy.ssh_key_path,
            playbook_bin=settings.deploy.ansible_playbook_bin,
            line_sink=line_sink,
        ),
        retry=RetryPolicy(
            base_seconds=orchestration.retry_base_seconds,
            max_attempts=orchestration.retry_max_attempts,
        ),
        waiter=OperationWaiter(
            provider,
            poll_seconds=orchestration.operation_poll_seconds,
            timeout=orchestration.operation_timeout_seconds,
        ),
        prober=ReadinessProber(
            port=orchestration.readiness_port,
            poll_seconds=orchestration.readiness_poll_seconds,
            connect_timeout=orchestration.readiness_connect_timeout_seconds,
        ),
    )
