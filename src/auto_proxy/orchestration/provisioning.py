"""Provisioning pipeline: create -> wait -> address -> ready -> configure -> record.

Every step is a hard dependency on the one before it. A failure after the
instance was created leaves a live, billable instance with no record; the
pipeline does not delete it, it names it in the raised
:class:`ProvisioningError` so an operator can reconcile.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import TypeVar

from auto_proxy.deploy.base import RemoteConfigurator
from auto_proxy.domain.errors import (
    AutoProxyError,
    DuplicateProxyError,
    ProviderError,
    ProvisioningError,
)
from auto_proxy.domain.models import MachineRequest, ProxyRecord, RecordKind, find_instance_record
from auto_proxy.orchestration.readiness import ReadinessProber
from auto_proxy.orchestration.retry import RetryPolicy
from auto_proxy.orchestration.waiter import OperationWaiter
from auto_proxy.providers.base import CloudProvider
from auto_proxy.regions import RegionCatalog
from auto_proxy.storage.records import RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_READINESS_TIMEOUT = 60.0


class ProvisioningPipeline:
    def __init__(
        self,
        provider: CloudProvider,
        configurator: RemoteConfigurator,
        store: RecordStore,
        retry: RetryPolicy,
        waiter: OperationWaiter,
        prober: ReadinessProber,
        regions: RegionCatalog | None = None,
        readiness_timeout: float = DEFAULT_READINESS_TIMEOUT,
        token_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self._provider = provider
        self._configurator = configurator
        self._store = store
        self._retry = retry
        self._waiter = waiter
        self._prober = prober
        self._regions = regions or RegionCatalog()
        self._readiness_timeout = readiness_timeout
        self._token_factory = token_factory

    def provision(self, request: MachineRequest) -> ProxyRecord:
        name = request.name
        records = self._step("lookup", name, self._store.load)
        if find_instance_record(records, name) is not None:
            raise DuplicateProxyError(name)

        region = request.region or self._step(
            "region", name, lambda: self._provider.region_of_zone(request.zone)
        )
        logger.info(
            "Provisioning %s in %s (%s) as %s", name, request.zone, region, request.machine_type
        )

        # Shared by every retry of this create.
        client_token = self._token_factory()
        handle = self._step(
            "create",
            name,
            lambda: self._retry.call(
                "Create instance",
                lambda: self._provider.create_instance(
                    name, request.zone, request.machine_type, client_token
                ),
            ),
        )
        instance_id = handle.resource_id or handle.token
        orphan_hint = (
            f"instance {instance_id} in {request.zone} may still be running and is not "
            "recorded; delete it manually"
        )

        self._step("wait", name, lambda: self._waiter.wait(handle), orphan_hint)
        ip = self._step(
            "address", name, lambda: self._fetch_address(request.zone, instance_id), orphan_hint
        )
        self._step(
            "readiness",
            name,
            lambda: self._prober.wait_until_ready(ip, self._readiness_timeout),
            orphan_hint,
        )
        self._step("configure", name, lambda: self._configurator.deploy(ip), orphan_hint)

        record = ProxyRecord(
            name=name,
            provider=self._provider.name,
            region=region,
            zone=request.zone,
            instance_id=instance_id,
            ip=ip,
            kind=RecordKind.INSTANCE,
            location=self._regions.label(region),
        )
        records.append(record)
        self._step("record", name, lambda: self._store.save(records), orphan_hint)
        logger.info("Provisioned %s at %s (%s)", name, ip, instance_id)
        return record

    def _fetch_address(self, zone: str, instance_id: str) -> str:
        info = self._provider.get_instance_info(zone, instance_id)
        if not info.ip:
            raise ProviderError(f"instance {instance_id} has no public address")
        return info.ip

    def _step(self, step: str, name: str, func: Callable[[], T], hint: str = "") -> T:
        try:
            return func()
        except AutoProxyError as exc:
            logger.error("Provisioning %s aborted at %s: %s", name, step, exc)
            raise ProvisioningError(step, name, exc, hint) from exc
