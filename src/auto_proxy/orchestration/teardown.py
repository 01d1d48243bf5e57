"""Teardown pipeline: lookup -> inspect -> delete instance -> delete disk -> save.

Instance deletion failure aborts with the record untouched. Disk deletion
failure does not: the instance record is still dropped and a ``disk``
record for the orphaned volume takes its place, so the billed disk stays
visible until :meth:`TeardownPipeline.reclaim_orphans` succeeds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from auto_proxy.domain.errors import AutoProxyError, ProviderError, TeardownError
from auto_proxy.domain.models import ProxyRecord, RecordKind, find_instance_record
from auto_proxy.orchestration.retry import RetryPolicy
from auto_proxy.orchestration.waiter import OperationWaiter
from auto_proxy.providers.base import CloudProvider
from auto_proxy.storage.records import RecordStore

logger = logging.getLogger(__name__)


class TeardownOutcome(str, Enum):
    DELETED = "deleted"
    PARTIAL = "partial"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class TeardownResult:
    name: str
    outcome: TeardownOutcome
    record: ProxyRecord | None = None
    orphaned_disk: str | None = None

    @property
    def found(self) -> bool:
        return self.outcome is not TeardownOutcome.NOT_FOUND


@dataclass
class ReclaimResult:
    reclaimed: list[str] = field(default_factory=list)
    remaining: list[str] = field(default_factory=list)


class TeardownPipeline:
    def __init__(
        self,
        provider: CloudProvider,
        store: RecordStore,
        retry: RetryPolicy,
        waiter: OperationWaiter,
    ) -> None:
        self._provider = provider
        self._store = store
        self._retry = retry
        self._waiter = waiter

    def teardown(self, name: str) -> TeardownResult:
        try:
            records = self._store.load()
        except AutoProxyError as exc:
            raise TeardownError("lookup", name, exc) from exc

        record = find_instance_record(records, name)
        if record is None:
            logger.info("Proxy not found: %s", name)
            return TeardownResult(name=name, outcome=TeardownOutcome.NOT_FOUND)

        disk_id = self._inspect(record)

        logger.info("Deleting instance %s in zone %s", record.instance_id, record.zone)
        try:
            handle = self._retry.call(
                "Delete instance",
                lambda: self._provider.delete_instance(record.zone, record.instance_id),
            )
            self._waiter.wait(handle)
        except AutoProxyError as exc:
            logger.error("Teardown of %s aborted at delete-instance: %s", name, exc)
            raise TeardownError("delete-instance", name, exc) from exc
        logger.info("Instance %s deleted", record.instance_id)

        records.remove(record)

        orphaned: str | None = None
        if disk_id and not self._delete_disk(record.zone, disk_id):
            orphaned = disk_id
            records.append(
                ProxyRecord(
                    name=record.name,
                    provider=record.provider,
                    region=record.region,
                    zone=record.zone,
                    instance_id=disk_id,
                    ip="",
                    kind=RecordKind.DISK,
                    location=record.location,
                )
            )

        try:
            self._store.save(records)
        except AutoProxyError as exc:
            raise TeardownError(
                "record", name, exc, f"instance {record.instance_id} is already deleted"
            ) from exc

        outcome = TeardownOutcome.PARTIAL if orphaned else TeardownOutcome.DELETED
        return TeardownResult(name=name, outcome=outcome, record=record, orphaned_disk=orphaned)

    def reclaim_orphans(self) -> ReclaimResult:
        """Retry deletion of every recorded orphan disk; save once at the end."""
        records = self._store.load()
        result = ReclaimResult()
        kept: list[ProxyRecord] = []
        for record in records:
            if record.kind is not RecordKind.DISK:
                kept.append(record)
                continue
            if self._delete_disk(record.zone, record.instance_id):
                result.reclaimed.append(record.instance_id)
            else:
                result.remaining.append(record.instance_id)
                kept.append(record)

        if result.reclaimed:
            self._store.save(kept)
        return result

    def _inspect(self, record: ProxyRecord) -> str | None:
        # Diagnostic only: failure just means the boot disk cannot be found.
        try:
            info = self._provider.get_instance_info(record.zone, record.instance_id)
        except ProviderError as exc:
            logger.warning(
                "Could not inspect instance %s before deletion, boot disk will not be "
                "deleted: %s",
                record.instance_id,
                exc,
            )
            return None
        logger.info("Found boot disk: %s", info.disk_id)
        return info.disk_id or None

    def _delete_disk(self, zone: str, disk_id: str) -> bool:
        logger.info("Deleting disk %s in zone %s", disk_id, zone)
        try:
            handle = self._retry.call(
                "Delete disk", lambda: self._provider.delete_disk(zone, disk_id)
            )
            self._waiter.wait(handle)
        except AutoProxyError as exc:
            logger.error("Disk %s could not be deleted: %s", disk_id, exc)
            return False
        logger.info("Disk %s deleted", disk_id)
        return True
