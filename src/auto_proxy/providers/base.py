"""Capability interface the orchestrator uses to talk to a cloud provider."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from auto_proxy.domain.models import InstanceInfo, OperationHandle, OperationStatus


@runtime_checkable
class CloudProvider(Protocol):
    """Enumerate provider resources and manage compute instances and disks.

    Mutating calls never block on completion: they return an
    :class:`OperationHandle` that the operation waiter polls through
    :meth:`get_operation`. ``client_token`` makes repeated
    ``create_instance`` calls for one provision launch at most one instance. Every failure is raised as
    :class:`~auto_proxy.domain.errors.ProviderError`.
    """

    name: str

    def list_regions(self) -> list[str]: ...

    def list_zones(self, region: str) -> list[str]: ...

    def list_machine_types(self, zone: str) -> list[str]: ...

    def recommended_type(self) -> str: ...

    def region_of_zone(self, zone: str) -> str: ...

    def create_instance(
        self, name: str, zone: str, machine_type: str, client_token: str
    ) -> OperationHandle: ...

    def delete_instance(self, zone: str, instance_id: str) -> OperationHandle: ...

    def delete_disk(self, zone: str, disk_id: str) -> OperationHandle: ...

    def get_operation(self, handle: OperationHandle) -> OperationStatus: ...

    def get_instance_info(self, zone: str, instance_id: str) -> InstanceInfo: ...
