"""Domain objects for provisioned proxies and provider operations."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum


class RecordKind(str, Enum):
    INSTANCE = "instance"
    DISK = "disk"


@dataclass
class ProxyRecord:
    """Durable mapping of a logical proxy name to the cloud resource behind it.

    ``kind == DISK`` marks a storage resource whose deletion failed; in that
    case ``instance_id`` holds the orphaned disk id and ``ip`` is empty.
    """

    name: str
    provider: str
    region: str
    zone: str
    instance_id: str
    ip: str
    kind: RecordKind = RecordKind.INSTANCE
    location: str = ""

    def to_dict(self) -> dict[str, str]:
        data = asdict(self)
        data["type"] = self.kind.value
        del data["kind"]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "ProxyRecord":
        raw_kind = str(data.get("type") or RecordKind.INSTANCE.value)
        return cls(
            name=str(data["name"]),
            provider=str(data.get("provider", "")),
            region=str(data.get("region", "")),
            zone=str(data.get("zone", "")),
            instance_id=str(data.get("instance_id", "")),
            ip=str(data.get("ip", "")),
            kind=RecordKind(raw_kind),
            location=str(data.get("location", "")),
        )

    @property
    def is_instance(self) -> bool:
        return self.kind is RecordKind.INSTANCE


@dataclass(frozen=True)
class InstanceInfo:
    ip: str
    disk_id: str


@dataclass(frozen=True)
class OperationHandle:
    """Provider-side token for an in-flight create/delete action. Never persisted."""

    kind: str
    zone: str
    token: str
    resource_id: str = ""


@dataclass(frozen=True)
class OperationStatus:
    done: bool
    state: str = ""
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.done and self.error is not None


@dataclass(frozen=True)
class MachineRequest:
    """Everything the provisioning pipeline needs to create one proxy."""

    name: str
    zone: str
    machine_type: str
    region: str = ""


def find_instance_record(records: list[ProxyRecord], name: str) -> ProxyRecord | None:
    for record in records:
        if record.name == name and record.is_instance:
            return record
    return None
