"""EC2 implementation of the cloud provider capability interface."""

from __future__ import annotations

import logging
import re
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from auto_proxy.config import ProviderSettings
from auto_proxy.domain.errors import ProviderError
from auto_proxy.domain.models import InstanceInfo, OperationHandle, OperationStatus

logger = logging.getLogger(__name__)

ClientCacheKey = tuple[str, ...]

_CLIENT_CACHE: OrderedDict[ClientCacheKey, tuple[object, float]] = OrderedDict()
_CLIENT_CACHE_LOCK = threading.Lock()
_CLIENT_TTL_SECONDS = 3600  # 1 hour
_CLIENT_CACHE_MAX_SIZE = 32

_FALLBACK_REGION = "us-east-1"
_ZONE_REGION_RE = re.compile(r"^([a-z]{2}(?:-gov)?-[a-z]+-\d+)")

CREATE_INSTANCE = "create-instance"
TERMINATE_INSTANCE = "terminate-instance"
DELETE_VOLUME = "delete-volume"

MAX_CLIENT_TOKEN_LENGTH = 64

_NOT_FOUND_CODES = {
    CREATE_INSTANCE: "InvalidInstanceID.NotFound",
    TERMINATE_INSTANCE: "InvalidInstanceID.NotFound",
    DELETE_VOLUME: "InvalidVolume.NotFound",
}


def _get_cached_client(
    key: ClientCacheKey,
    build_client: Callable[[], object],
) -> object:
    now = time.monotonic()
    with _CLIENT_CACHE_LOCK:
        cached = _CLIENT_CACHE.get(key)
        if cached is not None:
            client, created_at = cached
            if now - created_at < _CLIENT_TTL_SECONDS:
                _CLIENT_CACHE.move_to_end(key)
                return client
            del _CLIENT_CACHE[key]
        client = build_client()
        _CLIENT_CACHE[key] = (client, now)
        while len(_CLIENT_CACHE) > _CLIENT_CACHE_MAX_SIZE:
            _CLIENT_CACHE.popitem(last=False)
        return client


def _create_client(service: str, region: str, settings: ProviderSettings):
    session = boto3.Session(profile_name=settings.profile, region_name=region)
    config = Config(
        read_timeout=settings.sdk_timeout_seconds,
        connect_timeout=settings.sdk_timeout_seconds,
        # The orchestrator owns retry policy; keep botocore from doubling it.
        retries={"max_attempts": 1, "mode": "standard"},
    )
    return session.client(service, config=config)


def get_client(service: str, region: str, settings: ProviderSettings):
    key = (service, region, settings.profile or "")
    return _get_cached_client(key, lambda: _create_client(service, region, settings))


def _map_client_error(action: str, exc: ClientError) -> ProviderError:
    error = exc.response.get("Error", {})
    code = error.get("Code", "Unknown")
    message = error.get("Message", str(exc))
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return ProviderError(f"{action}: {code}: {message}", status=status, error_code=code)


class EC2Provider:
    """Thin boto3 adapter; every call raises :class:`ProviderError` on failure."""

    name = "aws"

    def __init__(
        self,
        settings: ProviderSettings,
        client_factory: Callable[[str, str], Any] | None = None,
    ) -> None:
        self._settings = settings
        self._client_factory = client_factory or (
            lambda service, region: get_client(service, region, settings)
        )

    def _client(self, region: str | None = None, service: str = "ec2") -> Any:
        return self._client_factory(service, region or self._settings.default_region or _FALLBACK_REGION)

    def _call(self, action: str, method: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return method(**kwargs)
        except ClientError as exc:
            raise _map_client_error(action, exc) from exc
        except BotoCoreError as exc:
            raise ProviderError(f"{action}: {exc}") from exc

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    def list_regions(self) -> list[str]:
        resp = self._call("list regions", self._client().describe_regions)
        return sorted(str(entry["RegionName"]) for entry in resp.get("Regions", []))

    def list_zones(self, region: str) -> list[str]:
        resp = self._call(
            "list zones",
            self._client(region).describe_availability_zones,
            Filters=[{"Name": "zone-type", "Values": ["availability-zone"]}],
        )
        return sorted(
            str(zone["ZoneName"])
            for zone in resp.get("AvailabilityZones", [])
            if zone.get("State") == "available"
        )

    def list_machine_types(self, zone: str) -> list[str]:
        client = self._client(self.region_of_zone(zone))
        types: set[str] = set()
        token: str | None = None
        while True:
            params: dict[str, Any] = {
                "LocationType": "availability-zone",
                "Filters": [{"Name": "location", "Values": [zone]}],
            }
            if token:
                params["NextToken"] = token
            resp = self._call("list machine types", client.describe_instance_type_offerings, **params)
            for offering in resp.get("InstanceTypeOfferings", []) or []:
                types.add(str(offering["InstanceType"]))
            token = resp.get("NextToken")
            if not token:
                break
        return sorted(types)

    def recommended_type(self) -> str:
        return self._settings.recommended_type

    def region_of_zone(self, zone: str) -> str:
        match = _ZONE_REGION_RE.match(zone)
        if match is None:
            raise ProviderError(f"cannot derive region from zone {zone!r}")
        return match.group(1)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _resolve_image(self, region: str) -> str:
        if self._settings.image_id:
            return self._settings.image_id
        ssm = self._client(region, service="ssm")
        resp = self._call(
            "resolve image", ssm.get_parameter, Name=self._settings.image_parameter
        )
        return str(resp["Parameter"]["Value"])

    def create_instance(
        self, name: str, zone: str, machine_type: str, client_token: str
    ) -> OperationHandle:
        region = self.region_of_zone(zone)
        interface: dict[str, Any] = {"DeviceIndex": 0, "AssociatePublicIpAddress": True}
        if self._settings.security_group_ids:
            interface["Groups"] = list(self._settings.security_group_ids)
        params: dict[str, Any] = {
            "ImageId": self._resolve_image(region),
            "InstanceType": machine_type,
            "MinCount": 1,
            "MaxCount": 1,
            # EC2 returns the original launch for a repeated token instead of launching again.
            "ClientToken": client_token[:MAX_CLIENT_TOKEN_LENGTH],
            "Placement": {"AvailabilityZone": zone},
            "NetworkInterfaces": [interface],
            # Root volume survives termination; teardown deletes it explicitly.
            "BlockDeviceMappings": [
                {"DeviceName": "/dev/sda1", "Ebs": {"DeleteOnTermination": False}}
            ],
            "TagSpecifications": [
                {
                    "ResourceType": "instance",
                    "Tags": [
                        {"Key": "Name", "Value": name},
                        {"Key": "auto-proxy", "Value": name},
                    ],
                }
            ],
        }
        if self._settings.key_name:
            params["KeyName"] = self._settings.key_name

        resp = self._call("create instance", self._client(region).run_instances, **params)
        instance_id = str(resp["Instances"][0]["InstanceId"])
        logger.info("Submitted instance %s (%s) in %s", name, instance_id, zone)
        return OperationHandle(
            kind=CREATE_INSTANCE, zone=zone, token=instance_id, resource_id=instance_id
        )

    def delete_instance(self, zone: str, instance_id: str) -> OperationHandle:
        handle = OperationHandle(
            kind=TERMINATE_INSTANCE, zone=zone, token=instance_id, resource_id=instance_id
        )
        try:
            self._call(
                "delete instance",
                self._client(self.region_of_zone(zone)).terminate_instances,
                InstanceIds=[instance_id],
            )
        except ProviderError as exc:
            if exc.error_code != _NOT_FOUND_CODES[TERMINATE_INSTANCE]:
                raise
            logger.info("Instance %s already gone", instance_id)
        return handle

    def delete_disk(self, zone: str, disk_id: str) -> OperationHandle:
        handle = OperationHandle(kind=DELETE_VOLUME, zone=zone, token=disk_id, resource_id=disk_id)
        try:
            self._call(
                "delete disk",
                self._client(self.region_of_zone(zone)).delete_volume,
                VolumeId=disk_id,
            )
        except ProviderError as exc:
            if exc.error_code != _NOT_FOUND_CODES[DELETE_VOLUME]:
                raise
            logger.info("Disk %s already gone", disk_id)
        return handle

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_operation(self, handle: OperationHandle) -> OperationStatus:
        client = self._client(self.region_of_zone(handle.zone))
        try:
            if handle.kind == DELETE_VOLUME:
                resp = self._call(
                    "check disk status", client.describe_volumes, VolumeIds=[handle.token]
                )
                volumes = resp.get("Volumes", [])
                state = str(volumes[0].get("State", "")) if volumes else "deleted"
                return _volume_status(state)

            resp = self._call(
                "check instance status", client.describe_instances, InstanceIds=[handle.token]
            )
        except ProviderError as exc:
            if exc.error_code != _NOT_FOUND_CODES.get(handle.kind):
                raise
            if handle.kind == CREATE_INSTANCE:
                # describe_instances is eventually consistent right after run_instances.
                return OperationStatus(done=False, state="not-visible")
            return OperationStatus(done=True, state="deleted")

        instance = _first_instance(resp)
        if instance is None:
            if handle.kind == CREATE_INSTANCE:
                return OperationStatus(done=False, state="not-visible")
            return OperationStatus(done=True, state="terminated")
        state = str(instance.get("State", {}).get("Name", ""))

        if handle.kind == CREATE_INSTANCE:
            if state == "pending":
                return OperationStatus(done=False, state=state)
            if state == "running":
                return OperationStatus(done=True, state=state)
            reason = instance.get("StateReason", {}).get("Message") or state
            return OperationStatus(done=True, state=state, error=f"instance entered {state}: {reason}")

        if state == "terminated":
            return OperationStatus(done=True, state=state)
        return OperationStatus(done=False, state=state)

    def get_instance_info(self, zone: str, instance_id: str) -> InstanceInfo:
        resp = self._call(
            "get instance info",
            self._client(self.region_of_zone(zone)).describe_instances,
            InstanceIds=[instance_id],
        )
        instance = _first_instance(resp)
        if instance is None:
            raise ProviderError(f"get instance info: instance {instance_id} not found")

        root_device = instance.get("RootDeviceName")
        disk_id = ""
        for mapping in instance.get("BlockDeviceMappings", []) or []:
            if mapping.get("DeviceName") == root_device:
                disk_id = str(mapping.get("Ebs", {}).get("VolumeId", ""))
                break
        if not disk_id:
            raise ProviderError(f"no boot disk found for instance {instance_id}")
        return InstanceInfo(ip=str(instance.get("PublicIpAddress", "")), disk_id=disk_id)


def _first_instance(resp: dict[str, Any]) -> dict[str, Any] | None:
    for reservation in resp.get("Reservations", []) or []:
        for instance in reservation.get("Instances", []) or []:
            return instance
    return None


def _volume_status(state: str) -> OperationStatus:
    if state == "deleted":
        return OperationStatus(done=True, state=state)
    if state == "error":
        return OperationStatus(done=True, state=state, error="volume entered error state")
    return OperationStatus(done=False, state=state)
