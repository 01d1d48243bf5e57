"""EC2 adapter tests against a scripted client; no AWS calls are made."""

from __future__ import annotations

from typing import Any

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from auto_proxy import providers
from auto_proxy.config import ProviderSettings
from auto_proxy.domain.errors import ProviderError
from auto_proxy.domain.models import OperationHandle, ProxyRecord
from auto_proxy.orchestration.retry import RetryPolicy
from auto_proxy.orchestration.teardown import TeardownOutcome, TeardownPipeline
from auto_proxy.orchestration.waiter import OperationWaiter
from auto_proxy.providers import aws_ec2, build_provider
from auto_proxy.providers.aws_ec2 import CREATE_INSTANCE, DELETE_VOLUME, TERMINATE_INSTANCE, EC2Provider
from fakes import FakeProvider, MemoryRecordStore, NoSleep


def _client_error(code: str, status: int, operation: str = "DescribeInstances") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} happened"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


def _instance(state: str, **extra: Any) -> dict[str, Any]:
    return {"Reservations": [{"Instances": [{"InstanceId": "i-1", "State": {"Name": state}, **extra}]}]}


class _FakeEC2Client:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.responses: dict[str, list[Any]] = {}

    def script(self, method: str, *responses: Any) -> None:
        self.responses.setdefault(method, []).extend(responses)

    def _respond(self, method: str, kwargs: dict[str, Any]) -> Any:
        self.calls.append((method, kwargs))
        queued = self.responses.get(method)
        response = queued.pop(0) if queued else {}
        if isinstance(response, Exception):
            raise response
        return response

    def __getattr__(self, method: str):
        return lambda **kwargs: self._respond(method, kwargs)


def _provider(**settings: Any) -> tuple[EC2Provider, _FakeEC2Client, list[tuple[str, str]]]:
    client = _FakeEC2Client()
    requested: list[tuple[str, str]] = []

    def factory(service: str, region: str) -> _FakeEC2Client:
        requested.append((service, region))
        return client

    return EC2Provider(ProviderSettings(**settings), client_factory=factory), client, requested


def test_client_error_maps_status_and_code() -> None:
    provider, client, _ = _provider()
    client.script("describe_regions", _client_error("RequestLimitExceeded", 503, "DescribeRegions"))

    with pytest.raises(ProviderError) as excinfo:
        provider.list_regions()

    assert excinfo.value.status == 503
    assert excinfo.value.error_code == "RequestLimitExceeded"
    assert excinfo.value.retryable


def test_transport_error_is_not_retryable() -> None:
    provider, client, _ = _provider()
    client.script("describe_regions", EndpointConnectionError(endpoint_url="https://ec2.example"))

    with pytest.raises(ProviderError) as excinfo:
        provider.list_regions()

    assert excinfo.value.status is None
    assert not excinfo.value.retryable


def test_list_regions_sorted() -> None:
    provider, client, requested = _provider(default_region="eu-west-1")
    client.script("describe_regions", {"Regions": [{"RegionName": "us-east-1"}, {"RegionName": "ap-south-1"}]})

    assert provider.list_regions() == ["ap-south-1", "us-east-1"]
    assert requested == [("ec2", "eu-west-1")]


def test_list_zones_keeps_available_only() -> None:
    provider, client, requested = _provider()
    client.script(
        "describe_availability_zones",
        {
            "AvailabilityZones": [
                {"ZoneName": "us-east-1b", "State": "available"},
                {"ZoneName": "us-east-1a", "State": "available"},
                {"ZoneName": "us-east-1e", "State": "impaired"},
            ]
        },
    )

    assert provider.list_zones("us-east-1") == ["us-east-1a", "us-east-1b"]
    assert requested == [("ec2", "us-east-1")]


def test_list_machine_types_follows_pagination() -> None:
    provider, client, _ = _provider()
    client.script(
        "describe_instance_type_offerings",
        {"InstanceTypeOfferings": [{"InstanceType": "t3.small"}], "NextToken": "page-2"},
        {"InstanceTypeOfferings": [{"InstanceType": "t3.micro"}, {"InstanceType": "t3.small"}]},
    )

    assert provider.list_machine_types("us-east-1a") == ["t3.micro", "t3.small"]
    first, second = client.calls
    assert "NextToken" not in first[1]
    assert second[1]["NextToken"] == "page-2"
    assert first[1]["Filters"] == [{"Name": "location", "Values": ["us-east-1a"]}]


@pytest.mark.parametrize(
    ("zone", "region"),
    [("us-east-1a", "us-east-1"), ("ap-northeast-1c", "ap-northeast-1"), ("us-gov-west-1a", "us-gov-west-1")],
)
def test_region_of_zone(zone: str, region: str) -> None:
    provider, _, _ = _provider()
    assert provider.region_of_zone(zone) == region


def test_region_of_zone_rejects_garbage() -> None:
    provider, _, _ = _provider()
    with pytest.raises(ProviderError):
        provider.region_of_zone("nowhere")


def test_create_instance_resolves_image_and_keeps_root_volume() -> None:
    provider, client, requested = _provider(key_name="ops", security_group_ids=("sg-1",))
    client.script("get_parameter", {"Parameter": {"Value": "ami-123"}})
    client.script("run_instances", {"Instances": [{"InstanceId": "i-abc"}]})

    handle = provider.create_instance("proxy-useast1a", "us-east-1a", "t3.micro", "tok-1")

    assert handle == OperationHandle(
        kind=CREATE_INSTANCE, zone="us-east-1a", token="i-abc", resource_id="i-abc"
    )
    assert requested == [("ssm", "us-east-1"), ("ec2", "us-east-1")]
    params = client.calls[1][1]
    assert params["ImageId"] == "ami-123"
    assert params["InstanceType"] == "t3.micro"
    assert params["KeyName"] == "ops"
    assert params["Placement"] == {"AvailabilityZone": "us-east-1a"}
    assert params["NetworkInterfaces"][0]["Groups"] == ["sg-1"]
    assert params["BlockDeviceMappings"][0]["Ebs"]["DeleteOnTermination"] is False
    assert {"Key": "Name", "Value": "proxy-useast1a"} in params["TagSpecifications"][0]["Tags"]
    assert params["ClientToken"] == "tok-1"


def test_create_instance_with_explicit_image_skips_ssm() -> None:
    provider, client, requested = _provider(image_id="ami-fixed")
    client.script("run_instances", {"Instances": [{"InstanceId": "i-abc"}]})

    provider.create_instance("proxy", "us-east-1a", "t3.micro", "tok-1")

    assert [service for service, _ in requested] == ["ec2"]
    assert "KeyName" not in client.calls[0][1]

def test_retried_create_reuses_client_token() -> None:
    provider, client, _ = _provider(image_id="ami-fixed")
    client.script(
        "run_instances",
        _client_error("InternalError", 500, "RunInstances"),
        {"Instances": [{"InstanceId": "i-abc"}]},
    )
    sleep = NoSleep()

    handle = RetryPolicy(sleep=sleep).call(
        "Create instance",
        lambda: provider.create_instance("proxy", "us-east-1a", "t3.micro", "a" * 80),
    )

    assert handle.resource_id == "i-abc"
    tokens = [params["ClientToken"] for method, params in client.calls if method == "run_instances"]
    assert tokens == ["a" * 64, "a" * 64]
    assert sleep.waits == [1.0]


def test_delete_instance_tolerates_missing_instance() -> None:
    provider, client, _ = _provider()
    client.script(
        "terminate_instances",
        _client_error("InvalidInstanceID.NotFound", 400, "TerminateInstances"),
    )

    handle = provider.delete_instance("us-east-1a", "i-gone")

    assert handle.kind == TERMINATE_INSTANCE
    assert handle.token == "i-gone"


def test_delete_instance_propagates_other_errors() -> None:
    provider, client, _ = _provider()
    client.script(
        "terminate_instances", _client_error("UnauthorizedOperation", 403, "TerminateInstances")
    )

    with pytest.raises(ProviderError, match="UnauthorizedOperation"):
        provider.delete_instance("us-east-1a", "i-1")


def test_teardown_of_instance_removed_out_of_band_clears_record() -> None:
    provider, client, _ = _provider()
    not_found = _client_error("InvalidInstanceID.NotFound", 400)
    # get_instance_info, then the terminate status poll
    client.script("describe_instances", not_found, not_found)
    client.script(
        "terminate_instances",
        _client_error("InvalidInstanceID.NotFound", 400, "TerminateInstances"),
    )
    record = ProxyRecord("proxy-a", "aws", "us-east-1", "us-east-1a", "i-gone", "203.0.113.5")
    store = MemoryRecordStore([record])
    sleep = NoSleep()
    pipeline = TeardownPipeline(
        provider=provider,
        store=store,
        retry=RetryPolicy(sleep=sleep),
        waiter=OperationWaiter(provider, sleep=sleep),
    )

    result = pipeline.teardown("proxy-a")

    assert result.outcome is TeardownOutcome.DELETED
    assert store.records == []
    assert [method for method, _ in client.calls] == [
        "describe_instances",
        "terminate_instances",
        "describe_instances",
    ]



def test_delete_disk_tolerates_missing_volume() -> None:
    provider, client, _ = _provider()
    client.script("delete_volume", _client_error("InvalidVolume.NotFound", 400, "DeleteVolume"))

    handle = provider.delete_disk("us-east-1a", "vol-1")

    assert handle.kind == DELETE_VOLUME


def test_delete_disk_propagates_other_errors() -> None:
    provider, client, _ = _provider()
    client.script("delete_volume", _client_error("VolumeInUse", 400, "DeleteVolume"))

    with pytest.raises(ProviderError, match="VolumeInUse"):
        provider.delete_disk("us-east-1a", "vol-1")


@pytest.mark.parametrize(
    ("response", "done", "failed"),
    [
        (_client_error("InvalidInstanceID.NotFound", 400), False, False),
        (_instance("pending"), False, False),
        (_instance("running"), True, False),
        (_instance("terminated", StateReason={"Message": "Server.InsufficientInstanceCapacity"}), True, True),
    ],
)
def test_create_operation_status(response: Any, done: bool, failed: bool) -> None:
    provider, client, _ = _provider()
    client.script("describe_instances", response)

    status = provider.get_operation(OperationHandle(kind=CREATE_INSTANCE, zone="us-east-1a", token="i-1"))

    assert status.done is done
    assert status.failed is failed


def test_create_operation_failure_carries_reason() -> None:
    provider, client, _ = _provider()
    client.script("describe_instances", _instance("terminated", StateReason={"Message": "capacity"}))

    status = provider.get_operation(OperationHandle(kind=CREATE_INSTANCE, zone="us-east-1a", token="i-1"))

    assert status.error == "instance entered terminated: capacity"


@pytest.mark.parametrize(
    ("response", "done"),
    [
        (_instance("shutting-down"), False),
        (_instance("terminated"), True),
        (_client_error("InvalidInstanceID.NotFound", 400), True),
    ],
)
def test_terminate_operation_status(response: Any, done: bool) -> None:
    provider, client, _ = _provider()
    client.script("describe_instances", response)

    status = provider.get_operation(OperationHandle(kind=TERMINATE_INSTANCE, zone="us-east-1a", token="i-1"))

    assert status.done is done
    assert not status.failed


@pytest.mark.parametrize(
    ("response", "done", "failed"),
    [
        ({"Volumes": [{"State": "deleting"}]}, False, False),
        ({"Volumes": []}, True, False),
        (_client_error("InvalidVolume.NotFound", 400, "DescribeVolumes"), True, False),
        ({"Volumes": [{"State": "error"}]}, True, True),
    ],
)
def test_volume_operation_status(response: Any, done: bool, failed: bool) -> None:
    provider, client, _ = _provider()
    client.script("describe_volumes", response)

    status = provider.get_operation(OperationHandle(kind=DELETE_VOLUME, zone="us-east-1a", token="vol-1"))

    assert status.done is done
    assert status.failed is failed


def test_status_check_server_error_propagates() -> None:
    provider, client, _ = _provider()
    client.script("describe_instances", _client_error("InternalError", 500))

    with pytest.raises(ProviderError) as excinfo:
        provider.get_operation(OperationHandle(kind=CREATE_INSTANCE, zone="us-east-1a", token="i-1"))
    assert excinfo.value.status == 500


def test_get_instance_info_returns_ip_and_root_volume() -> None:
    provider, client, _ = _provider()
    client.script(
        "describe_instances",
        _instance(
            "running",
            PublicIpAddress="203.0.113.5",
            RootDeviceName="/dev/sda1",
            BlockDeviceMappings=[
                {"DeviceName": "/dev/sdf", "Ebs": {"VolumeId": "vol-data"}},
                {"DeviceName": "/dev/sda1", "Ebs": {"VolumeId": "vol-root"}},
            ],
        ),
    )

    info = provider.get_instance_info("us-east-1a", "i-1")

    assert info.ip == "203.0.113.5"
    assert info.disk_id == "vol-root"


def test_get_instance_info_without_boot_disk_fails() -> None:
    provider, client, _ = _provider()
    client.script("describe_instances", _instance("running", RootDeviceName="/dev/sda1"))

    with pytest.raises(ProviderError, match="no boot disk"):
        provider.get_instance_info("us-east-1a", "i-1")


def test_client_cache_reuses_clients(monkeypatch: pytest.MonkeyPatch) -> None:
    built: list[tuple[str, str]] = []

    def fake_create(service: str, region: str, settings: ProviderSettings) -> object:
        built.append((service, region))
        return object()

    monkeypatch.setattr(aws_ec2, "_create_client", fake_create)
    monkeypatch.setattr(aws_ec2, "_CLIENT_CACHE", aws_ec2.OrderedDict())
    settings = ProviderSettings(profile="cache-test")

    first = aws_ec2.get_client("ec2", "us-east-1", settings)
    second = aws_ec2.get_client("ec2", "us-east-1", settings)
    aws_ec2.get_client("ec2", "eu-west-1", settings)

    assert first is second
    assert built == [("ec2", "us-east-1"), ("ec2", "eu-west-1")]


def test_build_provider_rejects_unknown_name() -> None:
    with pytest.raises(ValueError, match="Unknown provider"):
        build_provider(ProviderSettings(name="gcp"))


def test_build_provider_returns_ec2_adapter() -> None:
    assert isinstance(build_provider(ProviderSettings()), EC2Provider)


def test_registered_provider_is_selectable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(providers, "_PROVIDERS", dict(providers._PROVIDERS))
    built: list[ProviderSettings] = []

    def factory(settings: ProviderSettings) -> FakeProvider:
        built.append(settings)
        return FakeProvider()

    providers.register_provider("fake", factory)

    assert providers.available_providers() == ["aws", "fake"]
    assert isinstance(build_provider(ProviderSettings(name="fake")), FakeProvider)
    assert built[0].name == "fake"
