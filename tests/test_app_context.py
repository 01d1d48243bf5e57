from __future__ import annotations

from pathlib import Path

import pytest

from auto_proxy import config
from auto_proxy.app import build_app_context
from auto_proxy.orchestration.provisioning import ProvisioningPipeline
from auto_proxy.orchestration.teardown import TeardownPipeline
from auto_proxy.providers.aws_ec2 import EC2Provider


def test_build_app_context_wires_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RETRY_BASE_SECONDS", "0.5")
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("OPERATION_TIMEOUT_SECONDS", "120")
    monkeypatch.setenv("READINESS_PORT", "2222")
    monkeypatch.setenv("SHADOWSOCKS_PASSWORD", "pw")
    settings = config.load_settings()

    ctx = build_app_context(settings)

    assert isinstance(ctx.provider, EC2Provider)
    assert ctx.store.path == (tmp_path / "proxy_records.json").resolve()
    assert ctx.retry.base_seconds == 0.5
    assert ctx.retry.max_attempts == 3
    assert ctx.prober.port == 2222
    assert ctx.configurator.service.password == "pw"
    assert ctx.regions.label("us-east-1") != "us-east-1"
    assert isinstance(ctx.provisioning(), ProvisioningPipeline)
    assert isinstance(ctx.teardown(), TeardownPipeline)


def test_build_app_context_unknown_provider(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROXY_PROVIDER", "azure")

    with pytest.raises(ValueError, match="Unknown provider 'azure'"):
        build_app_context()
