"""Configuration management for the auto-proxy orchestrator."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default="./proxy_error.log", description="Optional log file path")


class ProviderSettings(BaseModel):
    name: str = Field(default="aws", description="Registered provider adapter name")
    profile: str | None = Field(default=None)
    default_region: str | None = Field(default=None)
    image_id: str | None = Field(default=None, description="Explicit machine image id")
    image_parameter: str = Field(
        default="/aws/service/canonical/ubuntu/server/22.04/stable/current/amd64/hvm/ebs-gp2/ami-id",
        description="Public SSM parameter resolving to the Ubuntu 22.04 LTS image",
    )
    key_name: str | None = Field(default=None)
    security_group_ids: tuple[str, ...] = Field(default=())
    recommended_type: str = Field(default="t3.micro")
    sdk_timeout_seconds: int = Field(default=30, ge=1, le=300)


class OrchestrationSettings(BaseModel):
    retry_base_seconds: float = Field(default=1.0, ge=0.0)
    retry_max_attempts: int = Field(default=5, ge=1, le=20)
    operation_poll_seconds: float = Field(default=2.0, gt=0.0)
    operation_timeout_seconds: float | None = Field(
        default=None,
        description="Upper bound for create/delete operation polling. Unset means unbounded.",
    )
    readiness_timeout_seconds: float = Field(default=60.0, gt=0.0)
    readiness_poll_seconds: float = Field(default=2.0, gt=0.0)
    readiness_connect_timeout_seconds: float = Field(default=2.0, gt=0.0)
    readiness_port: int = Field(default=22, ge=1, le=65535)


class DeploySettings(BaseModel):
    ssh_user: str = Field(default="ubuntu")
    ssh_key_path: str | None = Field(default=None)
    ansible_playbook_bin: str = Field(default="ansible-playbook")


class ProxySettings(BaseModel):
    port: int = Field(default=8388, ge=1, le=65535)
    password: str | None = Field(default=None, description="Generated when unset")
    method: str = Field(default="aes-256-gcm")
    timeout: int = Field(default=300, ge=1)


class StorageSettings(BaseModel):
    records_path: str = Field(default="./proxy_records.json")
    region_map_path: str | None = Field(default=None)

    @field_validator("records_path")
    @classmethod
    def _validate_records_path(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("records_path must not be empty")
        return value


class Settings(BaseModel):
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    orchestration: OrchestrationSettings = Field(default_factory=OrchestrationSettings)
    deploy: DeploySettings = Field(default_factory=DeploySettings)
    proxy: ProxySettings = Field(default_factory=ProxySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)


ENV_KEYS = {
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "provider": "PROXY_PROVIDER",
    "aws_profile": "AWS_PROFILE",
    "aws_region": "AWS_DEFAULT_REGION",
    "image_id": "PROXY_IMAGE_ID",
    "image_parameter": "PROXY_IMAGE_PARAMETER",
    "key_name": "PROXY_KEY_NAME",
    "security_group_ids": "PROXY_SECURITY_GROUP_IDS",
    "recommended_type": "PROXY_RECOMMENDED_TYPE",
    "retry_base": "RETRY_BASE_SECONDS",
    "retry_max_attempts": "RETRY_MAX_ATTEMPTS",
    "operation_poll": "OPERATION_POLL_SECONDS",
    "operation_timeout": "OPERATION_TIMEOUT_SECONDS",
    "readiness_timeout": "READINESS_TIMEOUT_SECONDS",
    "readiness_poll": "READINESS_POLL_SECONDS",
    "readiness_connect_timeout": "READINESS_CONNECT_TIMEOUT_SECONDS",
    "readiness_port": "READINESS_PORT",
    "ssh_user": "SSH_USER",
    "ssh_key_path": "SSH_KEY_PATH",
    "ansible_bin": "ANSIBLE_PLAYBOOK_BIN",
    "ss_port": "SHADOWSOCKS_PORT",
    "ss_password": "SHADOWSOCKS_PASSWORD",
    "ss_method": "SHADOWSOCKS_METHOD",
    "ss_timeout": "SHADOWSOCKS_TIMEOUT",
    "records_path": "PROXY_RECORDS_PATH",
    "region_map_path": "PROXY_REGION_MAP_PATH",
}


def _split_csv_preserve_case(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _resolve_path(path: str) -> str:
    """Resolve ``path`` against the current working directory."""
    candidate = Path(path).expanduser()
    if not candidate.is_absolute():
        candidate = Path.cwd() / candidate
    return str(candidate.resolve())


def _env_str(key: str) -> str | None:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def _env_optional_float(key: str) -> float | None:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return None
    try:
        return float(value)
    except ValueError:
        _config_logger.warning("Invalid float value for %s: %r, ignoring", key, value)
        return None


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=Path.cwd() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])
    region_map_env = _env_str(ENV_KEYS["region_map_path"])
    ssh_key_env = _env_str(ENV_KEYS["ssh_key_path"])

    if log_file_env is None:
        log_file: str | None = _resolve_path(LoggingSettings().file or "")
    elif log_file_env.strip():
        log_file = _resolve_path(log_file_env.strip())
    else:
        # LOG_FILE= (empty) disables the file handler.
        log_file = None

    settings_data: dict[str, object] = {
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": log_file,
        },
        "provider": {
            "name": os.getenv(ENV_KEYS["provider"], ProviderSettings().name).strip().lower(),
            "profile": _env_str(ENV_KEYS["aws_profile"]),
            "default_region": _env_str("AWS_REGION") or _env_str(ENV_KEYS["aws_region"]),
            "image_id": _env_str(ENV_KEYS["image_id"]),
            "image_parameter": os.getenv(
                ENV_KEYS["image_parameter"], ProviderSettings().image_parameter
            ),
            "key_name": _env_str(ENV_KEYS["key_name"]),
            "security_group_ids": tuple(
                _split_csv_preserve_case(os.getenv(ENV_KEYS["security_group_ids"]))
            ),
            "recommended_type": os.getenv(
                ENV_KEYS["recommended_type"], ProviderSettings().recommended_type
            ),
            "sdk_timeout_seconds": _env_int(
                "SDK_TIMEOUT_SECONDS", ProviderSettings().sdk_timeout_seconds
            ),
        },
        "orchestration": {
            "retry_base_seconds": _env_float(
                ENV_KEYS["retry_base"], OrchestrationSettings().retry_base_seconds
            ),
            "retry_max_attempts": _env_int(
                ENV_KEYS["retry_max_attempts"], OrchestrationSettings().retry_max_attempts
            ),
            "operation_poll_seconds": _env_float(
                ENV_KEYS["operation_poll"], OrchestrationSettings().operation_poll_seconds
            ),
            "operation_timeout_seconds": _env_optional_float(ENV_KEYS["operation_timeout"]),
            "readiness_timeout_seconds": _env_float(
                ENV_KEYS["readiness_timeout"],
                OrchestrationSettings().readiness_timeout_seconds,
            ),
            "readiness_poll_seconds": _env_float(
                ENV_KEYS["readiness_poll"], OrchestrationSettings().readiness_poll_seconds
            ),
            "readiness_connect_timeout_seconds": _env_float(
                ENV_KEYS["readiness_connect_timeout"],
                OrchestrationSettings().readiness_connect_timeout_seconds,
            ),
            "readiness_port": _env_int(
                ENV_KEYS["readiness_port"], OrchestrationSettings().readiness_port
            ),
        },
        "deploy": {
            "ssh_user": os.getenv(ENV_KEYS["ssh_user"], DeploySettings().ssh_user),
            "ssh_key_path": _resolve_path(ssh_key_env) if ssh_key_env else None,
            "ansible_playbook_bin": os.getenv(
                ENV_KEYS["ansible_bin"], DeploySettings().ansible_playbook_bin
            ),
        },
        "proxy": {
            "port": _env_int(ENV_KEYS["ss_port"], ProxySettings().port),
            "password": _env_str(ENV_KEYS["ss_password"]),
            "method": os.getenv(ENV_KEYS["ss_method"], ProxySettings().method),
            "timeout": _env_int(ENV_KEYS["ss_timeout"], ProxySettings().timeout),
        },
        "storage": {
            "records_path": _resolve_path(
                os.getenv(ENV_KEYS["records_path"], StorageSettings().records_path)
            ),
            "region_map_path": _resolve_path(region_map_env) if region_map_env else None,
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    return settings
