"""Exception hierarchy for provisioning and teardown failures.

Each error carries a short ``code`` so the CLI and the audit log can tell
failure classes apart without string matching.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auto_proxy.domain.models import OperationHandle


class AutoProxyError(Exception):
    """Base class for every failure the orchestrator reports."""

    code: str = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ProviderError(AutoProxyError):
    """A capability-interface call failed.

    ``status`` is the provider's numeric status when one was returned;
    only ``status >= 500`` is considered transient.
    """

    code = "provider_error"

    def __init__(
        self,
        message: str,
        status: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.error_code = error_code

    @property
    def retryable(self) -> bool:
        return self.status is not None and self.status >= 500


class RetriesExhaustedError(AutoProxyError):
    code = "retries_exhausted"

    def __init__(self, label: str, attempts: int, last_error: BaseException | None = None) -> None:
        super().__init__(f"{label} failed after {attempts} retries")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error


class OperationFailedError(AutoProxyError):
    code = "operation_failed"

    def __init__(self, handle: "OperationHandle", detail: str) -> None:
        super().__init__(f"{handle.kind} operation {handle.token} failed: {detail}")
        self.handle = handle
        self.detail = detail


class OperationTimeoutError(AutoProxyError):
    code = "operation_timeout"

    def __init__(self, handle: "OperationHandle", timeout: float) -> None:
        super().__init__(
            f"{handle.kind} operation {handle.token} still pending after {timeout:g}s"
        )
        self.handle = handle
        self.timeout = timeout


class NotReadyError(AutoProxyError):
    code = "not_ready"

    def __init__(self, host: str, port: int, timeout: float) -> None:
        super().__init__(f"{host}:{port} not reachable after {timeout:g}s")
        self.host = host
        self.port = port
        self.timeout = timeout


class ConfigurationError(AutoProxyError):
    """The remote configurator could not apply the proxy configuration."""

    code = "configuration_failed"


class RecordStoreError(AutoProxyError):
    code = "record_store_error"


class DuplicateProxyError(AutoProxyError):
    code = "duplicate_proxy"

    def __init__(self, name: str) -> None:
        super().__init__(f"proxy {name!r} already exists")
        self.name = name


class _PipelineError(AutoProxyError):
    operation = "pipeline"

    def __init__(self, step: str, name: str, cause: BaseException, hint: str = "") -> None:
        message = f"{self.operation} of {name!r} failed at step '{step}': {cause}"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message)
        self.step = step
        self.name = name
        self.cause = cause


class ProvisioningError(_PipelineError):
    code = "provisioning_failed"
    operation = "provisioning"


class TeardownError(_PipelineError):
    code = "teardown_failed"
    operation = "teardown"
