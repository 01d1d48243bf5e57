"""Domain models and errors."""

from auto_proxy.domain.errors import (
    AutoProxyError,
    ConfigurationError,
    DuplicateProxyError,
    NotReadyError,
    OperationFailedError,
    OperationTimeoutError,
    ProviderError,
    ProvisioningError,
    RecordStoreError,
    RetriesExhaustedError,
    TeardownError,
)
from auto_proxy.domain.models import (
    InstanceInfo,
    MachineRequest,
    OperationHandle,
    OperationStatus,
    ProxyRecord,
    RecordKind,
)

__all__ = [
    "AutoProxyError",
    "ConfigurationError",
    "DuplicateProxyError",
    "InstanceInfo",
    "MachineRequest",
    "NotReadyError",
    "OperationFailedError",
    "OperationHandle",
    "OperationStatus",
    "OperationTimeoutError",
    "ProviderError",
    "ProvisioningError",
    "ProxyRecord",
    "RecordKind",
    "RecordStoreError",
    "RetriesExhaustedError",
    "TeardownError",
]
