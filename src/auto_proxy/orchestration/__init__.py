"""Provisioning and teardown orchestration."""

from auto_proxy.orchestration.provisioning import ProvisioningPipeline
from auto_proxy.orchestration.readiness import ReadinessProber
from auto_proxy.orchestration.retry import RetryPolicy, is_retryable
from auto_proxy.orchestration.teardown import (
    ReclaimResult,
    TeardownOutcome,
    TeardownPipeline,
    TeardownResult,
)
from auto_proxy.orchestration.waiter import OperationWaiter

__all__ = [
    "OperationWaiter",
    "ProvisioningPipeline",
    "ReadinessProber",
    "ReclaimResult",
    "RetryPolicy",
    "TeardownOutcome",
    "TeardownPipeline",
    "TeardownResult",
    "is_retryable",
]
