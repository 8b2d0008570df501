"""Custom-provisioning bridge: wire protocol, attempt tracking, teardown."""

from __future__ import annotations

from typing import Optional

from stackwire.config import Settings, get_settings
from stackwire.core.errors import ConfigurationError
from stackwire.provisioning.bridge import ProvisioningBridge, ProvisioningTransport
from stackwire.provisioning.lifecycle import TeardownReport, create, teardown
from stackwire.provisioning.memory import InMemoryTransport
from stackwire.provisioning.models import (
    AttemptState,
    MalformedMessageError,
    Operation,
    ProvisioningAttempt,
    ProvisioningRequest,
    ProvisioningResponse,
    ResponseStatus,
)
from stackwire.provisioning.worker import WorkerHandler


def create_transport(settings: Optional[Settings] = None) -> ProvisioningTransport:
    """Build the transport selected by ``STACKWIRE_PROVISIONING_BACKEND``."""
    settings = settings or get_settings()
    if settings.provisioning_backend == "memory":
        return InMemoryTransport()
    if settings.provisioning_backend == "sqs":
        from stackwire.provisioning.sqs import SqsTransport

        return SqsTransport(settings)
    raise ConfigurationError(
        f"Unknown provisioning backend: {settings.provisioning_backend}",
        {"backend": settings.provisioning_backend},
    )


__all__ = [
    "AttemptState",
    "InMemoryTransport",
    "MalformedMessageError",
    "Operation",
    "ProvisioningAttempt",
    "ProvisioningBridge",
    "ProvisioningRequest",
    "ProvisioningResponse",
    "ProvisioningTransport",
    "ResponseStatus",
    "TeardownReport",
    "WorkerHandler",
    "create",
    "create_transport",
    "teardown",
]
