"""
Wire models for the provisioning worker protocol.

Request:  {"operation": "Create"|"Update"|"Delete", "correlationToken": str, "properties": {...}}
Response: {"correlationToken": str, "status": "Success"|"Failed", "attributes"?: {...}, "reason"?: str}

Optional keys are omitted when unset so the required shape stays exact.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from stackwire.core.errors import ProvisioningFailedError, ProvisioningTimeoutError


class Operation(str, Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"


class ResponseStatus(str, Enum):
    SUCCESS = "Success"
    FAILED = "Failed"


class AttemptState(str, Enum):
    """Lifecycle of one provisioning attempt."""

    PENDING = "Pending"
    SENT = "Sent"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    TIMED_OUT = "TimedOut"

    @property
    def terminal(self) -> bool:
        return self in (AttemptState.SUCCEEDED, AttemptState.FAILED, AttemptState.TIMED_OUT)


class MalformedMessageError(ValueError):
    """A wire payload does not match the protocol shape."""


def _load(body: str | bytes | Dict[str, Any]) -> Dict[str, Any]:
    if isinstance(body, dict):
        return body
    try:
        data = json.loads(body)
    except (TypeError, ValueError) as e:
        raise MalformedMessageError(f"Invalid JSON payload: {e}") from e
    if not isinstance(data, dict):
        raise MalformedMessageError("Payload must be a JSON object")
    return data


@dataclass(slots=True)
class ProvisioningRequest:
    operation: Operation
    correlation_token: str
    properties: Dict[str, Any] = field(default_factory=dict)
    old_properties: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "operation": self.operation.value,
            "correlationToken": self.correlation_token,
            "properties": self.properties,
        }
        if self.old_properties is not None:
            data["oldProperties"] = self.old_properties
        return data

    def to_message_body(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_message_body(cls, body: str | bytes | Dict[str, Any]) -> "ProvisioningRequest":
        data = _load(body)
        try:
            operation = Operation(data["operation"])
            token = data["correlationToken"]
        except (KeyError, ValueError) as e:
            raise MalformedMessageError(f"Invalid provisioning request: {e}") from e
        properties = data.get("properties") or {}
        if not isinstance(token, str) or not isinstance(properties, dict):
            raise MalformedMessageError("Invalid provisioning request field types")
        return cls(
            operation=operation,
            correlation_token=token,
            properties=properties,
            old_properties=data.get("oldProperties"),
        )


@dataclass(slots=True)
class ProvisioningResponse:
    correlation_token: str
    status: ResponseStatus
    attributes: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, token: str, attributes: Optional[Dict[str, Any]] = None) -> "ProvisioningResponse":
        return cls(correlation_token=token, status=ResponseStatus.SUCCESS, attributes=attributes)

    @classmethod
    def failed(cls, token: str, reason: str) -> "ProvisioningResponse":
        return cls(correlation_token=token, status=ResponseStatus.FAILED, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "correlationToken": self.correlation_token,
            "status": self.status.value,
        }
        if self.attributes is not None:
            data["attributes"] = self.attributes
        if self.reason is not None:
            data["reason"] = self.reason
        return data

    def to_message_body(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_message_body(cls, body: str | bytes | Dict[str, Any]) -> "ProvisioningResponse":
        data = _load(body)
        try:
            token = data["correlationToken"]
            status = ResponseStatus(data["status"])
        except (KeyError, ValueError) as e:
            raise MalformedMessageError(f"Invalid provisioning response: {e}") from e
        attributes = data.get("attributes")
        reason = data.get("reason")
        if not isinstance(token, str) or (attributes is not None and not isinstance(attributes, dict)):
            raise MalformedMessageError("Invalid provisioning response field types")
        return cls(
            correlation_token=token,
            status=status,
            attributes=attributes,
            reason=None if reason is None else str(reason),
        )


@dataclass
class ProvisioningAttempt:
    """One request/response exchange, keyed by its correlation token."""

    request: ProvisioningRequest
    logical_id: str
    state: AttemptState = AttemptState.PENDING
    response: Optional[ProvisioningResponse] = None
    created_at: float = field(default_factory=time.time)
    sent_at: Optional[float] = None
    finished_at: Optional[float] = None
    timeout: Optional[float] = None

    @property
    def token(self) -> str:
        return self.request.correlation_token

    @property
    def operation(self) -> Operation:
        return self.request.operation

    @property
    def reason(self) -> Optional[str]:
        return self.response.reason if self.response else None

    @property
    def attributes(self) -> Dict[str, Any]:
        """Produced attributes; always empty unless the attempt succeeded."""
        if self.state is AttemptState.SUCCEEDED and self.response and self.response.attributes:
            return dict(self.response.attributes)
        return {}

    def raise_for_state(self) -> None:
        """Raise the matching provisioning error for Failed/TimedOut attempts."""
        if self.state is AttemptState.FAILED:
            raise ProvisioningFailedError(self.logical_id, self.token, self.reason)
        if self.state is AttemptState.TIMED_OUT:
            raise ProvisioningTimeoutError(self.logical_id, self.token, self.timeout or 0.0)
