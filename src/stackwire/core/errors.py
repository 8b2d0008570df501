"""
Error taxonomy and CLI error handling for stackwire.

Composition-time errors are fatal to ``compose()``: no partial composition
is ever returned. Provisioning errors are fatal only to the affected
resource's materialization.

Exit Codes:
- 0: Success
- 1: Warning (operation succeeded with warnings)
- 10: Configuration error
- 11: Provisioning error (worker failure or timeout)
- 12: Validation error (invalid composition)
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, Sequence, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    WARNING = 1
    CONFIG_ERROR = 10
    PROVISIONING_ERROR = 11
    VALIDATION_ERROR = 12
    UNKNOWN_ERROR = 127


class StackwireError(Exception):
    """Base exception for stackwire errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(StackwireError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class CompositionError(StackwireError):
    """Base class for errors raised while building a composition."""

    exit_code = ExitCode.VALIDATION_ERROR


class UnknownTemplateError(CompositionError):
    """Raised when a template name is not present in the template store."""

    def __init__(self, template_name: str, logical_id: str | None = None):
        details: dict[str, Any] = {"template": template_name}
        if logical_id:
            details["logical_id"] = logical_id
        super().__init__(f"Unknown template: {template_name}", details)
        self.template_name = template_name


class InvalidPathError(CompositionError):
    """Raised when a property path cannot exist given the template shape."""

    def __init__(self, path: str, reason: str, logical_id: str | None = None):
        details: dict[str, Any] = {"path": path}
        if logical_id:
            details["logical_id"] = logical_id
        super().__init__(f"Invalid property path '{path}': {reason}", details)
        self.path = path
        self.reason = reason


class DanglingBindingError(CompositionError):
    """Raised when a reference points at something that does not (yet) exist."""

    def __init__(self, message: str, logical_ids: Sequence[str] = ()):
        super().__init__(message, {"logical_ids": list(logical_ids)})
        self.logical_ids = list(logical_ids)


class CycleError(CompositionError):
    """Raised when ordering and binding edges form a cycle."""

    def __init__(self, cycle: Sequence[str]):
        path = " → ".join(cycle)
        super().__init__(f"Circular dependency: {path}", {"cycle": list(cycle)})
        self.cycle = list(cycle)


class DuplicateLogicalIdError(CompositionError):
    """Raised when two declarations share a logical id."""

    def __init__(self, logical_id: str):
        super().__init__(f"Duplicate logical id: {logical_id}", {"logical_id": logical_id})
        self.logical_id = logical_id


class InvalidValueError(CompositionError):
    """Raised when a computed value cannot be placed where it is used."""

    def __init__(self, message: str, value: Any):
        super().__init__(message, {"value": repr(value)})
        self.value = value


class AttributeConflictError(CompositionError):
    """Raised when an already published attribute is republished with another value."""

    def __init__(self, logical_id: str, attribute: str):
        super().__init__(
            f"Attribute {logical_id}.{attribute} is already published with a different value",
            {"logical_id": logical_id, "attribute": attribute},
        )


class ProvisioningError(StackwireError):
    """Base class for terminal provisioning failures."""

    exit_code = ExitCode.PROVISIONING_ERROR

    def __init__(self, message: str, logical_id: str, correlation_token: str):
        super().__init__(
            message, {"logical_id": logical_id, "correlation_token": correlation_token}
        )
        self.logical_id = logical_id
        self.correlation_token = correlation_token


class ProvisioningFailedError(ProvisioningError):
    """The worker explicitly rejected the request."""

    def __init__(self, logical_id: str, correlation_token: str, reason: str | None = None):
        super().__init__(
            f"Provisioning of {logical_id} failed: {reason or 'no reason given'}",
            logical_id,
            correlation_token,
        )
        self.reason = reason


class ProvisioningTimeoutError(ProvisioningError):
    """No response arrived within the allotted window."""

    def __init__(self, logical_id: str, correlation_token: str, timeout: float):
        super().__init__(
            f"Provisioning of {logical_id} timed out after {timeout:g}s",
            logical_id,
            correlation_token,
        )
        self.timeout = timeout


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI commands that maps exceptions to exit codes.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except StackwireError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=e.exit_code,
                        **e.details,
                    )
                _print_error(format_error_message(e))
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=ExitCode.UNKNOWN_ERROR,
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: StackwireError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg


def _print_error(message: str) -> None:
    from stackwire.cli.ux import error as print_error

    print_error(message)
