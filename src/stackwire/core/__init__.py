"""Core error types shared by every stackwire package."""

from stackwire.core.errors import (
    AttributeConflictError,
    CompositionError,
    ConfigurationError,
    CycleError,
    DanglingBindingError,
    DuplicateLogicalIdError,
    ExitCode,
    InvalidPathError,
    InvalidValueError,
    ProvisioningError,
    ProvisioningFailedError,
    ProvisioningTimeoutError,
    StackwireError,
    UnknownTemplateError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "AttributeConflictError",
    "CompositionError",
    "ConfigurationError",
    "CycleError",
    "DanglingBindingError",
    "DuplicateLogicalIdError",
    "ExitCode",
    "InvalidPathError",
    "InvalidValueError",
    "ProvisioningError",
    "ProvisioningFailedError",
    "ProvisioningTimeoutError",
    "StackwireError",
    "UnknownTemplateError",
    "format_error_message",
    "main_with_error_handling",
]
