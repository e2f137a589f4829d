"""Core modules for StackDock - centralized definitions and utilities."""

from stackdock.core.cancellation import CancelToken, check_cancelled
from stackdock.core.errors import (
    CannotSaveUnknownResourceError,
    CircularDependencyError,
    ConfigurationError,
    NoProviderAvailableError,
    NotFoundError,
    OperationCancelledError,
    PermissionDeniedError,
    PlanExecutionError,
    ProviderError,
    ResourceNotFoundInPlanError,
    ResourceStateNotFoundError,
    StackDockError,
    UnmappableResourceTypeError,
    ValidationError,
    format_error_message,
)
from stackdock.core.locks import KeyedLock

__all__ = [
    # Errors
    "StackDockError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "NoProviderAvailableError",
    "UnmappableResourceTypeError",
    "CircularDependencyError",
    "ResourceNotFoundInPlanError",
    "CannotSaveUnknownResourceError",
    "PermissionDeniedError",
    "ResourceStateNotFoundError",
    "PlanExecutionError",
    "ProviderError",
    "OperationCancelledError",
    "format_error_message",
    # Concurrency
    "CancelToken",
    "check_cancelled",
    "KeyedLock",
]
