"""
Unified error taxonomy for the StackDock provisioning engine.

Every error carries a stable ``kind`` plus structured ``details`` so the
calling layer can render an actionable message without parsing strings.

Kinds:
- validation: bad declaration shape, correctable by the caller
- not_found: unknown resource id
- no_provider_available: no backend can satisfy type + vendor
- unmappable_resource_type: category mapping missing (configuration defect)
- circular_dependency: plan construction failure
- resource_not_found_in_plan: internal consistency failure, never retryable
- cannot_save_unknown_resource: state-store invariant violation
- permission_denied: caller context lacks the required permission
- resource_state_not_found: no state record in any category
- plan_execution: a plan step failed, remaining steps were aborted
- provider: a vendor call failed
- configuration: invalid engine configuration
- cancelled: the caller cancelled the operation
"""

from __future__ import annotations

from typing import Any


class StackDockError(Exception):
    """Base exception for StackDock errors with structured details."""

    kind: str = "internal"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(StackDockError):
    """Raised for configuration-related errors."""

    kind = "configuration"


class ValidationError(StackDockError):
    """Raised when a resource declaration is missing a required field."""

    kind = "validation"

    def __init__(self, field: str, message: str | None = None):
        super().__init__(message or f"{field} is required", {"field": field})
        self.field = field


class NotFoundError(StackDockError):
    """Raised when a resource id is not tracked."""

    kind = "not_found"

    def __init__(self, resource_id: str):
        super().__init__(f"Resource not found: {resource_id}", {"resource_id": resource_id})
        self.resource_id = resource_id


class NoProviderAvailableError(StackDockError):
    kind = "no_provider_available"

    def __init__(self, resource_type: str, provider: str):
        super().__init__(
            f'No provider available for resource type "{resource_type}" '
            f'and provider "{provider}"',
            {"resource_type": resource_type, "provider": provider},
        )
        self.resource_type = resource_type
        self.provider = provider


class UnmappableResourceTypeError(StackDockError):
    """Raised when a resource type has no state-store category."""

    kind = "unmappable_resource_type"

    def __init__(self, resource_type: str, resource_id: str | None = None):
        details: dict[str, Any] = {"resource_type": resource_type}
        if resource_id:
            details["resource_id"] = resource_id
        super().__init__(f"Cannot map resource type {resource_type} to a category", details)
        self.resource_type = resource_type


class CircularDependencyError(StackDockError):
    kind = "circular_dependency"

    def __init__(self, node: str | None = None):
        if node:
            message = f"Circular dependency detected involving: {node}"
        else:
            message = "Circular dependency detected in resource graph"
        super().__init__(message, {"resource_id": node} if node else {})
        self.node = node


class ResourceNotFoundInPlanError(StackDockError):
    """Raised when a plan order references an id missing from the plan.

    This is a programming error, never a retryable condition.
    """

    kind = "resource_not_found_in_plan"

    def __init__(self, resource_id: str):
        super().__init__(f"Resource not found in plan: {resource_id}", {"resource_id": resource_id})
        self.resource_id = resource_id


class CannotSaveUnknownResourceError(StackDockError):
    kind = "cannot_save_unknown_resource"

    def __init__(self, provider_resource_id: str, category: str):
        super().__init__(
            "Cannot save state for non-existent resource. "
            "Create resource first via provisioning operations.",
            {"provider_resource_id": provider_resource_id, "category": category},
        )


class PermissionDeniedError(StackDockError):
    kind = "permission_denied"

    def __init__(self, operation: str, permission: str, *, user_id: str | None = None):
        super().__init__(
            f"Permission denied for {operation}",
            {"operation": operation, "permission": permission, "user_id": user_id},
        )


class ResourceStateNotFoundError(StackDockError):
    kind = "resource_state_not_found"

    def __init__(self, resource_id: str):
        super().__init__(f"Resource state not found: {resource_id}", {"resource_id": resource_id})
        self.resource_id = resource_id


class PlanExecutionError(StackDockError):
    """Raised when a plan step fails; earlier steps stay provisioned."""

    kind = "plan_execution"

    def __init__(self, resource_id: str, cause: BaseException, executed: list[str] | None = None):
        reason = cause.message if isinstance(cause, StackDockError) else str(cause)
        super().__init__(
            f"Failed to execute resource {resource_id}: {reason}",
            {
                "resource_id": resource_id,
                "cause": type(cause).__name__,
                "executed": list(executed or []),
            },
        )
        self.resource_id = resource_id
        self.cause = cause
        self.executed = list(executed or [])


class ProviderError(StackDockError):
    """Raised when an external provider/adapter call fails."""

    kind = "provider"

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        resource_id: str | None = None,
    ):
        super().__init__(message, {"provider": provider, "resource_id": resource_id})
        self.provider = provider
        self.resource_id = resource_id


class OperationCancelledError(StackDockError):
    kind = "cancelled"

    def __init__(self, reason: str | None = None):
        super().__init__(f"Operation cancelled: {reason or 'cancelled by caller'}")
        self.reason = reason


def format_error_message(error: StackDockError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    details = {k: v for k, v in error.details.items() if v not in (None, [], {})}
    if details:
        detail_str = ", ".join(f"{k}={v}" for k, v in details.items())
        msg = f"{msg} ({detail_str})"
    return msg
