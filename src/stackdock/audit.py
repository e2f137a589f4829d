"""Audit trail for mutating engine operations.

Events are named ``resource.<operation>`` and carry who did what to which
resource. Configuration values and credentials are never included.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Literal

import structlog

from stackdock.core.errors import StackDockError
from stackdock.domain.models import CallerContext

AuditOperation = Literal["provision", "update", "delete", "sync"]

audit_logger = structlog.get_logger("stackdock.audit")


def audit_event(
    operation: AuditOperation,
    ctx: CallerContext,
    *,
    result: Literal["success", "error"],
    resource_id: str | None = None,
    resource_type: str | None = None,
    provider: str | None = None,
    error: str | None = None,
) -> None:
    fields = {
        "result": result,
        "org_id": ctx.org_id,
        "user_id": ctx.user_id,
        "resource_id": resource_id,
        "resource_type": resource_type,
        "provider": provider,
    }
    if error is not None:
        fields["error"] = error
    if result == "success":
        audit_logger.info(f"resource.{operation}", **fields)
    else:
        audit_logger.warning(f"resource.{operation}", **fields)


class AuditScope:
    """Fields filled in while an audited operation runs."""

    def __init__(
        self,
        resource_id: str | None = None,
        resource_type: str | None = None,
        provider: str | None = None,
    ) -> None:
        self.resource_id = resource_id
        self.resource_type = resource_type
        self.provider = provider


@asynccontextmanager
async def audited(
    operation: AuditOperation,
    ctx: CallerContext,
    *,
    resource_id: str | None = None,
    resource_type: str | None = None,
    provider: str | None = None,
) -> AsyncIterator[AuditScope]:
    """Emit one audit event when the wrapped block finishes."""
    scope = AuditScope(resource_id, resource_type, provider)
    try:
        yield scope
    except StackDockError as exc:
        audit_event(
            operation,
            ctx,
            result="error",
            resource_id=scope.resource_id,
            resource_type=scope.resource_type,
            provider=scope.provider,
            error=exc.kind,
        )
        raise
    audit_event(
        operation,
        ctx,
        result="success",
        resource_id=scope.resource_id,
        resource_type=scope.resource_type,
        provider=scope.provider,
    )
