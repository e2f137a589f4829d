"""Resource registry: tracks provisioned resources through their lifecycle."""

from __future__ import annotations

import time
from typing import Any

import structlog

from stackdock.core.cancellation import CancelToken, check_cancelled
from stackdock.core.errors import NotFoundError, ValidationError
from stackdock.core.locks import KeyedLock
from stackdock.domain.models import (
    Category,
    LifecycleState,
    ProvisionedResource,
    ResourceChanges,
    ResourceDeclaration,
    utcnow,
)

logger = structlog.get_logger()


def validate_declaration(declaration: ResourceDeclaration) -> None:
    """Raise a ValidationError naming the first missing field."""
    if not declaration.type:
        raise ValidationError("type", "Resource type is required")
    if not declaration.provider:
        raise ValidationError("provider", "Provider is required")
    if declaration.configuration is None:
        raise ValidationError("configuration", "Configuration is required")


class ResourceIdGenerator:
    """Generates ``type-provider-<epoch ms>`` ids, unique within the process."""

    def __init__(self) -> None:
        self._last_ms = 0

    def __call__(self, resource_type: str, provider: str) -> str:
        now_ms = int(time.time() * 1000)
        self._last_ms = max(now_ms, self._last_ms + 1)
        return f"{resource_type}-{provider}-{self._last_ms}"


class ResourceRegistry:
    """In-memory registry of provisioned resources.

    Writes to the same id are serialised; different ids never block each
    other. Once a resource has a state record the state store is the source of
    truth and the entry here acts as a cache.
    """

    def __init__(self, id_generator: ResourceIdGenerator | None = None) -> None:
        self._resources: dict[str, ProvisionedResource] = {}
        self._locks = KeyedLock()
        self._generate_id = id_generator or ResourceIdGenerator()

    async def create(
        self,
        declaration: ResourceDeclaration,
        *,
        cancel: CancelToken | None = None,
    ) -> ProvisionedResource:
        validate_declaration(declaration)
        check_cancelled(cancel)

        resource_type = str(declaration.type)
        provider = str(declaration.provider)
        resource_id = self._generate_id(resource_type, provider)
        async with self._locks.hold(resource_id):
            resource = ProvisionedResource(
                id=resource_id,
                type=resource_type,
                provider=provider,
                configuration=dict(declaration.configuration or {}),
                state=LifecycleState.provisioning,
            )
            self._resources[resource_id] = resource

        logger.info(
            "resource_created",
            resource_id=resource_id,
            resource_type=resource.type,
            provider=resource.provider,
        )
        return resource.model_copy(deep=True)

    async def update(
        self,
        resource_id: str,
        changes: ResourceChanges,
        *,
        cancel: CancelToken | None = None,
    ) -> ProvisionedResource:
        """Apply ``changes`` and return the resource to ``provisioning``.

        Fields are not diffed; every update is a full re-provision signal.
        """
        check_cancelled(cancel)
        async with self._locks.hold(resource_id):
            existing = self._require(resource_id)
            configuration = dict(existing.configuration)
            if changes.configuration:
                configuration.update(changes.configuration)

            updated = existing.model_copy(
                update={
                    "type": changes.type or existing.type,
                    "provider": changes.provider or existing.provider,
                    "configuration": configuration,
                    "state": LifecycleState.provisioning,
                    "failure_reason": None,
                    "updated_at": utcnow(),
                }
            )
            self._resources[resource_id] = updated

        logger.info("resource_updated", resource_id=resource_id)
        return updated.model_copy(deep=True)

    async def begin_delete(
        self,
        resource_id: str,
        *,
        cancel: CancelToken | None = None,
    ) -> ProvisionedResource:
        """Move a resource to ``deprovisioning`` ahead of backend teardown."""
        return await self._transition(
            resource_id, LifecycleState.deprovisioning, cancel=cancel
        )

    async def delete(self, resource_id: str, *, cancel: CancelToken | None = None) -> None:
        """Mark the resource ``deleted`` and drop it from the registry."""
        check_cancelled(cancel)
        async with self._locks.hold(resource_id):
            resource = self._require(resource_id)
            previous = resource.state
            resource.state = LifecycleState.deleted
            del self._resources[resource_id]

        logger.info("resource_deleted", resource_id=resource_id, previous_state=previous.value)

    async def mark_provisioned(
        self,
        resource_id: str,
        *,
        native_resource_id: str | None = None,
        cancel: CancelToken | None = None,
    ) -> ProvisionedResource:
        extra: dict[str, Any] = {"failure_reason": None}
        if native_resource_id is not None:
            extra["native_resource_id"] = native_resource_id
        return await self._transition(
            resource_id, LifecycleState.provisioned, cancel=cancel, **extra
        )

    async def mark_failed(
        self,
        resource_id: str,
        reason: str,
        *,
        cancel: CancelToken | None = None,
    ) -> ProvisionedResource:
        return await self._transition(
            resource_id, LifecycleState.failed, cancel=cancel, failure_reason=reason
        )

    async def assign_category(
        self,
        resource_id: str,
        category: Category,
        *,
        cancel: CancelToken | None = None,
    ) -> ProvisionedResource:
        check_cancelled(cancel)
        async with self._locks.hold(resource_id):
            resource = self._require(resource_id)
            updated = resource.model_copy(update={"category": category, "updated_at": utcnow()})
            self._resources[resource_id] = updated
        return updated.model_copy(deep=True)

    def get(self, resource_id: str) -> ProvisionedResource | None:
        resource = self._resources.get(resource_id)
        return resource.model_copy(deep=True) if resource else None

    def list(self) -> list[ProvisionedResource]:
        return [resource.model_copy(deep=True) for resource in self._resources.values()]

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._resources

    def __len__(self) -> int:
        return len(self._resources)

    async def _transition(
        self,
        resource_id: str,
        state: LifecycleState,
        *,
        cancel: CancelToken | None = None,
        **fields: Any,
    ) -> ProvisionedResource:
        check_cancelled(cancel)
        async with self._locks.hold(resource_id):
            resource = self._require(resource_id)
            updated = resource.model_copy(update={"state": state, "updated_at": utcnow(), **fields})
            self._resources[resource_id] = updated

        logger.debug("resource_state_changed", resource_id=resource_id, state=state.value)
        return updated.model_copy(deep=True)

    def _require(self, resource_id: str) -> ProvisionedResource:
        resource = self._resources.get(resource_id)
        if resource is None:
            raise NotFoundError(resource_id)
        return resource
