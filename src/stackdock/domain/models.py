from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LifecycleState(StrEnum):
    """Lifecycle of a tracked resource.

    ``failed`` is only ever a genuine provisioning failure; teardown goes
    through ``deprovisioning`` and ``deleted``.
    """

    provisioning = "provisioning"
    provisioned = "provisioned"
    failed = "failed"
    deprovisioning = "deprovisioning"
    deleted = "deleted"


class Category(StrEnum):
    """State-store partitions every vendor resource is normalised into."""

    servers = "servers"
    web_services = "web_services"
    domains = "domains"
    databases = "databases"


# Probe order used when the caller does not know a resource's category.
CATEGORY_PROBE_ORDER: tuple[Category, ...] = (
    Category.servers,
    Category.web_services,
    Category.domains,
    Category.databases,
)


class ProviderKind(StrEnum):
    native = "native"
    adapter = "adapter"


class ProvisioningMethod(StrEnum):
    native = "native"
    adapter = "adapter"


class Permission(StrEnum):
    full = "full"
    read = "read"
    none = "none"


class ResourceDeclaration(BaseModel):
    """Caller-supplied request to provision a piece of infrastructure."""

    model_config = ConfigDict(frozen=True)

    type: str | None = None
    provider: str | None = None
    configuration: Mapping[str, Any] | None = None

    @property
    def name(self) -> str:
        config = self.configuration or {}
        return str(config.get("name") or self.type or "")


class ResourceChanges(BaseModel):
    """Partial declaration applied by an update."""

    model_config = ConfigDict(frozen=True)

    type: str | None = None
    provider: str | None = None
    configuration: Mapping[str, Any] | None = None


class ProvisionedResource(BaseModel):
    """Tracked runtime record of a declaration's lifecycle."""

    id: str
    type: str
    provider: str
    configuration: dict[str, Any] = Field(default_factory=dict)
    category: Category | None = None
    native_resource_id: str | None = None
    state: LifecycleState = LifecycleState.provisioning
    failure_reason: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Provider(BaseModel):
    """A provisioning backend registered at startup."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: ProviderKind | None = None
    resource_types: Sequence[str] = Field(default_factory=tuple)
    available: bool = True

    def supports(self, resource_type: str) -> bool:
        return resource_type in self.resource_types


class ProviderSelection(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: ProvisioningMethod
    provider: Provider | None = None
    adapter_name: str | None = None

    @property
    def backend_name(self) -> str:
        if self.provider is not None:
            return self.provider.name
        return self.adapter_name or ""


class StateRecord(BaseModel):
    """Persisted, reconciled view of a resource's provider-reported status."""

    resource_id: str
    provider: str
    provider_resource_id: str
    state: dict[str, Any] = Field(default_factory=dict)
    last_updated: datetime = Field(default_factory=utcnow)


class CallerContext(BaseModel):
    """Opaque caller identity passed to every entry point."""

    model_config = ConfigDict(frozen=True)

    org_id: str
    user_id: str
    permission: Permission = Permission.none
    dock_id: str | None = None

    @property
    def can_write(self) -> bool:
        return self.permission == Permission.full

    @property
    def can_read(self) -> bool:
        return self.permission in (Permission.full, Permission.read)
