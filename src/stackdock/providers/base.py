from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Protocol

from stackdock.core.cancellation import CancelToken


@dataclass(frozen=True)
class ProviderResult:
    """What a backend reports back about a vendor resource."""

    provider_resource_id: str
    status: str
    fields: dict[str, Any] = field(default_factory=dict)
    updated_at: datetime | None = None


@dataclass(frozen=True)
class BackendRequest:
    """Input to a backend call.

    ``resource_id`` is the engine's id; ``provider_resource_id`` is the
    vendor's id once one has been assigned.
    """

    resource_id: str
    resource_type: str
    configuration: Mapping[str, Any]
    provider_resource_id: str | None = None


class ProvisioningBackend(Protocol):
    """Call surface shared by native backends and dock adapters.

    Implementations classify and retry transient vendor errors themselves and
    raise ``ProviderError`` for anything they give up on.
    """

    name: str

    async def provision(
        self, request: BackendRequest, *, cancel: CancelToken | None = None
    ) -> ProviderResult:
        ...

    async def update(
        self, request: BackendRequest, *, cancel: CancelToken | None = None
    ) -> ProviderResult:
        ...

    async def delete(
        self, request: BackendRequest, *, cancel: CancelToken | None = None
    ) -> None:
        ...

    async def describe(
        self, request: BackendRequest, *, cancel: CancelToken | None = None
    ) -> ProviderResult | None:
        """Return live vendor state, or None when the vendor has no such resource."""
        ...
