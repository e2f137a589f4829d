from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping

import structlog
from circuitbreaker import CircuitBreakerError

from stackdock.clients.base import PermanentHTTPError, RetryableHTTPError
from stackdock.clients.digitalocean import DigitalOceanClient
from stackdock.core.cancellation import CancelToken, check_cancelled
from stackdock.core.errors import ProviderError
from stackdock.domain.models import Category
from stackdock.providers.base import BackendRequest, ProviderResult
from stackdock.state.categories import category_for

logger = structlog.get_logger()

RESOURCE_TYPES = (
    "digitalocean.Droplet",
    "digitalocean.Domain",
    "digitalocean.DatabaseCluster",
    "server",
    "domain",
    "database",
)

DROPLET_STATUS_MAP = {
    "active": "running",
    "off": "stopped",
    "archive": "archived",
    "new": "pending",
}


def normalize_droplet_status(status: str | None) -> str:
    value = (status or "").lower()
    return DROPLET_STATUS_MAP.get(value, value or "unknown")


def _public_ipv4(droplet: Mapping[str, Any]) -> str | None:
    for network in (droplet.get("networks") or {}).get("v4", []):
        if network.get("type") == "public":
            return network.get("ip_address")
    return None


def droplet_result(droplet: Mapping[str, Any]) -> ProviderResult:
    region = droplet.get("region") or {}
    return ProviderResult(
        provider_resource_id=str(droplet["id"]),
        status=normalize_droplet_status(droplet.get("status")),
        fields={
            "name": droplet.get("name"),
            "region": region.get("slug") or region.get("name"),
            "primary_ip_address": _public_ipv4(droplet),
            "size": droplet.get("size_slug"),
        },
    )


def domain_result(domain: Mapping[str, Any]) -> ProviderResult:
    # Domains have no lifecycle on DigitalOcean; existing means active.
    return ProviderResult(
        provider_resource_id=domain["name"],
        status="active",
        fields={"domain_name": domain["name"], "ttl": domain.get("ttl")},
    )


def database_result(database: Mapping[str, Any]) -> ProviderResult:
    return ProviderResult(
        provider_resource_id=str(database["id"]),
        status=str(database.get("status") or "unknown").lower(),
        fields={
            "name": database.get("name"),
            "engine": database.get("engine"),
            "version": database.get("version"),
            "region": database.get("region"),
        },
    )


class DigitalOceanAdapter:
    """Dock adapter for droplets, domains and managed databases."""

    name = "digitalocean"

    def __init__(self, client: DigitalOceanClient) -> None:
        self._client = client

    @asynccontextmanager
    async def _vendor_call(self, operation: str, request: BackendRequest) -> AsyncIterator[None]:
        try:
            yield
        except (PermanentHTTPError, RetryableHTTPError, CircuitBreakerError) as exc:
            logger.warning(
                "digitalocean_call_failed",
                operation=operation,
                resource_id=request.resource_id,
                resource_type=request.resource_type,
                error=str(exc),
            )
            raise ProviderError(
                f"DigitalOcean {operation} failed: {exc}",
                provider=self.name,
                resource_id=request.resource_id,
            ) from exc

    def _category(self, request: BackendRequest) -> Category:
        category = category_for(request.resource_type, resource_id=request.resource_id)
        if category == Category.web_services:
            raise ProviderError(
                f'DigitalOcean does not support resource type "{request.resource_type}"',
                provider=self.name,
                resource_id=request.resource_id,
            )
        return category

    def _require(self, request: BackendRequest, *keys: str) -> list[Any]:
        missing = [key for key in keys if not request.configuration.get(key)]
        if missing:
            raise ProviderError(
                f"DigitalOcean {request.resource_type} requires {', '.join(missing)}",
                provider=self.name,
                resource_id=request.resource_id,
            )
        return [request.configuration[key] for key in keys]

    def _vendor_id(self, request: BackendRequest) -> str:
        if not request.provider_resource_id:
            raise ProviderError(
                "DigitalOcean resource has no vendor id yet",
                provider=self.name,
                resource_id=request.resource_id,
            )
        return request.provider_resource_id

    async def provision(
        self, request: BackendRequest, *, cancel: CancelToken | None = None
    ) -> ProviderResult:
        check_cancelled(cancel)
        category = self._category(request)
        config = request.configuration

        async with self._vendor_call("provision", request):
            if category == Category.servers:
                name, region, size, image = self._require(
                    request, "name", "region", "size", "image"
                )
                droplet = await self._client.create_droplet(
                    name=name, region=region, size=size, image=image
                )
                return droplet_result(droplet)

            if category == Category.domains:
                (name,) = self._require(request, "name")
                domain = await self._client.create_domain(name, config.get("ip_address"))
                return domain_result(domain)

            name, engine, region, size = self._require(
                request, "name", "engine", "region", "size"
            )
            database = await self._client.create_database(
                name=name,
                engine=engine,
                region=region,
                size=size,
                num_nodes=int(config.get("num_nodes") or 1),
                version=config.get("version"),
            )
            return database_result(database)

    async def update(
        self, request: BackendRequest, *, cancel: CancelToken | None = None
    ) -> ProviderResult:
        check_cancelled(cancel)
        category = self._category(request)
        vendor_id = self._vendor_id(request)
        config = request.configuration

        async with self._vendor_call("update", request):
            if category == Category.servers:
                if config.get("name"):
                    await self._client.rename_droplet(vendor_id, str(config["name"]))
                return droplet_result(await self._client.get_droplet(vendor_id))

            if category == Category.databases:
                if config.get("size"):
                    await self._client.resize_database(
                        vendor_id,
                        size=str(config["size"]),
                        num_nodes=int(config.get("num_nodes") or 1),
                    )
                return database_result(await self._client.get_database(vendor_id))

            return domain_result(await self._client.get_domain(vendor_id))

    async def delete(self, request: BackendRequest, *, cancel: CancelToken | None = None) -> None:
        check_cancelled(cancel)
        category = self._category(request)
        vendor_id = self._vendor_id(request)

        try:
            async with self._vendor_call("delete", request):
                if category == Category.servers:
                    await self._client.delete_droplet(vendor_id)
                elif category == Category.domains:
                    await self._client.delete_domain(vendor_id)
                else:
                    await self._client.delete_database(vendor_id)
        except ProviderError as exc:
            if _is_not_found(exc):
                logger.info("digitalocean_already_deleted", resource_id=request.resource_id)
                return
            raise

    async def describe(
        self, request: BackendRequest, *, cancel: CancelToken | None = None
    ) -> ProviderResult | None:
        check_cancelled(cancel)
        category = self._category(request)
        vendor_id = request.provider_resource_id
        if not vendor_id and category == Category.domains:
            vendor_id = request.configuration.get("name")
        if not vendor_id:
            return None

        try:
            async with self._vendor_call("describe", request):
                if category == Category.servers:
                    return droplet_result(await self._client.get_droplet(vendor_id))
                if category == Category.domains:
                    return domain_result(await self._client.get_domain(vendor_id))
                return database_result(await self._client.get_database(vendor_id))
        except ProviderError as exc:
            if _is_not_found(exc):
                return None
            raise


def _is_not_found(error: ProviderError) -> bool:
    cause = error.__cause__
    return isinstance(cause, PermanentHTTPError) and cause.status_code == 404
