from __future__ import annotations

from typing import Any

from stackdock.clients.base import BaseHTTPClient


class DigitalOceanClient(BaseHTTPClient):
    """DigitalOcean API v2 client with retry logic and circuit breaker."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = "https://api.digitalocean.com/v2",
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
    ) -> None:
        super().__init__(
            base_url,
            timeout=timeout,
            max_retries=max_retries,
            backoff_factor=backoff_factor,
        )
        self._token = token.strip()

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Authorization"] = f"Bearer {self._token}"
        return headers

    # Droplets

    async def get_droplet(self, droplet_id: str) -> dict[str, Any]:
        response = await self.get(f"/droplets/{droplet_id}")
        return response["droplet"]

    async def create_droplet(
        self, *, name: str, region: str, size: str, image: str, **extra: Any
    ) -> dict[str, Any]:
        payload = {"name": name, "region": region, "size": size, "image": image, **extra}
        response = await self.post("/droplets", json=payload)
        return response["droplet"]

    async def rename_droplet(self, droplet_id: str, name: str) -> dict[str, Any]:
        response = await self.post(
            f"/droplets/{droplet_id}/actions", json={"type": "rename", "name": name}
        )
        return response.get("action") or {}

    async def delete_droplet(self, droplet_id: str) -> None:
        await self.delete(f"/droplets/{droplet_id}")

    # Domains

    async def get_domain(self, name: str) -> dict[str, Any]:
        response = await self.get(f"/domains/{name}")
        return response["domain"]

    async def create_domain(self, name: str, ip_address: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": name}
        if ip_address:
            payload["ip_address"] = ip_address
        response = await self.post("/domains", json=payload)
        return response["domain"]

    async def delete_domain(self, name: str) -> None:
        await self.delete(f"/domains/{name}")

    # Managed databases

    async def get_database(self, database_id: str) -> dict[str, Any]:
        response = await self.get(f"/databases/{database_id}")
        return response["database"]

    async def create_database(
        self,
        *,
        name: str,
        engine: str,
        region: str,
        size: str,
        num_nodes: int = 1,
        version: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": name,
            "engine": engine,
            "region": region,
            "size": size,
            "num_nodes": num_nodes,
        }
        if version:
            payload["version"] = version
        response = await self.post("/databases", json=payload)
        return response["database"]

    async def resize_database(self, database_id: str, *, size: str, num_nodes: int) -> None:
        await self.put(
            f"/databases/{database_id}/resize", json={"size": size, "num_nodes": num_nodes}
        )

    async def delete_database(self, database_id: str) -> None:
        await self.delete(f"/databases/{database_id}")
