from __future__ import annotations

import threading
from typing import Dict, List

import structlog

from stackdock.core.errors import ConfigurationError
from stackdock.domain.models import Provider, ProviderKind

logger = structlog.get_logger()


class ProviderRegistry:
    """Catalog of provisioning backends and the resource types they support.

    Registration is an administrative operation performed at startup; it is
    mutually exclusive with lookups, which read a consistent snapshot.
    """

    def __init__(self) -> None:
        self._providers: Dict[str, Provider] = {}
        self._lock = threading.Lock()

    def register(self, provider: Provider) -> None:
        if not provider.name:
            raise ConfigurationError("Provider name is required")
        if not provider.kind:
            raise ConfigurationError("Provider type is required", {"provider": provider.name})
        if not provider.resource_types:
            raise ConfigurationError(
                "Provider must support at least one resource type",
                {"provider": provider.name},
            )
        with self._lock:
            self._providers[provider.name] = provider
        logger.info(
            "provider_registered",
            provider=provider.name,
            kind=provider.kind.value,
            resource_types=list(provider.resource_types),
        )

    def unregister(self, name: str) -> None:
        """Remove a provider; unknown names are ignored."""
        with self._lock:
            removed = self._providers.pop(name, None)
        if removed is not None:
            logger.info("provider_unregistered", provider=name)

    def get_provider(self, resource_type: str, provider_name: str | None = None) -> Provider | None:
        """Resolve a provider for ``resource_type``.

        With ``provider_name`` the named provider is returned only if it
        supports the type. Otherwise the first available native provider wins,
        falling back to the first adapter.
        """
        providers = self._snapshot()
        if provider_name:
            provider = next((p for p in providers if p.name == provider_name), None)
            if provider is not None and provider.supports(resource_type):
                return provider
            return None

        for provider in providers:
            if (
                provider.kind == ProviderKind.native
                and provider.available
                and provider.supports(resource_type)
            ):
                return provider

        for provider in providers:
            if provider.kind == ProviderKind.adapter and provider.supports(resource_type):
                return provider
        return None

    def list_providers(self, resource_type: str) -> List[Provider]:
        """All providers supporting ``resource_type``, native before adapters."""
        matching = [p for p in self._snapshot() if p.supports(resource_type)]
        # sorted() is stable, so registration order holds within each kind.
        return sorted(matching, key=lambda p: 0 if p.kind == ProviderKind.native else 1)

    def native_providers(self, resource_type: str) -> List[Provider]:
        return [p for p in self.list_providers(resource_type) if p.kind == ProviderKind.native]

    def is_provider_available(self, name: str) -> bool:
        with self._lock:
            provider = self._providers.get(name)
        return provider.available if provider is not None else False

    def resource_types(self) -> set[str]:
        return {rtype for provider in self._snapshot() for rtype in provider.resource_types}

    def list(self) -> List[Provider]:
        return self._snapshot()

    def _snapshot(self) -> List[Provider]:
        with self._lock:
            return list(self._providers.values())
