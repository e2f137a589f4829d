"""Chooses between a native provisioning backend and a dock adapter."""

from __future__ import annotations

from typing import Iterable, Sequence

from stackdock.core.errors import NoProviderAvailableError
from stackdock.domain.models import Provider, ProviderSelection, ProvisioningMethod


class ProviderSelector:
    """Deterministic selection: native provider first, then dock adapter.

    There is no partial match or substitution; the same inputs always yield
    the same selection or the same error.
    """

    def select_provider(
        self,
        resource_type: str,
        provider_name: str,
        native_providers: Sequence[Provider],
        adapter_names: Iterable[str],
    ) -> ProviderSelection:
        native = next(
            (
                p
                for p in native_providers
                if p.name == provider_name and p.supports(resource_type)
            ),
            None,
        )
        if native is not None and native.available:
            return ProviderSelection(method=ProvisioningMethod.native, provider=native)

        if provider_name in set(adapter_names):
            return ProviderSelection(
                method=ProvisioningMethod.adapter,
                provider=None,
                adapter_name=provider_name,
            )

        raise NoProviderAvailableError(resource_type, provider_name)
