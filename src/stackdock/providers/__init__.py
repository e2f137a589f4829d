"""Provider catalog, selection and the backends behind it."""

from stackdock.providers.adapters import AdapterRegistry, BackendCatalog, NativeBackendRegistry
from stackdock.providers.base import BackendRequest, ProviderResult, ProvisioningBackend
from stackdock.providers.rate_limits import (
    LocalRateLimiter,
    ProviderRateLimiter,
    RedisRateLimiter,
    get_provider_limit,
    validate_sync_interval,
)
from stackdock.providers.registry import ProviderRegistry
from stackdock.providers.selector import ProviderSelector

__all__ = [
    "AdapterRegistry",
    "BackendCatalog",
    "BackendRequest",
    "LocalRateLimiter",
    "NativeBackendRegistry",
    "ProviderRateLimiter",
    "ProviderRegistry",
    "ProviderResult",
    "ProviderSelector",
    "ProvisioningBackend",
    "RedisRateLimiter",
    "get_provider_limit",
    "validate_sync_interval",
]
