from __future__ import annotations

from typing import Dict, List

import structlog

from stackdock.core.errors import ConfigurationError
from stackdock.providers.base import ProvisioningBackend

logger = structlog.get_logger()


class BackendCatalog:
    """Maps a vendor name to the backend that talks to it.

    One catalog holds native backends, another holds dock adapters; the
    provider selector decides which one a call goes through.
    """

    def __init__(self, label: str = "backend") -> None:
        self._label = label
        self._backends: Dict[str, ProvisioningBackend] = {}

    def register(self, name: str, backend: ProvisioningBackend) -> None:
        if not name:
            raise ConfigurationError(f"{self._label.capitalize()} name is required")
        self._backends[name] = backend
        logger.debug("backend_registered", kind=self._label, name=name)

    def get(self, name: str) -> ProvisioningBackend | None:
        return self._backends.get(name)

    def has(self, name: str) -> bool:
        return name in self._backends

    def names(self) -> List[str]:
        return list(self._backends.keys())


class AdapterRegistry(BackendCatalog):
    """Registry of per-vendor dock adapters."""

    def __init__(self) -> None:
        super().__init__("adapter")


class NativeBackendRegistry(BackendCatalog):
    """Registry of backends built into the engine itself."""

    def __init__(self) -> None:
        super().__init__("native backend")
