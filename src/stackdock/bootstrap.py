"""Process-start wiring.

Every registry is built once here and handed to the API by reference; there
are no module-level registries.
"""

from __future__ import annotations

import structlog

from stackdock.clients.digitalocean import DigitalOceanClient
from stackdock.config import Settings, get_settings
from stackdock.coordination import RedisCoordinator
from stackdock.db.repositories import SqlRecordStore
from stackdock.db.session import init_engine
from stackdock.dock_api import DockAdapterAPI
from stackdock.domain.models import Provider, ProviderKind
from stackdock.logging import configure_logging
from stackdock.providers import digitalocean
from stackdock.providers.rate_limits import LocalRateLimiter, ProviderRateLimiter, RedisRateLimiter
from stackdock.state.reconcile import ReconcilePolicy
from stackdock.state.store import RecordStore

logger = structlog.get_logger()


def build_rate_limiter(
    settings: Settings, coordinator: RedisCoordinator | None = None
) -> ProviderRateLimiter:
    if settings.rate_limit_backend == "redis":
        coordinator = coordinator or RedisCoordinator(
            settings.redis_url, max_connections=settings.redis_max_connections
        )
        return RedisRateLimiter(coordinator)
    return LocalRateLimiter()


def build_record_store(settings: Settings) -> RecordStore:
    return SqlRecordStore(init_engine(settings))


def register_digitalocean(api: DockAdapterAPI, settings: Settings) -> None:
    """Register the DigitalOcean dock adapter when a token is configured."""
    if not settings.digitalocean_token:
        return
    client = DigitalOceanClient(
        settings.digitalocean_token,
        base_url=settings.digitalocean_base_url,
        timeout=settings.http_timeout,
        max_retries=settings.http_max_retries,
        backoff_factor=settings.http_retry_backoff_factor,
    )
    adapter = digitalocean.DigitalOceanAdapter(client)
    api.adapters.register(adapter.name, adapter)
    api.providers.register(
        Provider(
            name=adapter.name,
            kind=ProviderKind.adapter,
            resource_types=digitalocean.RESOURCE_TYPES,
        )
    )


def build_dock_api(
    settings: Settings | None = None,
    store: RecordStore | None = None,
    *,
    coordinator: RedisCoordinator | None = None,
    configure_logs: bool = False,
) -> DockAdapterAPI:
    """Build a validated API from settings.

    ``store`` defaults to the SQL record store on ``settings.database_url``.
    """
    cfg = settings or get_settings()
    if configure_logs:
        configure_logging(cfg.log_level, json_logs=not cfg.debug)

    api = DockAdapterAPI(
        store=store if store is not None else build_record_store(cfg),
        rate_limiter=build_rate_limiter(cfg, coordinator),
        reconcile_policy=ReconcilePolicy(cfg.reconcile_policy),
        execution_mode=cfg.plan_execution_mode,
        max_parallel_executions=cfg.max_parallel_executions,
    )
    register_digitalocean(api, cfg)
    api.validate()

    logger.info(
        "dock_api_ready",
        reconcile_policy=cfg.reconcile_policy,
        execution_mode=cfg.plan_execution_mode,
        rate_limit_backend=cfg.rate_limit_backend,
    )
    return api
