"""
Dock Adapter API.

Composes the resource registry, provider selection, the backends behind it
and the state store into the operations callers use: provision, update,
delete, get-state, sync-state and dependency-ordered deploy.
"""

from __future__ import annotations

from typing import Any, Literal, Sequence

import structlog

from stackdock.audit import audited
from stackdock.core.cancellation import CancelToken
from stackdock.core.errors import (
    NoProviderAvailableError,
    NotFoundError,
    PermissionDeniedError,
    ProviderError,
    ResourceStateNotFoundError,
    StackDockError,
    ValidationError,
)
from stackdock.core.locks import KeyedLock
from stackdock.domain.models import (
    CallerContext,
    Category,
    LifecycleState,
    ProvisionedResource,
    ProviderSelection,
    ProvisioningMethod,
    ResourceChanges,
    ResourceDeclaration,
    StateRecord,
    utcnow,
)
from stackdock.orchestration import (
    DeploymentResource,
    ExecutionEngine,
    ExecutionReport,
    ParallelExecutionEngine,
    PlanBuilder,
)
from stackdock.providers.adapters import AdapterRegistry, NativeBackendRegistry
from stackdock.providers.base import BackendRequest, ProviderResult, ProvisioningBackend
from stackdock.providers.rate_limits import LocalRateLimiter, ProviderRateLimiter
from stackdock.providers.registry import ProviderRegistry
from stackdock.providers.selector import ProviderSelector
from stackdock.resources.registry import ResourceRegistry, validate_declaration
from stackdock.state.categories import (
    CATEGORY_FIELDS,
    ResourceMapping,
    category_for,
    ensure_mappable,
    map_resource,
    split_fields,
)
from stackdock.state.reconcile import (
    MISSING_AT_PROVIDER,
    ReconcilePolicy,
    SyncResult,
    reconcile,
)
from stackdock.state.store import RecordStore, StateStoreAdapter

logger = structlog.get_logger()

ExecutionMode = Literal["sequential", "parallel"]


class DockAdapterAPI:
    """Entry point for every provisioning and state-sync operation."""

    def __init__(
        self,
        *,
        store: RecordStore,
        resources: ResourceRegistry | None = None,
        providers: ProviderRegistry | None = None,
        adapters: AdapterRegistry | None = None,
        native_backends: NativeBackendRegistry | None = None,
        selector: ProviderSelector | None = None,
        rate_limiter: ProviderRateLimiter | None = None,
        reconcile_policy: ReconcilePolicy = ReconcilePolicy.vendor_wins,
        execution_mode: ExecutionMode = "sequential",
        max_parallel_executions: int = 4,
        plan_builder: PlanBuilder | None = None,
    ) -> None:
        self._store = store
        self.resources = resources if resources is not None else ResourceRegistry()
        self.providers = providers if providers is not None else ProviderRegistry()
        self.adapters = adapters if adapters is not None else AdapterRegistry()
        self.native_backends = (
            native_backends if native_backends is not None else NativeBackendRegistry()
        )
        self._selector = selector or ProviderSelector()
        self._rate_limiter = rate_limiter if rate_limiter is not None else LocalRateLimiter()
        self._reconcile_policy = ReconcilePolicy(reconcile_policy)
        self._execution_mode = execution_mode
        self._max_parallel_executions = max_parallel_executions
        self._plan_builder = plan_builder or PlanBuilder()
        self._state_locks = KeyedLock()

    def validate(self) -> None:
        """Startup check: every registered resource type must have a category."""
        ensure_mappable(self.providers.resource_types())
        logger.info(
            "dock_api_validated",
            providers=[p.name for p in self.providers.list()],
            adapters=self.adapters.names(),
        )

    def state_store(self, ctx: CallerContext) -> StateStoreAdapter:
        return StateStoreAdapter(self._store, ctx.org_id, locks=self._state_locks)

    # Operations

    async def provision(
        self,
        ctx: CallerContext,
        declaration: ResourceDeclaration,
        *,
        cancel: CancelToken | None = None,
    ) -> ProvisionedResource:
        _require_write(ctx, "provision")

        async with audited(
            "provision",
            ctx,
            resource_type=declaration.type,
            provider=declaration.provider,
        ) as scope:
            validate_declaration(declaration)
            selection = self._select(str(declaration.type), str(declaration.provider))
            backend = self._backend(selection, str(declaration.type))

            resource = await self.resources.create(declaration, cancel=cancel)
            scope.resource_id = resource.id

            # No state record exists yet, so the registry entry carries the failure.
            try:
                mapping = map_resource(
                    resource_id=resource.id,
                    resource_type=resource.type,
                    provider=resource.provider,
                    configuration=resource.configuration,
                )
                await self.resources.assign_category(
                    resource.id, mapping.category, cancel=cancel
                )

                state = self.state_store(ctx)
                initial = StateRecord(
                    resource_id=resource.id,
                    provider=resource.provider,
                    provider_resource_id=resource.id,
                    state={
                        "resource_type": resource.type,
                        "provisioning_source": selection.method.value,
                        "provisioning_state": LifecycleState.provisioning.value,
                        "provisioned_at": None,
                    },
                )
                await state.create_state(
                    initial, mapping.category, mapping.mapping,
                    dock_id=ctx.dock_id, cancel=cancel,
                )
            except Exception as exc:
                await self.resources.mark_failed(resource.id, _failure_reason(exc))
                raise

            request = BackendRequest(
                resource_id=resource.id,
                resource_type=resource.type,
                configuration=resource.configuration,
            )
            result = await self._run_backend(
                "provision", selection.backend_name, backend, request,
                cancel=cancel, ctx=ctx, category=mapping.category,
            )
            await self._record_provisioned(
                ctx, resource.id, mapping.category, selection.method, result
            )

        provisioned = self.resources.get(resource.id)
        assert provisioned is not None
        return provisioned

    async def update(
        self,
        ctx: CallerContext,
        resource_id: str,
        changes: ResourceChanges,
        *,
        cancel: CancelToken | None = None,
    ) -> ProvisionedResource:
        _require_write(ctx, "update")

        async with audited("update", ctx, resource_id=resource_id) as scope:
            existing = self.resources.get(resource_id)
            if existing is None:
                raise NotFoundError(resource_id)

            resource_type = changes.type or existing.type
            provider = changes.provider or existing.provider
            scope.resource_type, scope.provider = resource_type, provider

            selection = self._select(resource_type, provider)
            backend = self._backend(selection, resource_type)
            category = category_for(resource_type, resource_id=resource_id)
            if existing.category is not None and category != existing.category:
                raise ValidationError(
                    "type",
                    f"Cannot move resource {resource_id} from {existing.category.value} "
                    f"to {category.value}",
                )

            updated = await self.resources.update(resource_id, changes, cancel=cancel)
            if updated.category is None:
                await self.resources.assign_category(resource_id, category, cancel=cancel)

            state = self.state_store(ctx)
            stored = await state.get_state(resource_id, category, cancel=cancel)
            moved = stored is not None and stored.provider != provider
            pending = StateRecord(
                resource_id=resource_id,
                provider=provider,
                provider_resource_id=resource_id,
                state={
                    "resource_type": resource_type,
                    "provisioning_source": selection.method.value,
                    "provisioning_state": LifecycleState.provisioning.value,
                    "failure_reason": None,
                },
            )
            if moved:
                # The previous vendor's id means nothing to the new one.
                pending.state["vendor_resource_id"] = None
            if stored is None:
                # An earlier provision failed before its initial write.
                mapping = map_resource(
                    resource_id=resource_id,
                    resource_type=resource_type,
                    provider=provider,
                    configuration=updated.configuration,
                )
                await state.create_state(
                    pending, category, mapping.mapping, dock_id=ctx.dock_id, cancel=cancel
                )
            else:
                await state.save_state(pending, category, cancel=cancel)

            vendor_id = None if moved else _vendor_id(stored)
            request = BackendRequest(
                resource_id=resource_id,
                resource_type=resource_type,
                configuration=updated.configuration,
                provider_resource_id=vendor_id,
            )
            # Nothing exists at the vendor yet, so an update becomes a first provision.
            operation = "update" if vendor_id else "provision"
            result = await self._run_backend(
                operation, selection.backend_name, backend, request,
                cancel=cancel, ctx=ctx, category=category,
            )
            await self._record_provisioned(ctx, resource_id, category, selection.method, result)

        refreshed = self.resources.get(resource_id)
        assert refreshed is not None
        return refreshed

    async def delete(
        self,
        ctx: CallerContext,
        resource_id: str,
        *,
        cancel: CancelToken | None = None,
    ) -> None:
        _require_write(ctx, "delete")

        async with audited("delete", ctx, resource_id=resource_id) as scope:
            existing = self.resources.get(resource_id)
            if existing is None:
                raise NotFoundError(resource_id)
            scope.resource_type, scope.provider = existing.type, existing.provider

            await self.resources.begin_delete(resource_id, cancel=cancel)
            state = self.state_store(ctx)
            found = await state.find_state(resource_id, cancel=cancel)

            vendor_id = _vendor_id(found[1]) if found else None
            if found is not None and vendor_id:
                category, record = found
                selection = self._select(existing.type, existing.provider)
                request = BackendRequest(
                    resource_id=resource_id,
                    resource_type=existing.type,
                    configuration=existing.configuration,
                    provider_resource_id=vendor_id,
                )
                backend = self._backend(selection, existing.type)
                try:
                    await self._rate_limiter.acquire(selection.backend_name, cancel=cancel)
                    await backend.delete(request, cancel=cancel)
                except Exception as exc:
                    error = _as_provider_error(exc, selection.backend_name, resource_id)
                    await state.save_state(
                        record.model_copy(
                            update={
                                "state": {
                                    "provisioning_state": LifecycleState.deprovisioning.value,
                                    "failure_reason": error.message,
                                },
                                "last_updated": utcnow(),
                            }
                        ),
                        category,
                    )
                    if error is exc:
                        raise
                    raise error from exc

            await self.resources.delete(resource_id, cancel=cancel)
            removed = await state.delete_everywhere(resource_id, cancel=cancel)
            logger.info(
                "resource_deprovisioned",
                resource_id=resource_id,
                categories=[c.value for c in removed],
            )

    async def get_resource_state(
        self,
        ctx: CallerContext,
        resource_id: str,
        *,
        cancel: CancelToken | None = None,
    ) -> ResourceMapping | None:
        """Probe servers, web services, domains then databases; first hit wins."""
        _require_read(ctx, "get_resource_state")

        found = await self.state_store(ctx).find_state(resource_id, cancel=cancel)
        if found is None:
            return None
        category, record = found
        return _to_mapping(category, record)

    async def sync_resource_state(
        self,
        ctx: CallerContext,
        resource_id: str,
        *,
        cancel: CancelToken | None = None,
    ) -> SyncResult:
        _require_write(ctx, "sync_resource_state")

        async with audited("sync", ctx, resource_id=resource_id) as scope:
            current = await self.get_resource_state(ctx, resource_id, cancel=cancel)
            if current is None:
                raise ResourceStateNotFoundError(resource_id)

            state = self.state_store(ctx)
            record = await state.get_state(resource_id, current.category, cancel=cancel)
            if record is None:
                raise ResourceStateNotFoundError(resource_id)

            resource_type = current.resource_type
            scope.resource_type, scope.provider = resource_type, record.provider

            vendor_id = _vendor_id(record)
            if vendor_id is None:
                # Never reached the vendor; only the timestamp is refreshed.
                result = SyncResult(
                    resource_id=resource_id,
                    category=current.category,
                    record=record.model_copy(update={"last_updated": utcnow()}),
                )
            else:
                selection = self._select(resource_type, record.provider)
                backend = self._backend(selection, resource_type)
                request = BackendRequest(
                    resource_id=resource_id,
                    resource_type=resource_type,
                    configuration=_configuration_of(self.resources.get(resource_id)),
                    provider_resource_id=vendor_id,
                )
                try:
                    await self._rate_limiter.acquire(selection.backend_name, cancel=cancel)
                    live = await backend.describe(request, cancel=cancel)
                except Exception as exc:
                    error = _as_provider_error(exc, selection.backend_name, resource_id)
                    if error is exc:
                        raise
                    raise error from exc
                result = reconcile(record, current.category, live, self._reconcile_policy)

            assert result.record is not None
            await state.save_state(result.record, current.category, cancel=cancel)

            if result.record.state.get("failure_reason") == MISSING_AT_PROVIDER:
                if resource_id in self.resources:
                    await self.resources.mark_failed(resource_id, MISSING_AT_PROVIDER)
                logger.warning(
                    "resource_missing_at_provider",
                    resource_id=resource_id,
                    provider=record.provider,
                )

            logger.info(
                "resource_state_synced",
                resource_id=resource_id,
                category=current.category.value,
                policy=self._reconcile_policy.value,
                drift=[d.key for d in result.drift],
                applied=result.applied,
            )
        return result

    async def deploy(
        self,
        ctx: CallerContext,
        resources: Sequence[DeploymentResource],
        *,
        cancel: CancelToken | None = None,
    ) -> ExecutionReport:
        """Provision ``resources`` in dependency order.

        ``report.results`` maps each plan id to its provisioned resource.
        """
        _require_write(ctx, "deploy")
        plan = self._plan_builder.build(resources)

        async def execute(node: DeploymentResource) -> ProvisionedResource:
            declaration = ResourceDeclaration(
                type=node.type, provider=node.provider, configuration=dict(node.configuration)
            )
            return await self.provision(ctx, declaration, cancel=cancel)

        if self._execution_mode == "parallel":
            engine: Any = ParallelExecutionEngine(
                execute, max_concurrency=self._max_parallel_executions
            )
        else:
            engine = ExecutionEngine(execute)

        logger.info("deploy_started", order=list(plan.order), mode=self._execution_mode)
        return await engine.execute(plan, cancel=cancel)

    def list_resources(self, ctx: CallerContext) -> list[ProvisionedResource]:
        _require_read(ctx, "list_resources")
        return self.resources.list()

    # Internals

    def _select(self, resource_type: str, provider: str) -> ProviderSelection:
        return self._selector.select_provider(
            resource_type,
            provider,
            self.providers.native_providers(resource_type),
            self.adapters.names(),
        )

    def _backend(self, selection: ProviderSelection, resource_type: str) -> ProvisioningBackend:
        if selection.method == ProvisioningMethod.native:
            backend = self.native_backends.get(selection.backend_name)
        else:
            backend = self.adapters.get(selection.backend_name)
        if backend is None:
            raise NoProviderAvailableError(resource_type, selection.backend_name)
        return backend

    async def _run_backend(
        self,
        operation: Literal["provision", "update"],
        provider: str,
        backend: ProvisioningBackend,
        request: BackendRequest,
        *,
        ctx: CallerContext,
        category: Category,
        cancel: CancelToken | None,
    ) -> ProviderResult:
        """Call the backend; on failure mark the resource and its state failed."""
        try:
            await self._rate_limiter.acquire(provider, cancel=cancel)
            if operation == "update":
                return await backend.update(request, cancel=cancel)
            return await backend.provision(request, cancel=cancel)
        except Exception as exc:
            error = _as_provider_error(exc, provider, request.resource_id)
            await self.resources.mark_failed(request.resource_id, error.message)
            await self.state_store(ctx).save_state(
                StateRecord(
                    resource_id=request.resource_id,
                    provider=provider,
                    provider_resource_id=request.resource_id,
                    state={
                        "provisioning_state": LifecycleState.failed.value,
                        "failure_reason": error.message,
                    },
                ),
                category,
            )
            logger.error(
                "backend_call_failed",
                operation=operation,
                resource_id=request.resource_id,
                provider=provider,
                error=error.message,
            )
            if error is exc:
                raise
            raise error from exc

    async def _record_provisioned(
        self,
        ctx: CallerContext,
        resource_id: str,
        category: Category,
        method: ProvisioningMethod,
        result: ProviderResult,
    ) -> None:
        native_id = result.provider_resource_id if method == ProvisioningMethod.native else None
        resource = await self.resources.mark_provisioned(resource_id, native_resource_id=native_id)

        reported = {k: v for k, v in result.fields.items() if v is not None}
        reported.update(
            {
                "status": result.status,
                "provisioning_state": LifecycleState.provisioned.value,
                "failure_reason": None,
                "native_resource_id": native_id,
                "vendor_resource_id": result.provider_resource_id,
                "provisioned_at": utcnow(),
            }
        )
        await self.state_store(ctx).save_state(
            StateRecord(
                resource_id=resource_id,
                provider=resource.provider,
                provider_resource_id=resource_id,
                state=reported,
                last_updated=result.updated_at or utcnow(),
            ),
            category,
        )
        logger.info(
            "resource_provisioned",
            resource_id=resource_id,
            provider=resource.provider,
            category=category.value,
            method=method.value,
        )


def _require_write(ctx: CallerContext, operation: str) -> None:
    if not ctx.can_write:
        raise PermissionDeniedError(operation, ctx.permission.value, user_id=ctx.user_id)


def _require_read(ctx: CallerContext, operation: str) -> None:
    if not ctx.can_read:
        raise PermissionDeniedError(operation, ctx.permission.value, user_id=ctx.user_id)


def _vendor_id(record: StateRecord | None) -> str | None:
    if record is None:
        return None
    return record.state.get("vendor_resource_id") or record.state.get("native_resource_id")


def _configuration_of(resource: ProvisionedResource | None) -> dict[str, Any]:
    return dict(resource.configuration) if resource is not None else {}


def _failure_reason(exc: Exception) -> str:
    if isinstance(exc, StackDockError):
        return exc.message
    return str(exc) or type(exc).__name__


def _as_provider_error(exc: Exception, provider: str, resource_id: str) -> StackDockError:
    if isinstance(exc, StackDockError):
        return exc
    return ProviderError(str(exc) or type(exc).__name__, provider=provider, resource_id=resource_id)


def _to_mapping(category: Category, record: StateRecord) -> ResourceMapping:
    known, extra = split_fields(category, record.state)
    model = CATEGORY_FIELDS[category]
    fields = model(
        provider=record.provider,
        provider_resource_id=record.provider_resource_id,
        extra=extra,
        **{k: v for k, v in known.items() if v is not None},
    )
    return ResourceMapping(
        category=category,
        resource_type=str(record.state.get("resource_type") or ""),
        mapping=fields,
    )
