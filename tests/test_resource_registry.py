import asyncio

import pytest
from stackdock.core.cancellation import CancelToken
from stackdock.core.errors import NotFoundError, OperationCancelledError, ValidationError
from stackdock.domain.models import (
    Category,
    LifecycleState,
    ResourceChanges,
    ResourceDeclaration,
)
from stackdock.resources.registry import ResourceIdGenerator, ResourceRegistry


def _declaration(**overrides):
    values = {"type": "server", "provider": "vendorx", "configuration": {"name": "web-1"}}
    values.update(overrides)
    return ResourceDeclaration(**values)


@pytest.mark.asyncio
async def test_create_starts_in_provisioning():
    registry = ResourceRegistry()

    resource = await registry.create(_declaration())

    assert resource.state == LifecycleState.provisioning
    assert resource.id.startswith("server-vendorx-")
    assert registry.get(resource.id) == resource
    assert len(registry) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("missing", "message"),
    [
        ("type", "Resource type is required"),
        ("provider", "Provider is required"),
        ("configuration", "Configuration is required"),
    ],
)
async def test_create_rejects_missing_fields(missing, message):
    registry = ResourceRegistry()

    with pytest.raises(ValidationError) as exc_info:
        await registry.create(_declaration(**{missing: None}))

    assert exc_info.value.field == missing
    assert str(exc_info.value) == message
    assert len(registry) == 0


def test_ids_are_unique_within_the_same_millisecond(monkeypatch):
    monkeypatch.setattr("stackdock.resources.registry.time.time", lambda: 1_700_000_000.0)
    generate = ResourceIdGenerator()

    ids = {generate("server", "vendorx") for _ in range(50)}

    assert len(ids) == 50


@pytest.mark.asyncio
async def test_update_merges_configuration_and_reenters_provisioning():
    registry = ResourceRegistry()
    resource = await registry.create(_declaration(configuration={"name": "web-1", "size": "s"}))
    await registry.mark_provisioned(resource.id, native_resource_id="n-1")

    updated = await registry.update(resource.id, ResourceChanges(configuration={"size": "m"}))

    assert updated.state == LifecycleState.provisioning
    assert updated.configuration == {"name": "web-1", "size": "m"}
    assert updated.native_resource_id == "n-1"


@pytest.mark.asyncio
async def test_update_and_delete_unknown_id_raise_not_found():
    registry = ResourceRegistry()

    with pytest.raises(NotFoundError):
        await registry.update("missing", ResourceChanges())
    with pytest.raises(NotFoundError):
        await registry.delete("missing")


@pytest.mark.asyncio
async def test_delete_walks_deprovisioning_then_removes():
    registry = ResourceRegistry()
    resource = await registry.create(_declaration())

    deprovisioning = await registry.begin_delete(resource.id)
    assert deprovisioning.state == LifecycleState.deprovisioning

    await registry.delete(resource.id)

    assert registry.get(resource.id) is None
    assert resource.id not in registry


@pytest.mark.asyncio
async def test_failed_is_distinct_from_deletion():
    registry = ResourceRegistry()
    resource = await registry.create(_declaration())

    failed = await registry.mark_failed(resource.id, "vendor rejected the request")

    assert failed.state == LifecycleState.failed
    assert failed.failure_reason == "vendor rejected the request"


@pytest.mark.asyncio
async def test_assign_category():
    registry = ResourceRegistry()
    resource = await registry.create(_declaration())

    updated = await registry.assign_category(resource.id, Category.servers)

    assert updated.category == Category.servers


@pytest.mark.asyncio
async def test_get_returns_a_copy():
    registry = ResourceRegistry()
    resource = await registry.create(_declaration())

    copy = registry.get(resource.id)
    copy.configuration["name"] = "changed"

    assert registry.get(resource.id).configuration["name"] == "web-1"


@pytest.mark.asyncio
async def test_concurrent_updates_to_one_id_are_serialised():
    registry = ResourceRegistry()
    resource = await registry.create(_declaration(configuration={}))

    await asyncio.gather(
        *[
            registry.update(resource.id, ResourceChanges(configuration={f"k{i}": i}))
            for i in range(10)
        ]
    )

    assert registry.get(resource.id).configuration == {f"k{i}": i for i in range(10)}


@pytest.mark.asyncio
async def test_cancelled_token_stops_registry_io():
    registry = ResourceRegistry()
    token = CancelToken()
    token.cancel("shutdown")

    with pytest.raises(OperationCancelledError):
        await registry.create(_declaration(), cancel=token)
    assert registry.list() == []
