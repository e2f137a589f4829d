"""
Tests for the state store adapter over both record stores.

Every behavioural test runs against the in-memory store and the SQL store on
an in-memory SQLite database.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from stackdock.core.cancellation import CancelToken
from stackdock.core.errors import CannotSaveUnknownResourceError, OperationCancelledError
from stackdock.db.repositories import SqlRecordStore
from stackdock.db.session import create_schema
from stackdock.domain.models import Category, StateRecord
from stackdock.state.categories import map_resource
from stackdock.state.memory import InMemoryRecordStore
from stackdock.state.store import RecordConflict, StateStoreAdapter

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
T1 = datetime(2026, 1, 2, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sql"])
async def store(request):
    if request.param == "memory":
        yield InMemoryRecordStore()
        return

    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await create_schema(engine)
    yield SqlRecordStore(async_sessionmaker(engine, expire_on_commit=False))
    await engine.dispose()


def _record(resource_id="server-vendorx-1", **state):
    return StateRecord(
        resource_id=resource_id,
        provider="vendorx",
        provider_resource_id=resource_id,
        state=state,
        last_updated=T0,
    )


async def _create(adapter, record, category=Category.servers, configuration=None):
    mapping = map_resource(
        resource_id=record.resource_id,
        resource_type={Category.servers: "server", Category.databases: "database"}[category],
        provider=record.provider,
        configuration=configuration or {"name": "web-1"},
    )
    return await adapter.create_state(record, category, mapping.mapping)


async def test_get_state_miss_returns_none(store):
    adapter = StateStoreAdapter(store, "org-1")

    assert await adapter.get_state("nope", Category.servers) is None


async def test_create_then_get(store):
    adapter = StateStoreAdapter(store, "org-1")

    created = await _create(
        adapter,
        _record(provisioning_source="adapter", provisioning_state="provisioning"),
        configuration={"name": "web-1", "region": "nyc3", "image": "ubuntu"},
    )

    assert created.provider_resource_id == "server-vendorx-1"
    assert created.state["provisioning_state"] == "provisioning"
    assert created.state["provisioning_source"] == "adapter"
    assert created.state["name"] == "web-1"
    assert created.state["region"] == "nyc3"
    assert created.state["image"] == "ubuntu"
    assert created.state["status"] == "pending"


async def test_save_state_requires_existing_record(store):
    adapter = StateStoreAdapter(store, "org-1")

    with pytest.raises(CannotSaveUnknownResourceError) as exc_info:
        await adapter.save_state(_record(provisioning_state="provisioned"), Category.servers)

    assert exc_info.value.details["category"] == "servers"
    assert await adapter.get_state("server-vendorx-1", Category.servers) is None


async def test_save_then_get_returns_merge(store):
    adapter = StateStoreAdapter(store, "org-1")
    prior = await _create(
        adapter,
        _record(provisioning_source="adapter", provisioning_state="provisioning", plan="basic"),
    )

    await adapter.save_state(
        _record(provisioning_state="provisioned", status="running", cpu=2).model_copy(
            update={"last_updated": T1}
        ),
        Category.servers,
    )
    saved = await adapter.get_state("server-vendorx-1", Category.servers)

    expected = {**prior.state, "provisioning_state": "provisioned", "status": "running", "cpu": 2}
    assert saved.state == expected
    assert saved.last_updated == T1


async def test_save_state_persists_provider_change(store):
    adapter = StateStoreAdapter(store, "org-1")
    await _create(adapter, _record(provisioning_state="provisioned"))

    await adapter.save_state(
        _record(provisioning_state="provisioning").model_copy(update={"provider": "vendory"}),
        Category.servers,
    )
    saved = await adapter.get_state("server-vendorx-1", Category.servers)

    assert saved.provider == "vendory"
    assert saved.state["provisioning_state"] == "provisioning"


async def test_records_are_partitioned_by_category(store):
    adapter = StateStoreAdapter(store, "org-1")
    await _create(adapter, _record(), Category.servers)

    assert await adapter.get_state("server-vendorx-1", Category.databases) is None

    found = await adapter.find_state("server-vendorx-1")
    assert found[0] == Category.servers


async def test_records_are_scoped_to_org(store):
    await _create(StateStoreAdapter(store, "org-1"), _record())

    assert await StateStoreAdapter(store, "org-2").get_state(
        "server-vendorx-1", Category.servers
    ) is None


async def test_repeated_initial_write_does_not_duplicate(store):
    adapter = StateStoreAdapter(store, "org-1")

    await _create(adapter, _record(provisioning_state="provisioning"))
    await _create(adapter, _record(provisioning_state="provisioning", attempt=2))

    found = await adapter.get_state("server-vendorx-1", Category.servers)
    assert found.state["attempt"] == 2
    assert await adapter.delete_state("server-vendorx-1", Category.servers) is True
    assert await adapter.get_state("server-vendorx-1", Category.servers) is None


async def test_delete_state_is_idempotent(store):
    adapter = StateStoreAdapter(store, "org-1")
    await _create(adapter, _record())

    assert await adapter.delete_state("server-vendorx-1", Category.servers) is True
    assert await adapter.delete_state("server-vendorx-1", Category.servers) is False


async def test_delete_everywhere(store):
    adapter = StateStoreAdapter(store, "org-1")
    await _create(adapter, _record(), Category.servers)
    await _create(adapter, _record(), Category.databases, {"name": "main"})

    removed = await adapter.delete_everywhere("server-vendorx-1")

    assert removed == [Category.servers, Category.databases]
    assert await adapter.find_state("server-vendorx-1") is None


async def test_duplicate_insert_conflicts(store):
    row = {
        "resource_id": "r1",
        "provider": "vendorx",
        "provider_resource_id": "r1",
        "name": "web",
        "status": "pending",
        "full_api_data": {},
    }
    await store.insert("org-1", Category.servers, row)

    with pytest.raises(RecordConflict):
        await store.insert("org-1", Category.servers, row)


async def test_cancelled_token_stops_state_io(store):
    adapter = StateStoreAdapter(store, "org-1")
    token = CancelToken()
    token.cancel()

    with pytest.raises(OperationCancelledError):
        await adapter.get_state("server-vendorx-1", Category.servers, cancel=token)
