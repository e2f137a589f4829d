"""
State store adapter.

A thin mapping layer between reconciled resource state and the persistence
collaborator. Records live in one of four category tables and are keyed by
``(provider_resource_id, category)`` within an organization.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Protocol

import structlog
from pydantic_core import to_jsonable_python

from stackdock.core.cancellation import CancelToken, check_cancelled
from stackdock.core.errors import CannotSaveUnknownResourceError
from stackdock.core.locks import KeyedLock
from stackdock.domain.models import CATEGORY_PROBE_ORDER, Category, StateRecord, utcnow
from stackdock.state.categories import CategoryFields, known_fields

logger = structlog.get_logger()

# State keys persisted as first-class columns in every category table.
STATE_COLUMNS: tuple[str, ...] = (
    "provisioning_source",
    "native_resource_id",
    "vendor_resource_id",
    "provisioning_state",
    "failure_reason",
    "provisioned_at",
)


class RecordConflict(RuntimeError):
    """Raised when a record already exists for a provider resource id."""


class RecordStore(Protocol):
    """Organization-scoped persistence collaborator, one table per category."""

    async def query_by_provider_resource_id(
        self, org_id: str, category: Category, provider_resource_id: str
    ) -> dict[str, Any] | None: ...

    async def insert(self, org_id: str, category: Category, record: Mapping[str, Any]) -> str: ...

    async def patch(
        self, org_id: str, category: Category, record_id: str, fields: Mapping[str, Any]
    ) -> None: ...

    async def delete(self, org_id: str, category: Category, record_id: str) -> None: ...


class StateStoreAdapter:
    """Reads and writes reconciled state for one organization."""

    def __init__(
        self,
        store: RecordStore,
        org_id: str,
        *,
        locks: KeyedLock | None = None,
    ) -> None:
        self._store = store
        self._org_id = org_id
        self._locks = locks if locks is not None else KeyedLock()

    @property
    def org_id(self) -> str:
        return self._org_id

    async def get_state(
        self,
        provider_resource_id: str,
        category: Category,
        *,
        cancel: CancelToken | None = None,
    ) -> StateRecord | None:
        """Return the record for ``(provider_resource_id, category)`` or None."""
        check_cancelled(cancel)
        row = await self._store.query_by_provider_resource_id(
            self._org_id, category, provider_resource_id
        )
        if row is None:
            return None
        return _row_to_record(row, category)

    async def find_state(
        self,
        provider_resource_id: str,
        *,
        cancel: CancelToken | None = None,
    ) -> tuple[Category, StateRecord] | None:
        """Probe every category in a fixed order; first hit wins."""
        for category in CATEGORY_PROBE_ORDER:
            record = await self.get_state(provider_resource_id, category, cancel=cancel)
            if record is not None:
                return category, record
        return None

    async def create_state(
        self,
        record: StateRecord,
        category: Category,
        fields: CategoryFields,
        *,
        dock_id: str | None = None,
        cancel: CancelToken | None = None,
    ) -> StateRecord:
        """Initial write made by the provisioning flow.

        This is the only path that materialises a record. Repeating it for the
        same key patches the existing record instead of adding a second one.
        """
        check_cancelled(cancel)
        row = _record_to_row(record, category, fields)
        row["dock_id"] = dock_id

        async with self._locks.hold(self._key(record.provider_resource_id, category)):
            existing = await self._store.query_by_provider_resource_id(
                self._org_id, category, record.provider_resource_id
            )
            if existing is None:
                await self._store.insert(self._org_id, category, row)
            else:
                await self._store.patch(self._org_id, category, existing["_id"], row)

        logger.info(
            "state_created",
            resource_id=record.resource_id,
            provider_resource_id=record.provider_resource_id,
            category=category.value,
        )
        stored = await self.get_state(record.provider_resource_id, category)
        assert stored is not None
        return stored

    async def save_state(
        self,
        record: StateRecord,
        category: Category,
        *,
        cancel: CancelToken | None = None,
    ) -> None:
        """Merge ``record.state`` into the existing record.

        Provisioning-state, timestamp, provider and vendor-reported fields are merged;
        saving a record that was never created is an invariant violation.
        """
        check_cancelled(cancel)
        key = self._key(record.provider_resource_id, category)
        async with self._locks.hold(key):
            existing = await self._store.query_by_provider_resource_id(
                self._org_id, category, record.provider_resource_id
            )
            if existing is None:
                raise CannotSaveUnknownResourceError(record.provider_resource_id, category.value)

            columns = set(STATE_COLUMNS) | known_fields(category)
            patch: dict[str, Any] = {}
            full_api_data = dict(existing.get("full_api_data") or {})
            for name, value in record.state.items():
                if name in columns:
                    patch[name] = value
                else:
                    full_api_data[name] = value
            patch["full_api_data"] = to_jsonable_python(full_api_data)
            patch["updated_at"] = record.last_updated
            if record.provider != existing.get("provider"):
                patch["provider"] = record.provider

            await self._store.patch(self._org_id, category, existing["_id"], patch)

        logger.debug(
            "state_saved",
            provider_resource_id=record.provider_resource_id,
            category=category.value,
            provisioning_state=patch.get("provisioning_state"),
        )

    async def delete_state(
        self,
        provider_resource_id: str,
        category: Category,
        *,
        cancel: CancelToken | None = None,
    ) -> bool:
        """Remove the record; returns False (no error) when nothing matched."""
        check_cancelled(cancel)
        async with self._locks.hold(self._key(provider_resource_id, category)):
            existing = await self._store.query_by_provider_resource_id(
                self._org_id, category, provider_resource_id
            )
            if existing is None:
                return False
            await self._store.delete(self._org_id, category, existing["_id"])

        logger.info(
            "state_deleted",
            provider_resource_id=provider_resource_id,
            category=category.value,
        )
        return True

    async def delete_everywhere(
        self,
        provider_resource_id: str,
        *,
        cancel: CancelToken | None = None,
    ) -> list[Category]:
        """Delete matching records across all categories."""
        removed = []
        for category in CATEGORY_PROBE_ORDER:
            if await self.delete_state(provider_resource_id, category, cancel=cancel):
                removed.append(category)
        return removed

    def _key(self, provider_resource_id: str, category: Category) -> str:
        return f"{self._org_id}:{category.value}:{provider_resource_id}"


def _record_to_row(
    record: StateRecord, category: Category, fields: CategoryFields
) -> dict[str, Any]:
    columns = set(STATE_COLUMNS) | known_fields(category)
    row: dict[str, Any] = {
        "resource_id": record.resource_id,
        "provider": record.provider,
        "provider_resource_id": record.provider_resource_id,
        "updated_at": record.last_updated,
    }
    row.update(fields.model_dump(exclude={"provider", "provider_resource_id", "extra"}))

    full_api_data = dict(fields.extra)
    for name, value in record.state.items():
        if name in columns:
            row[name] = value
        else:
            full_api_data[name] = value
    row["full_api_data"] = to_jsonable_python(full_api_data)
    return row


def _row_to_record(row: Mapping[str, Any], category: Category) -> StateRecord:
    state: dict[str, Any] = {name: row.get(name) for name in STATE_COLUMNS}
    state.update({name: row.get(name) for name in sorted(known_fields(category))})
    state.update(row.get("full_api_data") or {})

    last_updated: datetime = row.get("updated_at") or row.get("provisioned_at") or utcnow()
    return StateRecord(
        resource_id=row.get("resource_id") or row["provider_resource_id"],
        provider=row["provider"],
        provider_resource_id=row["provider_resource_id"],
        state=state,
        last_updated=last_updated,
    )
