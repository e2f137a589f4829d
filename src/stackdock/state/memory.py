from __future__ import annotations

import copy
import itertools
from typing import Any, Mapping

from stackdock.domain.models import Category
from stackdock.state.store import RecordConflict


class InMemoryRecordStore:
    """Process-local record store used by tests and single-node runs."""

    def __init__(self) -> None:
        self._tables: dict[tuple[str, Category], dict[str, dict[str, Any]]] = {}
        self._ids = itertools.count(1)

    def _table(self, org_id: str, category: Category) -> dict[str, dict[str, Any]]:
        return self._tables.setdefault((org_id, category), {})

    async def query_by_provider_resource_id(
        self, org_id: str, category: Category, provider_resource_id: str
    ) -> dict[str, Any] | None:
        for record_id, row in self._table(org_id, category).items():
            if row["provider_resource_id"] == provider_resource_id:
                return {**copy.deepcopy(row), "_id": record_id}
        return None

    async def insert(self, org_id: str, category: Category, record: Mapping[str, Any]) -> str:
        table = self._table(org_id, category)
        key = record["provider_resource_id"]
        if any(row["provider_resource_id"] == key for row in table.values()):
            raise RecordConflict(f"{category.value} record already exists for {key}")

        record_id = f"{category.value}_{next(self._ids)}"
        table[record_id] = copy.deepcopy(dict(record))
        return record_id

    async def patch(
        self, org_id: str, category: Category, record_id: str, fields: Mapping[str, Any]
    ) -> None:
        table = self._table(org_id, category)
        if record_id not in table:
            raise KeyError(record_id)
        table[record_id].update(copy.deepcopy(dict(fields)))

    async def delete(self, org_id: str, category: Category, record_id: str) -> None:
        self._table(org_id, category).pop(record_id, None)

    def count(self, org_id: str, category: Category) -> int:
        return len(self._table(org_id, category))
