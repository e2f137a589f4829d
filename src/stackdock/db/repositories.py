from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stackdock.db.models import CATEGORY_TABLES, ResourceRecordMixin
from stackdock.domain.models import Category
from stackdock.state.store import RecordConflict


def _aware(value: Any) -> Any:
    # SQLite drops tzinfo on round trip; stored values are always UTC.
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _columns(model: type[ResourceRecordMixin]) -> set[str]:
    return {column.key for column in model.__table__.columns}  # type: ignore[attr-defined]


def _to_row(record: ResourceRecordMixin) -> dict[str, Any]:
    row = {key: _aware(getattr(record, key)) for key in _columns(type(record))}
    row["_id"] = str(row.pop("id"))
    row.pop("org_id", None)
    row["full_api_data"] = dict(row.get("full_api_data") or {})
    return row


@dataclass(slots=True)
class SqlRecordStore:
    """Record store over the four category tables."""

    session_factory: async_sessionmaker[AsyncSession]

    def _model(self, category: Category) -> type[ResourceRecordMixin]:
        return CATEGORY_TABLES[category]

    def _values(self, category: Category, fields: Mapping[str, Any]) -> dict[str, Any]:
        columns = _columns(self._model(category)) - {"id", "org_id"}
        unknown = set(fields) - columns
        if unknown:
            raise ValueError(f"Unknown {category.value} columns: {sorted(unknown)}")
        return dict(fields)

    async def query_by_provider_resource_id(
        self, org_id: str, category: Category, provider_resource_id: str
    ) -> dict[str, Any] | None:
        model = self._model(category)
        stmt = select(model).where(
            model.org_id == org_id,
            model.provider_resource_id == provider_resource_id,
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            record = result.scalar_one_or_none()
            return _to_row(record) if record is not None else None

    async def insert(self, org_id: str, category: Category, record: Mapping[str, Any]) -> str:
        model = self._model(category)
        db_record = model(org_id=org_id, **self._values(category, record))
        async with self.session_factory() as session:
            session.add(db_record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                key = record.get("provider_resource_id")
                raise RecordConflict(f"{category.value} record already exists for {key}") from exc
            return str(db_record.id)

    async def patch(
        self, org_id: str, category: Category, record_id: str, fields: Mapping[str, Any]
    ) -> None:
        model = self._model(category)
        values = self._values(category, fields)
        stmt = select(model).where(model.org_id == org_id, model.id == int(record_id))
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            db_record = result.scalar_one_or_none()
            if db_record is None:
                raise KeyError(record_id)
            for key, value in values.items():
                setattr(db_record, key, value)
            await session.commit()

    async def delete(self, org_id: str, category: Category, record_id: str) -> None:
        model = self._model(category)
        stmt = delete(model).where(model.org_id == org_id, model.id == int(record_id))
        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()
