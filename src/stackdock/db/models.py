from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column

from stackdock.domain.models import Category, utcnow


class Base(DeclarativeBase):
    pass


class ResourceRecordMixin:
    """Columns shared by every category table."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    org_id: Mapped[str] = mapped_column(String(255), nullable=False)
    resource_id: Mapped[str | None] = mapped_column(String(255))
    dock_id: Mapped[str | None] = mapped_column(String(255))
    provider: Mapped[str] = mapped_column(String(100), nullable=False)
    provider_resource_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")

    provisioning_source: Mapped[str | None] = mapped_column(String(20))
    native_resource_id: Mapped[str | None] = mapped_column(String(255))
    vendor_resource_id: Mapped[str | None] = mapped_column(String(255))
    provisioning_state: Mapped[str | None] = mapped_column(String(30))
    failure_reason: Mapped[str | None] = mapped_column(Text)
    provisioned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    full_api_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    @declared_attr.directive
    def __table_args__(cls) -> tuple[Any, ...]:
        return (
            UniqueConstraint(
                "org_id", "provider_resource_id", name=f"uq_{cls.__tablename__}_provider_resource"
            ),
            Index(f"idx_{cls.__tablename__}_org", "org_id"),
        )


class ServerRecord(ResourceRecordMixin, Base):
    __tablename__ = "servers"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    primary_ip_address: Mapped[str | None] = mapped_column(String(64))
    region: Mapped[str | None] = mapped_column(String(100))


class WebServiceRecord(ResourceRecordMixin, Base):
    __tablename__ = "web_services"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    production_url: Mapped[str | None] = mapped_column(String(2048))
    environment: Mapped[str | None] = mapped_column(String(100))
    git_repo: Mapped[str | None] = mapped_column(String(2048))


class DomainRecord(ResourceRecordMixin, Base):
    __tablename__ = "domains"

    domain_name: Mapped[str] = mapped_column(String(255), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class DatabaseRecord(ResourceRecordMixin, Base):
    __tablename__ = "databases"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    engine: Mapped[str | None] = mapped_column(String(100))
    version: Mapped[str | None] = mapped_column(String(50))


CATEGORY_TABLES: dict[Category, type[ResourceRecordMixin]] = {
    Category.servers: ServerRecord,
    Category.web_services: WebServiceRecord,
    Category.domains: DomainRecord,
    Category.databases: DatabaseRecord,
}
