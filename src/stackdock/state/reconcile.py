"""
Field-level reconciliation between stored state and what a vendor reports.

Two policies are supported and chosen by configuration:

* ``vendor_wins``: the vendor is the source of truth; every drifted field is
  overwritten with the reported value.
* ``last_writer_wins``: reported values are applied only when the vendor's
  ``updated_at`` is newer than the stored ``last_updated``.

A vendor reporting the resource gone marks the record failed regardless of
policy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Mapping

from pydantic_core import to_jsonable_python

from stackdock.domain.models import Category, LifecycleState, StateRecord, utcnow
from stackdock.providers.base import ProviderResult
from stackdock.state.categories import known_fields
from stackdock.state.store import STATE_COLUMNS

MISSING_AT_PROVIDER = "missing_at_provider"


class ReconcilePolicy(StrEnum):
    vendor_wins = "vendor_wins"
    last_writer_wins = "last_writer_wins"


@dataclass(frozen=True)
class FieldDrift:
    key: str
    stored: Any
    live: Any


@dataclass
class SyncResult:
    resource_id: str
    category: Category
    drift: list[FieldDrift] = field(default_factory=list)
    applied: bool = False
    record: StateRecord | None = None


def diff_state(stored: Mapping[str, Any], live: Mapping[str, Any]) -> list[FieldDrift]:
    """Fields the vendor reports that differ from the stored state.

    Keys only the engine knows about are never considered drift.
    """
    return [
        FieldDrift(key=key, stored=stored.get(key), live=live[key])
        for key in sorted(live)
        if stored.get(key) != live[key]
    ]


def reported_state(live: ProviderResult, category: Category) -> dict[str, Any]:
    """Flatten a vendor result into state keys.

    Values kept in ``full_api_data`` are given their stored JSON form, so a
    value that round-trips through the store compares equal to a fresh report.
    """
    columns = set(STATE_COLUMNS) | known_fields(category)
    state = {
        key: value if key in columns else to_jsonable_python(value)
        for key, value in live.fields.items()
        if value is not None
    }
    state["status"] = live.status
    state["vendor_resource_id"] = live.provider_resource_id
    return state


def reconcile(
    record: StateRecord,
    category: Category,
    live: ProviderResult | None,
    policy: ReconcilePolicy = ReconcilePolicy.vendor_wins,
    *,
    now: datetime | None = None,
) -> SyncResult:
    """Merge ``live`` into ``record`` under ``policy``.

    The returned record always carries a fresh ``last_updated``.
    """
    now = now or utcnow()

    if live is None:
        reported: dict[str, Any] = {
            "provisioning_state": LifecycleState.failed.value,
            "failure_reason": MISSING_AT_PROVIDER,
        }
        apply = True
    else:
        reported = reported_state(live, category)
        apply = policy == ReconcilePolicy.vendor_wins or (
            live.updated_at is not None and live.updated_at > record.last_updated
        )

    drift = diff_state(record.state, reported)
    state = dict(record.state)
    if apply:
        state.update({d.key: d.live for d in drift})

    return SyncResult(
        resource_id=record.resource_id,
        category=category,
        drift=drift,
        applied=apply and bool(drift),
        record=record.model_copy(update={"state": state, "last_updated": now}),
    )
