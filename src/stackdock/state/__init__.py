from stackdock.state.categories import (
    CATEGORY_FIELDS,
    RESOURCE_TYPE_MAP,
    CategoryFields,
    DatabaseFields,
    DomainFields,
    ResourceMapping,
    ServerFields,
    WebServiceFields,
    category_for,
    ensure_mappable,
    known_fields,
    map_resource,
)
from stackdock.state.memory import InMemoryRecordStore
from stackdock.state.reconcile import (
    MISSING_AT_PROVIDER,
    FieldDrift,
    ReconcilePolicy,
    SyncResult,
    diff_state,
    reconcile,
)
from stackdock.state.store import STATE_COLUMNS, RecordConflict, RecordStore, StateStoreAdapter

__all__ = [
    "CATEGORY_FIELDS",
    "MISSING_AT_PROVIDER",
    "RESOURCE_TYPE_MAP",
    "STATE_COLUMNS",
    "CategoryFields",
    "DatabaseFields",
    "DomainFields",
    "FieldDrift",
    "InMemoryRecordStore",
    "ReconcilePolicy",
    "RecordConflict",
    "RecordStore",
    "ResourceMapping",
    "ServerFields",
    "StateStoreAdapter",
    "SyncResult",
    "WebServiceFields",
    "category_for",
    "diff_state",
    "ensure_mappable",
    "known_fields",
    "map_resource",
    "reconcile",
]
