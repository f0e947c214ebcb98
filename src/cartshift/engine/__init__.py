"""
Migration engine for cartshift.
"""

from .events import RunLogger, StatusChannel
from .migration import ENTITY_ORDER, MigrationOrchestrator
from .reconciler import DEFAULT_SYNONYMS, reconcile_fields
from .schema import SchemaService
from .sync import SyncCache
from .transforms import apply_field_map, map_records

__all__ = [
    "StatusChannel",
    "RunLogger",
    "MigrationOrchestrator",
    "ENTITY_ORDER",
    "reconcile_fields",
    "DEFAULT_SYNONYMS",
    "SchemaService",
    "SyncCache",
    "apply_field_map",
    "map_records",
]
