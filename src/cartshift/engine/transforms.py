"""
Field map application for records handed to a destination.
"""

import logging
from typing import Dict, Mapping, Sequence, TypeVar

from ..models.entities import EntityRecord

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=EntityRecord)


def apply_field_map(record: EntityRecord, fields: Mapping[str, str]) -> Dict[str, object]:
    """
    Populate record.mapped_fields from its original data.

    For each destination field mapped to a non-empty source field, the raw
    source value is copied when the source record has that key. Records
    without original data, or missing the key, get no entry for that field.

    Args:
        record: Record read from the source
        fields: destination field -> source field

    Returns:
        The record's mapped fields
    """
    mapped: Dict[str, object] = {}
    for dest_field, source_field in fields.items():
        if not source_field:
            continue
        if record.has_original(source_field):
            mapped[dest_field] = record.get_original(source_field)

    record.mapped_fields = mapped
    return mapped


def map_records(records: Sequence[RecordT], fields: Mapping[str, str]) -> Sequence[RecordT]:
    """Apply the field map to every record in a batch."""
    for record in records:
        apply_field_map(record, fields)
    logger.debug(f"Applied {len([f for f in fields.values() if f])} field mappings to {len(records)} records")
    return records
