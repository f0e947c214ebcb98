"""
Models for migration status tracking and the status channel.
"""

import json
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from .entities import EntityType


class EntityStats(BaseModel):
    success: int = 0
    failed: int = 0


def empty_stats() -> Dict[EntityType, EntityStats]:
    return {entity_type: EntityStats() for entity_type in EntityType}


class MigrationStatus(BaseModel):
    """Process-wide state of the current (or last) migration run."""
    is_running: bool = False
    project_id: Optional[str] = None
    logs: List[str] = Field(default_factory=list)
    stats: Dict[EntityType, EntityStats] = Field(default_factory=empty_stats)
    error: Optional[str] = None  # why the last run was aborted, if it was

    def snapshot(self) -> "MigrationStatus":
        """Deep copy handed to observers."""
        return self.model_copy(deep=True)


class ChannelMessage(BaseModel):
    """A broadcast on the status channel: a full status or a single log line."""
    event: str  # "status" or "log"
    project_id: Optional[str] = None
    status: Optional[MigrationStatus] = None
    line: Optional[str] = None

    @classmethod
    def for_status(cls, status: MigrationStatus) -> "ChannelMessage":
        return cls(event="status", project_id=status.project_id, status=status.snapshot())

    @classmethod
    def for_log(cls, project_id: Optional[str], line: str) -> "ChannelMessage":
        return cls(event="log", project_id=project_id, line=line)

    def to_sse(self) -> str:
        payload = json.dumps(self.model_dump(mode="json", exclude_none=True))
        return f"event: {self.event}\ndata: {payload}\n\n"
