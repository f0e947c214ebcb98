"""
Models for the sync cache and its event stream.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Dict, List, Any, Optional
from pydantic import BaseModel, Field

from .entities import EntityType


class SyncedItem(BaseModel):
    """A cached raw source record, keyed by (project_id, entity_type, original_id)."""
    project_id: str
    entity_type: EntityType
    original_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    synced_at: datetime = Field(default_factory=datetime.utcnow)


class SyncedItemPage(BaseModel):
    items: List[SyncedItem] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 50


class SyncEventType(str, Enum):
    PROGRESS = "progress"
    STATUS = "status"
    COMPLETE = "complete"
    ERROR = "error"


class SyncEvent(BaseModel):
    """One line of the sync progress stream."""
    type: SyncEventType
    progress: Optional[int] = None
    message: Optional[str] = None
    count: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.type in (SyncEventType.COMPLETE, SyncEventType.ERROR)

    @classmethod
    def progress_event(cls, progress: int) -> "SyncEvent":
        return cls(type=SyncEventType.PROGRESS, progress=progress)

    @classmethod
    def status_event(cls, message: str) -> "SyncEvent":
        return cls(type=SyncEventType.STATUS, message=message)

    @classmethod
    def complete_event(cls, message: str, count: Optional[int] = None) -> "SyncEvent":
        return cls(type=SyncEventType.COMPLETE, message=message, count=count)

    @classmethod
    def error_event(cls, message: str) -> "SyncEvent":
        return cls(type=SyncEventType.ERROR, message=message)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json", exclude_none=True))

    def to_sse(self) -> str:
        return f"data: {self.to_json()}\n\n"
