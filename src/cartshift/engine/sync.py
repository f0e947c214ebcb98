"""
Sync cache: fetch one entity type from a project's source and store the raw
records for inspection, independent of any migration.
"""

import logging
import queue
import threading
from typing import Callable, Iterator, Optional, Set, Tuple

from ..connectors import create_source
from ..connectors.base import SourceConnector
from ..exceptions import ConcurrencyConflictError
from ..models.entities import EntityType
from ..models.sync import SyncedItemPage, SyncEvent
from ..services.store import ProjectRepository, SyncedItemRepository

logger = logging.getLogger(__name__)

EventCallback = Callable[[SyncEvent], None]


class SyncCache:
    """
    Fetch-and-store of one entity type at a time.

    Each sync emits any number of progress/status events followed by exactly
    one terminal event (complete or error). Syncs of different
    (project, entity type) pairs may run concurrently; a second sync of a
    pair that is already syncing is rejected.
    """

    def __init__(
        self,
        projects: ProjectRepository,
        items: SyncedItemRepository,
        source_factory: Callable[..., SourceConnector] = create_source,
    ):
        self.projects = projects
        self.items = items
        self._source_factory = source_factory
        self._guard = threading.Lock()
        self._active: Set[Tuple[str, EntityType]] = set()

    def _acquire(self, key: Tuple[str, EntityType]) -> None:
        with self._guard:
            if key in self._active:
                raise ConcurrencyConflictError(
                    f"A sync of {key[1].value} for project {key[0]} is already in progress"
                )
            self._active.add(key)

    def _release(self, key: Tuple[str, EntityType]) -> None:
        with self._guard:
            self._active.discard(key)

    def sync(self, project_id: str, entity_type: EntityType, emit: EventCallback) -> Optional[int]:
        """
        Fetch every record of entity_type from the project's source and upsert it.

        Args:
            project_id: Project whose source is read
            entity_type: Entity type to fetch
            emit: Receives every event of this sync

        Returns:
            Number of records stored, or None if the sync failed
        """
        key = (project_id, entity_type)
        try:
            self._acquire(key)
        except ConcurrencyConflictError as e:
            logger.warning(str(e))
            emit(SyncEvent.error_event(str(e)))
            return None

        source: Optional[SourceConnector] = None
        try:
            project = self.projects.require_project(project_id)
            source = self._source_factory(project.source_type, project.source)

            emit(SyncEvent.status_event(f"Connecting to {source.name}..."))
            source.connect()

            emit(SyncEvent.status_event(f"Fetching {entity_type.label}..."))
            records = source.get_entities(entity_type, on_progress=lambda p: emit(SyncEvent.progress_event(p)))

            emit(SyncEvent.status_event("Saving to database..."))
            count = self.items.upsert_items(project_id, entity_type, records)

        except Exception as e:
            logger.error(f"Sync of {entity_type.value} for project {project_id} failed: {e}")
            emit(SyncEvent.error_event(str(e)))
            return None

        finally:
            if source is not None:
                source.disconnect()
            self._release(key)

        logger.info(f"Synced {count} {entity_type.value} for project {project_id}")
        emit(SyncEvent.complete_event(f"Synced {count} {entity_type.label.lower()}", count=count))
        return count

    def iter_sync(self, project_id: str, entity_type: EntityType) -> Iterator[SyncEvent]:
        """Run a sync on a worker thread and yield its events until the terminal one."""
        events: "queue.Queue[SyncEvent]" = queue.Queue()
        worker = threading.Thread(
            target=self.sync,
            args=(project_id, entity_type, events.put),
            name=f"sync-{project_id}-{entity_type.value}",
            daemon=True,
        )
        worker.start()

        while True:
            event = events.get()
            yield event
            if event.is_terminal:
                break
        worker.join()

    def get_items(self, project_id: str, entity_type: EntityType, page: int = 1, limit: int = 50) -> SyncedItemPage:
        """Page through cached records, newest first."""
        return self.items.get_items(project_id, entity_type, page=page, limit=limit)
