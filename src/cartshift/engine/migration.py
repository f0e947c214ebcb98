"""
Single-flight migration runner.
"""

import logging
import threading
from typing import Callable, List, Optional

from ..connectors import create_destination, create_source
from ..connectors.base import DestinationConnector, SourceConnector
from ..exceptions import ConcurrencyConflictError, ConfigurationError, ConnectorConnectionError
from ..models.config import EntityMapping, Project
from ..models.entities import EntityType
from ..models.migration import ChannelMessage, MigrationStatus
from ..services.store import ProjectRepository
from .events import RunLogger, StatusChannel, Subscriber
from .transforms import map_records

logger = logging.getLogger(__name__)

# Taxonomy and settings before the products that reference them; shipping,
# taxes and coupons before orders; content last.
ENTITY_ORDER: List[EntityType] = [
    EntityType.STORE_SETTINGS,
    EntityType.CATEGORIES,
    EntityType.PRODUCTS,
    EntityType.CUSTOMERS,
    EntityType.SHIPPING_ZONES,
    EntityType.TAXES,
    EntityType.COUPONS,
    EntityType.ORDERS,
    EntityType.PAGES,
    EntityType.POSTS,
]


class MigrationOrchestrator:
    """
    Runs one migration at a time for the whole process.

    State is Idle or Running. start() refuses to begin while Running, and a
    run always returns to Idle, whatever happens inside it. Observers get
    deep copies of the status through the channel.
    """

    def __init__(
        self,
        projects: ProjectRepository,
        channel: Optional[StatusChannel] = None,
        source_factory: Callable[..., SourceConnector] = create_source,
        dest_factory: Callable[..., DestinationConnector] = create_destination,
    ):
        self.projects = projects
        self.channel = channel or StatusChannel()
        self._source_factory = source_factory
        self._dest_factory = dest_factory
        self._lock = threading.Lock()
        self._status = MigrationStatus()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._status.is_running

    def status(self) -> MigrationStatus:
        """Snapshot of the current (or last) run."""
        with self._lock:
            return self._status.snapshot()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register an observer and replay the current status to it."""
        unsubscribe = self.channel.subscribe(callback)
        try:
            callback(ChannelMessage.for_status(self.status()))
        except Exception as e:
            logger.error(f"Status subscriber failed on replay: {e}")
        return unsubscribe

    def start(self, project_id: str, background: bool = True) -> MigrationStatus:
        """
        Start migrating a project.

        Args:
            project_id: Project to migrate
            background: Run on a daemon thread (True) or in the calling thread

        Returns:
            Status snapshot taken when the run was accepted

        Raises:
            ConcurrencyConflictError: If a migration is already running
            ProjectNotFoundError: If the project does not exist
            ConfigurationError: If the source or destination URL is missing
        """
        self._ensure_idle()
        project = self.projects.require_project(project_id)
        if not project.is_configured():
            raise ConfigurationError("Source and destination URLs must be configured before migrating")

        with self._lock:
            if self._status.is_running:
                raise ConcurrencyConflictError("A migration is already in progress")
            self._status = MigrationStatus(is_running=True, project_id=project_id)
            snapshot = self._status.snapshot()
        self.channel.publish_status(snapshot)

        if not background:
            self._run(project)
            return snapshot

        thread = threading.Thread(target=self._run, args=(project,), name=f"migration-{project_id}", daemon=True)
        try:
            thread.start()
        except RuntimeError:
            self._finish()
            raise
        self._thread = thread
        return snapshot

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the background run ends. Returns True if no run is still active."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
            return not thread.is_alive()
        return True

    def _ensure_idle(self) -> None:
        with self._lock:
            if self._status.is_running:
                raise ConcurrencyConflictError("A migration is already in progress")

    def _append_log(self, project_id: str, line: str) -> None:
        with self._lock:
            self._status.logs.append(line)
        self.channel.publish_log(project_id, line)

    def _abort(self, run_log: RunLogger, message: str) -> None:
        with self._lock:
            self._status.error = message
        run_log.error(message)

    def _finish(self) -> None:
        with self._lock:
            self._status.is_running = False
            snapshot = self._status.snapshot()
        self.channel.publish_status(snapshot)

    def _run(self, project: Project) -> None:
        run_log = RunLogger(lambda line: self._append_log(project.id, line))
        source: Optional[SourceConnector] = None
        destination: Optional[DestinationConnector] = None

        try:
            run_log.info(f"Starting migration for project {project.name}")
            source = self._source_factory(project.source_type, project.source)
            destination = self._dest_factory(project.dest_type, project.destination)

            try:
                source.connect()
                destination.connect()
            except ConnectorConnectionError as e:
                self._abort(run_log, f"Connection failed: {e}")
                return

            for entity_type in ENTITY_ORDER:
                mapping = project.mapping_for(entity_type)
                if not mapping.enabled:
                    continue
                self._migrate_entity(entity_type, mapping, source, destination, run_log)

            run_log.info("Migration completed")

        except Exception as e:
            logger.exception(f"Migration of project {project.id} failed")
            self._abort(run_log, f"Migration failed: {e}")

        finally:
            for connector in (source, destination):
                if connector is None:
                    continue
                try:
                    connector.disconnect()
                except Exception as e:
                    logger.warning(f"Failed to disconnect {connector.name}: {e}")
            self._finish()

    def _migrate_entity(
        self,
        entity_type: EntityType,
        mapping: EntityMapping,
        source: SourceConnector,
        destination: DestinationConnector,
        run_log: RunLogger,
    ) -> None:
        label = entity_type.label
        if not source.supports_read(entity_type):
            run_log.info(f"Skipping {label}: {source.name} cannot export them")
            return
        if not destination.supports_write(entity_type):
            run_log.info(f"Skipping {label}: {destination.name} cannot import them")
            return

        run_log.info(f"Migrating {label}...")
        records = source.get_entities(entity_type)
        if not records:
            run_log.info(f"No {label} found")
            return

        map_records(records, mapping.fields)
        results = destination.import_entities(entity_type, records)

        succeeded = len([r for r in results if r.success])
        failed = len(results) - succeeded
        with self._lock:
            stats = self._status.stats[entity_type]
            stats.success += succeeded
            stats.failed += failed
            snapshot = self._status.snapshot()
        self.channel.publish_status(snapshot)

        for result in results:
            if not result.success:
                run_log.warning(f"Failed to import {entity_type.value} {result.original_id}: {result.error}")
        run_log.info(f"{label}: {succeeded} imported, {failed} failed")
