"""
Live field discovery and mapping reconciliation for projects.
"""

import logging
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from ..connectors import create_destination, create_source
from ..connectors.base import DestinationConnector, SourceConnector
from ..models.config import EntityMapping, Project
from ..models.entities import EntityType
from ..services.store import ProjectRepository
from .reconciler import reconcile_fields

logger = logging.getLogger(__name__)

FieldLists = Dict[EntityType, Dict[str, List[str]]]


class SchemaService:
    """
    Connects a project's source and destination to list their fields, and
    keeps the project's field maps in step with them.
    """

    def __init__(
        self,
        projects: ProjectRepository,
        source_factory: Callable[..., SourceConnector] = create_source,
        dest_factory: Callable[..., DestinationConnector] = create_destination,
    ):
        self.projects = projects
        self._source_factory = source_factory
        self._dest_factory = dest_factory

    def describe(self, project: Project, entity_types: Optional[Sequence[EntityType]] = None) -> FieldLists:
        """
        List source and destination fields per entity type.

        Entity types a side cannot read (or write) get an empty list for that side.

        Raises:
            ConnectorConnectionError: If either side cannot connect
        """
        source = self._source_factory(project.source_type, project.source)
        destination = self._dest_factory(project.dest_type, project.destination)

        try:
            source.connect()
            destination.connect()

            fields: FieldLists = {}
            for entity_type in entity_types or list(EntityType):
                fields[entity_type] = {
                    "source": source.get_export_fields(entity_type) if source.supports_read(entity_type) else [],
                    "destination": (
                        destination.get_import_fields(entity_type) if destination.supports_write(entity_type) else []
                    ),
                }
            return fields
        finally:
            source.disconnect()
            destination.disconnect()

    def reconcile(
        self,
        project_id: str,
        entity_types: Optional[Sequence[EntityType]] = None,
        synonyms: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> Project:
        """
        Re-run automatic mapping for a project and persist the result.

        Explicit (non-empty) mappings are kept; see reconcile_fields.

        Returns:
            The project with updated mappings
        """
        project = self.projects.require_project(project_id)
        fields = self.describe(project, entity_types)

        for entity_type, lists in fields.items():
            current = project.mapping_for(entity_type)
            updated = EntityMapping(
                enabled=current.enabled,
                fields=reconcile_fields(lists["destination"], lists["source"], current.fields, synonyms),
            )
            project.mapping[entity_type] = updated
            self.projects.save_mapping(project.id, entity_type, updated)

            mapped = len([source for source in updated.fields.values() if source])
            logger.info(f"Reconciled {entity_type.value} for project {project.id}: {mapped}/{len(updated.fields)} fields mapped")

        return project
