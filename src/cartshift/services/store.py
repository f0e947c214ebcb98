"""
Repository interfaces for projects and synced items, plus in-memory implementations.

Credentials never reach a repository backend in clear text: every
implementation stores the connection auth payload as a CredentialVault blob
and decrypts it when assembling a Project.
"""

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Any, Optional, Sequence, Tuple

from ..exceptions import ProjectNotFoundError
from ..models.config import (
    ConnectionConfig, EntityMapping, Project, ProjectCreate, ProjectUpdate, default_mapping,
)
from ..models.entities import EntityRecord, EntityType
from ..models.sync import SyncedItem, SyncedItemPage
from .vault import CredentialVault

logger = logging.getLogger(__name__)

CONFIG_TYPES = ("source", "destination")


class ProjectRepository(ABC):
    """Persistence for projects, their connection configs and mappings."""

    def __init__(self, vault: CredentialVault):
        self.vault = vault

    @abstractmethod
    def list_projects(self) -> List[Project]:
        pass

    @abstractmethod
    def get_project(self, project_id: str) -> Optional[Project]:
        pass

    @abstractmethod
    def save_project(self, project: Project) -> Project:
        """Upsert the project record, both configs and every mapping."""
        pass

    @abstractmethod
    def save_mapping(self, project_id: str, entity_type: EntityType, mapping: EntityMapping) -> None:
        pass

    @abstractmethod
    def delete_project(self, project_id: str) -> bool:
        pass

    def require_project(self, project_id: str) -> Project:
        project = self.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(f"Project {project_id} not found")
        return project

    def create_project(self, payload: ProjectCreate) -> Project:
        project = Project(
            id=str(uuid.uuid4()),
            name=payload.name,
            source_type=payload.source_type,
            dest_type=payload.dest_type,
            source=payload.source,
            destination=payload.destination,
            mapping=default_mapping(),
        )
        saved = self.save_project(project)
        logger.info(f"Created project {project.id} ({project.source_type.value} -> {project.dest_type.value})")
        return saved

    def update_project(self, project_id: str, updates: ProjectUpdate) -> Project:
        project = self.require_project(project_id)
        changes = updates.model_dump(exclude_unset=True)

        if "name" in changes and updates.name is not None:
            project.name = updates.name
        if updates.source is not None:
            project.source = updates.source
        if updates.destination is not None:
            project.destination = updates.destination
        if updates.mapping is not None:
            for entity_type, mapping in updates.mapping.items():
                project.mapping[entity_type] = mapping

        project.updated_at = datetime.utcnow()
        saved = self.save_project(project)
        logger.info(f"Updated project {project_id}: {sorted(changes)}")
        return saved

    # Row helpers shared by the backends

    def _encode_config(self, config: ConnectionConfig) -> Dict[str, Any]:
        return {
            "url": config.url,
            "encrypted_credentials": self.vault.encrypt_object(config.auth),
        }

    def _decode_config(self, row: Optional[Dict[str, Any]]) -> ConnectionConfig:
        if not row:
            return ConnectionConfig()
        return ConnectionConfig(
            url=row.get("url") or "",
            auth=self.vault.decrypt_object(row["encrypted_credentials"]),
        )

    @staticmethod
    def _encode_mapping(mapping: EntityMapping) -> Dict[str, Any]:
        return {"enabled": mapping.enabled, "field_mappings": json.dumps(mapping.fields)}

    @staticmethod
    def _decode_mapping(row: Dict[str, Any]) -> EntityMapping:
        raw_fields = row.get("field_mappings")
        return EntityMapping(
            enabled=bool(row.get("enabled", True)),
            fields=json.loads(raw_fields) if raw_fields else {},
        )

    def _assemble(
        self,
        project_row: Dict[str, Any],
        config_rows: Dict[str, Dict[str, Any]],
        mapping_rows: Dict[str, Dict[str, Any]],
    ) -> Project:
        mapping = default_mapping()
        for entity_value, row in mapping_rows.items():
            try:
                entity_type = EntityType(entity_value)
            except ValueError:
                logger.warning(f"Ignoring mapping for unknown entity type {entity_value!r}")
                continue
            mapping[entity_type] = self._decode_mapping(row)

        return Project(
            id=project_row["id"],
            name=project_row.get("name") or "Untitled Project",
            source_type=project_row["source_type"],
            dest_type=project_row["dest_type"],
            source=self._decode_config(config_rows.get("source")),
            destination=self._decode_config(config_rows.get("destination")),
            mapping=mapping,
            created_at=project_row.get("created_at") or datetime.utcnow(),
            updated_at=project_row.get("updated_at") or datetime.utcnow(),
        )


class SyncedItemRepository(ABC):
    """Cache of raw source records for inspection."""

    @abstractmethod
    def upsert_items(self, project_id: str, entity_type: EntityType, items: Sequence[EntityRecord]) -> int:
        """Atomically insert or replace items keyed by original_id. Returns the number written."""
        pass

    @abstractmethod
    def get_items(self, project_id: str, entity_type: EntityType, page: int = 1, limit: int = 50) -> SyncedItemPage:
        pass

    @abstractmethod
    def delete_project_items(self, project_id: str) -> int:
        pass

    @staticmethod
    def _serialize(items: Sequence[EntityRecord]) -> List[Tuple[str, Dict[str, Any]]]:
        # Serialize everything before touching storage so a bad record
        # cannot leave a half-written snapshot.
        rows = []
        for item in items:
            if not item.original_id:
                raise ValueError("Cannot cache a record without original_id")
            rows.append((item.original_id, item.model_dump(mode="json")))
        return rows


class InMemoryProjectRepository(ProjectRepository):
    """Project storage held in process memory (local runs and tests)."""

    def __init__(self, vault: CredentialVault):
        super().__init__(vault)
        self._lock = threading.Lock()
        self._projects: Dict[str, Dict[str, Any]] = {}
        self._configs: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._mappings: Dict[Tuple[str, str], Dict[str, Any]] = {}

    def list_projects(self) -> List[Project]:
        with self._lock:
            rows = sorted(self._projects.values(), key=lambda r: r["created_at"], reverse=True)
        return [self._load(row) for row in rows]

    def get_project(self, project_id: str) -> Optional[Project]:
        with self._lock:
            row = self._projects.get(project_id)
        return self._load(row) if row else None

    def _load(self, row: Dict[str, Any]) -> Project:
        project_id = row["id"]
        with self._lock:
            configs = {kind: self._configs[(project_id, kind)] for kind in CONFIG_TYPES if (project_id, kind) in self._configs}
            mappings = {entity: value for (pid, entity), value in self._mappings.items() if pid == project_id}
        return self._assemble(row, configs, mappings)

    def save_project(self, project: Project) -> Project:
        project_row = {
            "id": project.id,
            "name": project.name,
            "source_type": project.source_type.value,
            "dest_type": project.dest_type.value,
            "created_at": project.created_at,
            "updated_at": project.updated_at,
        }
        configs = {
            "source": self._encode_config(project.source),
            "destination": self._encode_config(project.destination),
        }
        mappings = {entity_type.value: self._encode_mapping(m) for entity_type, m in project.mapping.items()}

        with self._lock:
            self._projects[project.id] = project_row
            for kind, row in configs.items():
                self._configs[(project.id, kind)] = row
            for entity, row in mappings.items():
                self._mappings[(project.id, entity)] = row
        return project

    def save_mapping(self, project_id: str, entity_type: EntityType, mapping: EntityMapping) -> None:
        row = self._encode_mapping(mapping)
        with self._lock:
            if project_id not in self._projects:
                raise ProjectNotFoundError(f"Project {project_id} not found")
            self._mappings[(project_id, entity_type.value)] = row
            self._projects[project_id]["updated_at"] = datetime.utcnow()

    def delete_project(self, project_id: str) -> bool:
        with self._lock:
            if self._projects.pop(project_id, None) is None:
                return False
            for key in [k for k in self._configs if k[0] == project_id]:
                del self._configs[key]
            for key in [k for k in self._mappings if k[0] == project_id]:
                del self._mappings[key]
        logger.info(f"Deleted project {project_id}")
        return True


class InMemorySyncedItemRepository(SyncedItemRepository):
    """Synced-item cache held in process memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self._items: Dict[Tuple[str, str, str], SyncedItem] = {}

    def upsert_items(self, project_id: str, entity_type: EntityType, items: Sequence[EntityRecord]) -> int:
        rows = self._serialize(items)
        now = datetime.utcnow()
        staged = {
            (project_id, entity_type.value, original_id): SyncedItem(
                project_id=project_id,
                entity_type=entity_type,
                original_id=original_id,
                data=data,
                synced_at=now,
            )
            for original_id, data in rows
        }
        with self._lock:
            self._items.update(staged)
        return len(staged)

    def get_items(self, project_id: str, entity_type: EntityType, page: int = 1, limit: int = 50) -> SyncedItemPage:
        page = max(1, page)
        limit = max(1, limit)
        with self._lock:
            matching = [
                item for (pid, entity, _), item in self._items.items()
                if pid == project_id and entity == entity_type.value
            ]
        matching.sort(key=lambda item: item.synced_at, reverse=True)
        offset = (page - 1) * limit
        return SyncedItemPage(items=matching[offset:offset + limit], total=len(matching), page=page, limit=limit)

    def delete_project_items(self, project_id: str) -> int:
        with self._lock:
            keys = [key for key in self._items if key[0] == project_id]
            for key in keys:
                del self._items[key]
        return len(keys)
