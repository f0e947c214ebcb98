"""
Firestore-backed repositories for projects and the synced-item cache.

Layout:
    projects/{project_id}                      name, platforms, timestamps
    projects/{project_id}/configs/{kind}       url + encrypted credentials
    projects/{project_id}/mappings/{entity}    enabled + JSON field map
    synced_items/{escaped triple}              raw source record
"""

import logging
from datetime import datetime
from typing import Dict, List, Any, Optional, Sequence
from urllib.parse import quote

from google.cloud import firestore
from google.auth import default

from ..exceptions import ProjectNotFoundError
from ..models.config import EntityMapping, Project
from ..models.entities import EntityRecord, EntityType
from ..models.sync import SyncedItem, SyncedItemPage
from .store import CONFIG_TYPES, ProjectRepository, SyncedItemRepository
from .vault import CredentialVault

logger = logging.getLogger(__name__)

# Deletes are committed in chunks of this many writes
MAX_BATCH_WRITES = 500


def create_firestore_client(project_id: Optional[str] = None) -> firestore.Client:
    """
    Build a Firestore client.

    Args:
        project_id: Google Cloud project ID. If None, uses application default credentials.
    """
    try:
        if project_id:
            client = firestore.Client(project=project_id)
        else:
            credentials, project = default()
            client = firestore.Client(project=project, credentials=credentials)
        logger.info(f"Firestore client initialized for project: {client.project}")
        return client
    except Exception as e:
        logger.error(f"Failed to initialize Firestore: {e}")
        raise


def synced_item_doc_id(project_id: str, entity_type: EntityType, original_id: str) -> str:
    """Document id for a synced item. Each part is escaped so '/' and the separator stay unambiguous."""
    return "__".join(quote(part, safe="") for part in (project_id, entity_type.value, original_id))


class FirestoreProjectRepository(ProjectRepository):
    """
    Projects, connection configs and mappings stored in Firestore.
    """

    def __init__(self, vault: CredentialVault, db: Optional[firestore.Client] = None, project_id: Optional[str] = None):
        super().__init__(vault)
        self.db = db or create_firestore_client(project_id)
        self.projects_collection = "projects"

    def _project_ref(self, project_id: str):
        return self.db.collection(self.projects_collection).document(project_id)

    def list_projects(self) -> List[Project]:
        try:
            query = self.db.collection(self.projects_collection)
            query = query.order_by("created_at", direction=firestore.Query.DESCENDING)
            return [self._load(doc.id, doc.to_dict()) for doc in query.stream()]
        except Exception as e:
            logger.error(f"Failed to list projects: {e}")
            raise

    def get_project(self, project_id: str) -> Optional[Project]:
        """
        Get a project by ID.

        Raises:
            DecryptionError: If a stored config cannot be decrypted with the current master key
        """
        doc = self._project_ref(project_id).get()
        if not doc.exists:
            return None
        return self._load(project_id, doc.to_dict())

    def _load(self, project_id: str, data: Dict[str, Any]) -> Project:
        project_ref = self._project_ref(project_id)
        configs = {}
        for kind in CONFIG_TYPES:
            config_doc = project_ref.collection("configs").document(kind).get()
            if config_doc.exists:
                configs[kind] = config_doc.to_dict()
        mappings = {doc.id: doc.to_dict() for doc in project_ref.collection("mappings").stream()}

        row = dict(data)
        row["id"] = project_id
        return self._assemble(row, configs, mappings)

    def save_project(self, project: Project) -> Project:
        """
        Upsert a project with both configs and every mapping in a single batch.
        """
        try:
            project_ref = self._project_ref(project.id)
            batch = self.db.batch()
            batch.set(project_ref, {
                "name": project.name,
                "source_type": project.source_type.value,
                "dest_type": project.dest_type.value,
                "created_at": project.created_at,
                "updated_at": project.updated_at,
            })
            batch.set(project_ref.collection("configs").document("source"), self._encode_config(project.source))
            batch.set(project_ref.collection("configs").document("destination"), self._encode_config(project.destination))
            for entity_type, mapping in project.mapping.items():
                batch.set(project_ref.collection("mappings").document(entity_type.value), self._encode_mapping(mapping))
            batch.commit()

            logger.info(f"Saved project: {project.id}")
            return project

        except Exception as e:
            logger.error(f"Failed to save project {project.id}: {e}")
            raise

    def save_mapping(self, project_id: str, entity_type: EntityType, mapping: EntityMapping) -> None:
        project_ref = self._project_ref(project_id)
        if not project_ref.get().exists:
            raise ProjectNotFoundError(f"Project {project_id} not found")

        batch = self.db.batch()
        batch.set(project_ref.collection("mappings").document(entity_type.value), self._encode_mapping(mapping))
        batch.update(project_ref, {"updated_at": datetime.utcnow()})
        batch.commit()
        logger.info(f"Saved {entity_type.value} mapping for project {project_id}")

    def delete_project(self, project_id: str) -> bool:
        """
        Delete a project and its subcollections.

        Returns:
            True if deleted, False if not found
        """
        try:
            project_ref = self._project_ref(project_id)
            if not project_ref.get().exists:
                return False

            batch = self.db.batch()
            for kind in CONFIG_TYPES:
                batch.delete(project_ref.collection("configs").document(kind))
            for doc in project_ref.collection("mappings").stream():
                batch.delete(doc.reference)
            batch.delete(project_ref)
            batch.commit()

            logger.info(f"Deleted project: {project_id}")
            return True

        except Exception as e:
            logger.error(f"Failed to delete project {project_id}: {e}")
            raise


class FirestoreSyncedItemRepository(SyncedItemRepository):
    """
    Synced-item cache stored in the synced_items collection.
    """

    def __init__(self, db: Optional[firestore.Client] = None, project_id: Optional[str] = None):
        self.db = db or create_firestore_client(project_id)
        self.items_collection = "synced_items"

    def upsert_items(self, project_id: str, entity_type: EntityType, items: Sequence[EntityRecord]) -> int:
        """
        Insert or replace items in one WriteBatch.

        The batch commits all writes or none, so a failed save leaves the
        previously synced items as they were.
        """
        rows = self._serialize(items)
        collection = self.db.collection(self.items_collection)
        now = datetime.utcnow()

        try:
            batch = self.db.batch()
            for original_id, data in rows:
                doc_ref = collection.document(synced_item_doc_id(project_id, entity_type, original_id))
                batch.set(doc_ref, {
                    "project_id": project_id,
                    "entity_type": entity_type.value,
                    "original_id": original_id,
                    "data": data,
                    "synced_at": now,
                })
            if rows:
                batch.commit()
        except Exception as e:
            logger.error(f"Failed to save {entity_type.value} for project {project_id}: {e}")
            raise

        logger.info(f"Saved {len(rows)} {entity_type.value} for project {project_id}")
        return len(rows)

    def _query(self, project_id: str, entity_type: EntityType):
        return (self.db.collection(self.items_collection)
                .where("project_id", "==", project_id)
                .where("entity_type", "==", entity_type.value))

    def get_items(self, project_id: str, entity_type: EntityType, page: int = 1, limit: int = 50) -> SyncedItemPage:
        page = max(1, page)
        limit = max(1, limit)
        base = self._query(project_id, entity_type)

        count_result = base.count().get()
        total = int(count_result[0][0].value) if count_result else 0

        query = (base.order_by("synced_at", direction=firestore.Query.DESCENDING)
                 .offset((page - 1) * limit)
                 .limit(limit))
        items = [SyncedItem(**doc.to_dict()) for doc in query.stream()]
        return SyncedItemPage(items=items, total=total, page=page, limit=limit)

    def delete_project_items(self, project_id: str) -> int:
        query = self.db.collection(self.items_collection).where("project_id", "==", project_id)
        deleted = 0
        batch = self.db.batch()
        pending = 0
        for doc in query.stream():
            batch.delete(doc.reference)
            pending += 1
            deleted += 1
            if pending == MAX_BATCH_WRITES:
                batch.commit()
                batch = self.db.batch()
                pending = 0
        if pending:
            batch.commit()
        logger.info(f"Deleted {deleted} synced items for project {project_id}")
        return deleted
