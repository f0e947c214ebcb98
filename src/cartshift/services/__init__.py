"""
Services for credential storage and persistence.
"""

import logging
from typing import Optional, Tuple

from ..core.config import get_store_backend
from ..exceptions import ConfigurationError
from .store import (
    ProjectRepository, SyncedItemRepository, InMemoryProjectRepository, InMemorySyncedItemRepository,
)
from .vault import CredentialVault

logger = logging.getLogger(__name__)


def create_repositories(
    vault: CredentialVault, backend: Optional[str] = None
) -> Tuple[ProjectRepository, SyncedItemRepository]:
    """Build the project and synced-item repositories for the configured backend."""
    backend = (backend or get_store_backend()).lower()

    if backend == "memory":
        logger.info("Using in-memory repositories")
        return InMemoryProjectRepository(vault), InMemorySyncedItemRepository()

    if backend == "firestore":
        from .firestore import FirestoreProjectRepository, FirestoreSyncedItemRepository, create_firestore_client

        db = create_firestore_client()
        return FirestoreProjectRepository(vault, db=db), FirestoreSyncedItemRepository(db=db)

    raise ConfigurationError(f"Unknown store backend: {backend}")


__all__ = [
    "CredentialVault",
    "ProjectRepository",
    "SyncedItemRepository",
    "InMemoryProjectRepository",
    "InMemorySyncedItemRepository",
    "create_repositories",
]
