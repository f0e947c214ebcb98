"""
Main FastAPI application for cartshift.
"""

import logging
import os
import queue
from contextlib import asynccontextmanager
from typing import Dict, Iterator, List, Any, Optional
from fastapi import FastAPI, HTTPException, Depends, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from .. import __version__
from ..connectors import DESTINATION_REGISTRY, SOURCE_REGISTRY
from ..core.config import load_environment, setup_logging
from ..engine.migration import MigrationOrchestrator
from ..engine.schema import SchemaService
from ..engine.sync import SyncCache
from ..exceptions import (
    CartshiftException, ConcurrencyConflictError, ConfigurationError, ConnectorError, DecryptionError,
    ProjectNotFoundError,
)
from ..models.config import ConnectionConfig, EntityMapping, Project, ProjectCreate, ProjectUpdate
from ..models.entities import EntityType
from ..models.migration import ChannelMessage, MigrationStatus
from ..models.sync import SyncedItemPage
from ..services import create_repositories
from ..services.store import ProjectRepository, SyncedItemRepository
from ..services.vault import CredentialVault

logger = logging.getLogger(__name__)

MASKED = "********"
EVENTS_KEEPALIVE_SECONDS = 15.0

# Global services (initialized in lifespan)
project_repository: Optional[ProjectRepository] = None
item_repository: Optional[SyncedItemRepository] = None
orchestrator: Optional[MigrationOrchestrator] = None
sync_cache: Optional[SyncCache] = None
schema_service: Optional[SchemaService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global project_repository, item_repository, orchestrator, sync_cache, schema_service

    load_environment()
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))

    try:
        vault = CredentialVault()
        project_repository, item_repository = create_repositories(vault)
        orchestrator = MigrationOrchestrator(project_repository)
        sync_cache = SyncCache(project_repository, item_repository)
        schema_service = SchemaService(project_repository)
        logger.info("Application startup complete")
    except Exception as e:
        logger.error(f"Failed to initialize application services: {e}")
        # Don't raise - let the app start but services will be None

    yield

    logger.info("Application shutdown")


app = FastAPI(
    title="cartshift API",
    description="API for migrating store data between e-commerce platforms",
    version=__version__,
    lifespan=lifespan
)

# Get allowed origins from environment variable
allowed_origins_str = os.getenv("ALLOWED_ORIGINS", "")
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(",") if origin.strip()]

if not allowed_origins:
    # Default to allowing all for local dev if not set
    allowed_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependency injection
def get_project_repository() -> ProjectRepository:
    if project_repository is None:
        raise HTTPException(status_code=500, detail="Project repository not initialized")
    return project_repository

def get_item_repository() -> SyncedItemRepository:
    if item_repository is None:
        raise HTTPException(status_code=500, detail="Synced item repository not initialized")
    return item_repository

def get_orchestrator() -> MigrationOrchestrator:
    if orchestrator is None:
        raise HTTPException(status_code=500, detail="Migration orchestrator not initialized")
    return orchestrator

def get_sync_cache() -> SyncCache:
    if sync_cache is None:
        raise HTTPException(status_code=500, detail="Sync cache not initialized")
    return sync_cache

def get_schema_service() -> SchemaService:
    if schema_service is None:
        raise HTTPException(status_code=500, detail="Schema service not initialized")
    return schema_service


def to_http_error(e: Exception, action: str) -> HTTPException:
    """Map an application error to the HTTP status the API reports for it."""
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, ProjectNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConcurrencyConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ConnectorError):
        logger.error(f"Failed to {action}: {e}")
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, (DecryptionError, CartshiftException)):
        logger.error(f"Failed to {action}: {e}")
        return HTTPException(status_code=500, detail=str(e))
    logger.error(f"An unexpected error occurred while trying to {action}: {e}")
    return HTTPException(status_code=500, detail="An unexpected error occurred.")


def mask_config(config: ConnectionConfig) -> Dict[str, Any]:
    return {"url": config.url, "auth": {key: MASKED for key in config.auth}}


def public_project(project: Project) -> Dict[str, Any]:
    """Project as returned by the API; credential values are masked."""
    data = project.model_dump(mode="json")
    data["source"] = mask_config(project.source)
    data["destination"] = mask_config(project.destination)
    return data


def unmask_config(incoming: Optional[ConnectionConfig], current: ConnectionConfig) -> Optional[ConnectionConfig]:
    """Keep stored credential values that a client sent back masked."""
    if incoming is None:
        return None
    auth = {
        key: current.auth.get(key) if value == MASKED else value
        for key, value in incoming.auth.items()
    }
    return ConnectionConfig(url=incoming.url, auth=auth)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Check the health of the application and its services."""
    return {
        "status": "healthy",
        "version": __version__,
        "services": {
            "projects": project_repository is not None,
            "synced_items": item_repository is not None,
            "orchestrator": orchestrator is not None,
        }
    }


# Connector information endpoints
@app.get("/api/v1/connectors")
async def list_connectors():
    """List supported platforms and their connectors."""
    return {
        "platforms": [platform.value for platform in SOURCE_REGISTRY],
        "details": {
            platform.value: {
                "source": SOURCE_REGISTRY[platform].__name__,
                "destination": DESTINATION_REGISTRY[platform].__name__,
            }
            for platform in SOURCE_REGISTRY
        }
    }


# Project management endpoints
@app.get("/api/v1/projects")
def list_projects(projects: ProjectRepository = Depends(get_project_repository)) -> List[Dict[str, Any]]:
    """List all projects, newest first."""
    try:
        return [public_project(project) for project in projects.list_projects()]
    except Exception as e:
        raise to_http_error(e, "list projects")


@app.post("/api/v1/projects", status_code=201)
def create_project(payload: ProjectCreate, projects: ProjectRepository = Depends(get_project_repository)):
    """Create a new migration project."""
    try:
        return public_project(projects.create_project(payload))
    except Exception as e:
        raise to_http_error(e, "create project")


@app.get("/api/v1/projects/{project_id}")
def get_project(project_id: str, projects: ProjectRepository = Depends(get_project_repository)):
    """Get a specific project by ID."""
    try:
        return public_project(projects.require_project(project_id))
    except Exception as e:
        raise to_http_error(e, f"get project {project_id}")


@app.put("/api/v1/projects/{project_id}")
def update_project(
    project_id: str,
    updates: ProjectUpdate,
    projects: ProjectRepository = Depends(get_project_repository)
):
    """Update a project's name, connections or mappings."""
    try:
        if not updates.model_dump(exclude_unset=True):
            raise HTTPException(
                status_code=400,
                detail="No update data provided. At least one field must be specified."
            )
        current = projects.require_project(project_id)
        updates.source = unmask_config(updates.source, current.source)
        updates.destination = unmask_config(updates.destination, current.destination)
        return public_project(projects.update_project(project_id, updates))
    except Exception as e:
        raise to_http_error(e, f"update project {project_id}")


@app.put("/api/v1/projects/{project_id}/mapping/{entity_type}")
def save_mapping(
    project_id: str,
    entity_type: EntityType,
    mapping: EntityMapping,
    projects: ProjectRepository = Depends(get_project_repository)
):
    """Replace one entity type's mapping."""
    try:
        projects.save_mapping(project_id, entity_type, mapping)
        return mapping
    except Exception as e:
        raise to_http_error(e, f"save {entity_type.value} mapping for project {project_id}")


@app.delete("/api/v1/projects/{project_id}")
def delete_project(
    project_id: str,
    projects: ProjectRepository = Depends(get_project_repository),
    items: SyncedItemRepository = Depends(get_item_repository)
):
    """Delete a project and its synced items."""
    try:
        if not projects.delete_project(project_id):
            raise ProjectNotFoundError(f"Project {project_id} not found")
        deleted_items = items.delete_project_items(project_id)
        return {"message": f"Project {project_id} deleted", "deleted_items": deleted_items}
    except Exception as e:
        raise to_http_error(e, f"delete project {project_id}")


# Schema and mapping endpoints
@app.get("/api/v1/projects/{project_id}/schema")
def get_schema(
    project_id: str,
    projects: ProjectRepository = Depends(get_project_repository),
    schemas: SchemaService = Depends(get_schema_service)
):
    """List live source and destination fields for every entity type."""
    try:
        fields = schemas.describe(projects.require_project(project_id))
        return {entity_type.value: lists for entity_type, lists in fields.items()}
    except Exception as e:
        raise to_http_error(e, f"describe schema for project {project_id}")


@app.post("/api/v1/projects/{project_id}/reconcile")
def reconcile_project(project_id: str, schemas: SchemaService = Depends(get_schema_service)):
    """Auto-map destination fields to source fields, keeping explicit mappings."""
    try:
        return public_project(schemas.reconcile(project_id))
    except Exception as e:
        raise to_http_error(e, f"reconcile project {project_id}")


# Sync cache endpoints
@app.get("/api/v1/projects/{project_id}/sync")
def sync_entity(
    project_id: str,
    entity: EntityType = Query(..., description="Entity type to fetch"),
    projects: ProjectRepository = Depends(get_project_repository),
    cache: SyncCache = Depends(get_sync_cache)
):
    """Fetch one entity type from the source into the cache, streaming progress as server-sent events."""
    try:
        projects.require_project(project_id)
    except Exception as e:
        raise to_http_error(e, f"sync {entity.value} for project {project_id}")

    events = (event.to_sse() for event in cache.iter_sync(project_id, entity))
    return StreamingResponse(events, media_type="text/event-stream", headers={"Cache-Control": "no-cache"})


@app.get("/api/v1/projects/{project_id}/data/{entity_type}", response_model=SyncedItemPage)
def get_synced_items(
    project_id: str,
    entity_type: EntityType,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    cache: SyncCache = Depends(get_sync_cache)
):
    """Page through cached records."""
    try:
        return cache.get_items(project_id, entity_type, page=page, limit=limit)
    except Exception as e:
        raise to_http_error(e, f"read synced {entity_type.value} for project {project_id}")


# Migration endpoints
@app.post("/api/v1/projects/{project_id}/start", status_code=202, response_model=MigrationStatus)
def start_migration(project_id: str, runner: MigrationOrchestrator = Depends(get_orchestrator)):
    """Start migrating a project in the background. Only one migration runs at a time."""
    try:
        return runner.start(project_id)
    except Exception as e:
        raise to_http_error(e, f"start migration for project {project_id}")


@app.get("/api/v1/status", response_model=MigrationStatus)
def migration_status(runner: MigrationOrchestrator = Depends(get_orchestrator)):
    """Status of the current or last migration."""
    return runner.status()


def channel_stream(
    runner: MigrationOrchestrator, project_id: str, keepalive: float = EVENTS_KEEPALIVE_SECONDS
) -> Iterator[str]:
    """Server-sent events for one project: the full status first, then its status and log messages."""
    messages: "queue.Queue[ChannelMessage]" = queue.Queue()
    unsubscribe = runner.subscribe(messages.put)
    try:
        yield messages.get().to_sse()
        while True:
            try:
                message = messages.get(timeout=keepalive)
            except queue.Empty:
                yield ": keepalive\n\n"
                continue
            if message.project_id == project_id:
                yield message.to_sse()
    finally:
        unsubscribe()


@app.get("/api/v1/projects/{project_id}/events")
def project_events(project_id: str, runner: MigrationOrchestrator = Depends(get_orchestrator)):
    """Live migration status and log lines for a project."""
    return StreamingResponse(
        channel_stream(runner, project_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
