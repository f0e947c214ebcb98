"""Command line interface for store migrations."""

import sys
import json
import logging
from typing import Optional, Tuple

import click

from .config import setup_logging, load_environment
from ..engine.migration import MigrationOrchestrator
from ..engine.schema import SchemaService
from ..engine.sync import SyncCache
from ..exceptions import CartshiftException
from ..models.config import ConnectionConfig, Platform, ProjectCreate
from ..models.entities import EntityType
from ..models.migration import ChannelMessage
from ..models.sync import SyncEvent, SyncEventType
from ..services import create_repositories
from ..services.store import ProjectRepository, SyncedItemRepository
from ..services.vault import CredentialVault, generate_master_key

PLATFORM_CHOICES = [platform.value for platform in Platform]
ENTITY_CHOICES = [entity_type.value for entity_type in EntityType]


def _repositories() -> Tuple[ProjectRepository, SyncedItemRepository]:
    return create_repositories(CredentialVault())


def _parse_auth(raw: Optional[str]) -> dict:
    if not raw:
        return {}
    try:
        auth = json.loads(raw)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"credentials must be a JSON object: {e}")
    if not isinstance(auth, dict):
        raise click.BadParameter("credentials must be a JSON object")
    return auth


def _fail(message: str) -> None:
    click.echo(message, err=True)
    sys.exit(1)


@click.group()
@click.option('--log-level', default='INFO', envvar='LOG_LEVEL', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Set the logging level')
@click.option('--env-file', type=click.Path(exists=True), help='Path to .env file')
def cli(log_level: str, env_file: Optional[str]) -> None:
    """cartshift store migration tool."""
    setup_logging(log_level)
    load_environment(env_file)


@cli.command()
def generate_key() -> None:
    """Print a new master key for credential encryption."""
    click.echo(f"MASTER_KEY={generate_master_key()}")


@cli.command()
@click.option('--name', default='Untitled Project', help='Project name')
@click.option('--source-type', type=click.Choice(PLATFORM_CHOICES), default=Platform.SHOPIFY.value,
              help='Source platform')
@click.option('--dest-type', type=click.Choice(PLATFORM_CHOICES), default=Platform.WOOCOMMERCE.value,
              help='Destination platform')
@click.option('--source-url', default='', help='Source store URL')
@click.option('--source-auth', help='Source credentials as JSON, e.g. {"token": "..."}')
@click.option('--dest-url', default='', help='Destination store URL')
@click.option('--dest-auth', help='Destination credentials as JSON, e.g. {"key": "...", "secret": "..."}')
def create_project(name: str, source_type: str, dest_type: str, source_url: str, source_auth: Optional[str],
                   dest_url: str, dest_auth: Optional[str]) -> None:
    """Create a migration project."""
    payload = ProjectCreate(
        name=name,
        source_type=Platform(source_type),
        dest_type=Platform(dest_type),
        source=ConnectionConfig(url=source_url, auth=_parse_auth(source_auth)),
        destination=ConnectionConfig(url=dest_url, auth=_parse_auth(dest_auth)),
    )
    try:
        projects, _ = _repositories()
        project = projects.create_project(payload)
        click.echo(f"Created project {project.id} ({project.name})")
    except CartshiftException as e:
        _fail(f"Error: {e}")
    except Exception as e:
        logging.exception("Unexpected error occurred")
        _fail(f"Unexpected error: {e}")


@cli.command()
@click.option('--output', type=click.Choice(['table', 'json']), default='table', help='Output format')
def list_projects(output: str) -> None:
    """List migration projects, newest first."""
    try:
        projects, _ = _repositories()
        found = projects.list_projects()
    except CartshiftException as e:
        _fail(f"Error: {e}")
        return
    except Exception as e:
        logging.exception("Unexpected error occurred")
        _fail(f"Unexpected error: {e}")
        return

    if output == 'json':
        rows = [
            {
                "id": p.id,
                "name": p.name,
                "source": f"{p.source_type.value} {p.source.url}",
                "destination": f"{p.dest_type.value} {p.destination.url}",
                "updated_at": p.updated_at.isoformat(),
            }
            for p in found
        ]
        click.echo(json.dumps(rows, indent=2))
        return

    if not found:
        click.echo("No projects found.")
        return

    click.echo(f"{'ID':<38} {'Name':<25} {'Source':<30} {'Destination':<30}")
    click.echo("-" * 125)
    for p in found:
        click.echo(f"{p.id:<38} {p.name[:24]:<25} {p.source_type.value + ' ' + p.source.url:<30.30} "
                   f"{p.dest_type.value + ' ' + p.destination.url:<30.30}")


@cli.command()
@click.argument('project_id')
def delete_project(project_id: str) -> None:
    """Delete a project and its synced items."""
    try:
        projects, items = _repositories()
        if not projects.delete_project(project_id):
            _fail(f"Project {project_id} not found")
            return
        removed = items.delete_project_items(project_id)
        click.echo(f"Deleted project {project_id} and {removed} synced items")
    except CartshiftException as e:
        _fail(f"Error: {e}")
    except Exception as e:
        logging.exception("Unexpected error occurred")
        _fail(f"Unexpected error: {e}")


@cli.command()
@click.argument('project_id')
@click.option('--entity', 'entities', multiple=True, type=click.Choice(ENTITY_CHOICES),
              help='Entity type to describe (repeatable, default all)')
def schema(project_id: str, entities: Tuple[str, ...]) -> None:
    """Show the live source and destination fields of a project."""
    try:
        projects, _ = _repositories()
        project = projects.require_project(project_id)
        fields = SchemaService(projects).describe(project, [EntityType(e) for e in entities] or None)
    except CartshiftException as e:
        _fail(f"Error: {e}")
        return
    except Exception as e:
        logging.exception("Unexpected error occurred")
        _fail(f"Unexpected error: {e}")
        return

    for entity_type, lists in fields.items():
        click.echo(f"\n{entity_type.label}")
        click.echo(f"  source:      {', '.join(lists['source']) or '(not readable)'}")
        click.echo(f"  destination: {', '.join(lists['destination']) or '(not writable)'}")


@cli.command()
@click.argument('project_id')
def reconcile(project_id: str) -> None:
    """Auto-map destination fields to source fields."""
    try:
        projects, _ = _repositories()
        project = SchemaService(projects).reconcile(project_id)
    except CartshiftException as e:
        _fail(f"Error: {e}")
        return
    except Exception as e:
        logging.exception("Unexpected error occurred")
        _fail(f"Unexpected error: {e}")
        return

    for entity_type, mapping in project.mapping.items():
        mapped = {dest: src for dest, src in mapping.fields.items() if src}
        click.echo(f"{entity_type.label}: {len(mapped)}/{len(mapping.fields)} fields mapped")
        for dest, src in sorted(mapped.items()):
            click.echo(f"  {dest} <- {src}")


def _print_event(event: SyncEvent) -> None:
    if event.type == SyncEventType.PROGRESS:
        click.echo(f"  {event.progress}%")
    elif event.type == SyncEventType.ERROR:
        click.echo(f"Error: {event.message}", err=True)
    else:
        click.echo(event.message)


@cli.command()
@click.argument('project_id')
@click.argument('entity', type=click.Choice(ENTITY_CHOICES))
def sync(project_id: str, entity: str) -> None:
    """Fetch one entity type from the source into the sync cache."""
    try:
        projects, items = _repositories()
        count = SyncCache(projects, items).sync(project_id, EntityType(entity), _print_event)
    except Exception as e:
        logging.exception("Unexpected error occurred")
        _fail(f"Unexpected error: {e}")
        return

    if count is None:
        sys.exit(1)


@cli.command()
@click.argument('project_id')
@click.argument('entity', type=click.Choice(ENTITY_CHOICES))
@click.option('--page', type=int, default=1, help='Page number')
@click.option('--limit', type=int, default=50, help='Items per page')
def data(project_id: str, entity: str, page: int, limit: int) -> None:
    """Print cached records of one entity type as JSON."""
    try:
        projects, items = _repositories()
        result = SyncCache(projects, items).get_items(project_id, EntityType(entity), page=page, limit=limit)
        click.echo(result.model_dump_json(indent=2))
    except CartshiftException as e:
        _fail(f"Error: {e}")
    except Exception as e:
        logging.exception("Unexpected error occurred")
        _fail(f"Unexpected error: {e}")


@cli.command()
@click.argument('project_id')
def migrate(project_id: str) -> None:
    """Run a full migration for a project in the foreground."""

    def on_message(message: ChannelMessage) -> None:
        if message.event == "log" and message.line:
            click.echo(message.line)

    try:
        projects, _ = _repositories()
        orchestrator = MigrationOrchestrator(projects)
        orchestrator.subscribe(on_message)
        orchestrator.start(project_id, background=False)
    except CartshiftException as e:
        _fail(f"Error: {e}")
        return
    except Exception as e:
        logging.exception("Unexpected error occurred")
        _fail(f"Unexpected error: {e}")
        return

    status = orchestrator.status()
    click.echo("\nSummary:")
    for entity_type, stats in status.stats.items():
        if stats.success or stats.failed:
            click.echo(f"  {entity_type.label:<20} {stats.success} imported, {stats.failed} failed")
    if status.error or any(stats.failed for stats in status.stats.values()):
        sys.exit(1)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
