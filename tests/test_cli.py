import pytest
from click.testing import CliRunner

from cartshift.core import cli as cli_module
from cartshift.core.cli import cli
from cartshift.engine.migration import MigrationOrchestrator
from cartshift.exceptions import ConnectorConnectionError
from cartshift.models.entities import EntityType, Product

from fakes import FakeDestination, FakeSource


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.setenv("CARTSHIFT_STORE", "memory")
    monkeypatch.setenv("MASTER_KEY", "cli-test-key")
    return CliRunner()


def test_generate_key(runner):
    result = runner.invoke(cli, ["generate-key"])
    assert result.exit_code == 0
    assert result.output.startswith("MASTER_KEY=")
    assert len(result.output.strip().split("=", 1)[1]) == 64


def test_create_project(runner):
    result = runner.invoke(cli, [
        "create-project", "--name", "Demo",
        "--source-url", "demo.myshopify.com", "--source-auth", '{"token": "shpat_x"}',
        "--dest-url", "store.example.com", "--dest-auth", '{"key": "ck", "secret": "cs"}',
    ])
    assert result.exit_code == 0, result.output
    assert "Created project" in result.output
    assert "shpat_x" not in result.output


def test_create_project_rejects_bad_credentials_json(runner):
    result = runner.invoke(cli, ["create-project", "--source-auth", "not json"])
    assert result.exit_code != 0
    assert "JSON" in result.output


def test_list_projects_empty(runner):
    result = runner.invoke(cli, ["list-projects"])
    assert result.exit_code == 0
    assert "No projects found." in result.output


def test_migrate_unknown_project_fails(runner):
    result = runner.invoke(cli, ["migrate", "missing"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_sync_rejects_unknown_entity(runner):
    result = runner.invoke(cli, ["sync", "p1", "widgets"])
    assert result.exit_code == 2


def use_connectors(monkeypatch, projects, items, source, destination):
    monkeypatch.setattr(cli_module, "_repositories", lambda: (projects, items))
    monkeypatch.setattr(cli_module, "MigrationOrchestrator", lambda repo: MigrationOrchestrator(
        repo,
        source_factory=lambda platform, config: source,
        dest_factory=lambda platform, config: destination,
    ))


def test_migrate_prints_summary(runner, monkeypatch, projects, items, project):
    source = FakeSource(records={EntityType.PRODUCTS: [Product(original_id="1", title="Mug")]},
                        readable={EntityType.PRODUCTS})
    use_connectors(monkeypatch, projects, items, source, FakeDestination())

    result = runner.invoke(cli, ["migrate", project.id])

    assert result.exit_code == 0, result.output
    assert "Migration completed" in result.output
    assert "1 imported, 0 failed" in result.output


def test_migrate_aborted_by_connection_failure_exits_nonzero(runner, monkeypatch, projects, items, project):
    source = FakeSource(connect_error=ConnectorConnectionError("Failed to connect to Fake Source: HTTP 401"))
    use_connectors(monkeypatch, projects, items, source, FakeDestination())

    result = runner.invoke(cli, ["migrate", project.id])

    assert result.exit_code == 1
    assert "Error: Connection failed" in result.output
