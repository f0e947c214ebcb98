import pytest

from cartshift.models.config import ConnectionConfig, ProjectCreate
from cartshift.services.store import InMemoryProjectRepository, InMemorySyncedItemRepository
from cartshift.services.vault import CredentialVault


@pytest.fixture(autouse=True)
def quiet_http_env(monkeypatch):
    monkeypatch.delenv("CARTSHIFT_HTTP_RETRIES", raising=False)
    monkeypatch.delenv("CARTSHIFT_HTTP_TIMEOUT", raising=False)


@pytest.fixture
def vault():
    # Low iteration count keeps key derivation fast in tests
    return CredentialVault("test-master-key", iterations=1000)


@pytest.fixture
def projects(vault):
    return InMemoryProjectRepository(vault)


@pytest.fixture
def items():
    return InMemorySyncedItemRepository()


@pytest.fixture
def project(projects):
    return projects.create_project(ProjectCreate(
        name="Demo",
        source=ConnectionConfig(url="https://demo.myshopify.com", auth={"token": "shpat_secret"}),
        destination=ConnectionConfig(url="https://store.example.com", auth={"key": "ck_1", "secret": "cs_1"}),
    ))
