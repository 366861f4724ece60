"""Fixtures for endpoint tests: a real app around a container with test overrides."""

from unittest.mock import MagicMock

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from provenance.clients.llm_client import LLMClient
from provenance.container import AppContainer
from provenance.main import create_app


@pytest.fixture
def llm_client():
    client = MagicMock(spec=LLMClient)
    client.generate.return_value = "hello"
    return client


@pytest.fixture
def container(tmp_path, settings, attestation_client, llm_client):
    """AppContainer on a temp database with the external clients mocked."""
    c = AppContainer()
    c.settings.override(
        providers.Object(settings.model_copy(update={"database_url": f"sqlite:///{tmp_path / 'api.db'}"}))
    )
    c.attestation_client.override(providers.Object(attestation_client))
    c.llm_client.override(providers.Object(llm_client))
    return c


@pytest.fixture
def client(container):
    """FastAPI test client; entering it runs the app lifespan."""
    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture
def api_store(container, client):
    return container.store()


@pytest.fixture
def join(container):
    """Wait for background work scheduled by the app."""
    return lambda: container.dispatcher().join(timeout=5)
