"""Shared pytest fixtures for Viba tests.

Nothing here talks to Gemini or Supabase: the generation service, storage
bucket and history table are replaced by in-memory fakes.
"""

import pytest
from fastapi.testclient import TestClient

from viba.api.v1 import generations as generations_api
from viba.api.v1 import health as health_api
from viba.api.v1 import history as history_api
from viba.api.v1 import jobs as jobs_api
from viba.api.v1 import models_api
from viba.auth.supabase_auth import CurrentUser, verify_jwt
from viba.generation.invoker import RetryingInvoker, RetryPolicy
from viba.generation.model_config import ModelConfigStore
from viba.generation.orchestrator import GenerationOrchestrator, InvocationPolicies
from viba.history.recorder import HistoryRecorder
from viba.history.repository import InMemoryHistoryRepository
from viba.storage.artifact_store import ArtifactStore

from tests.fakes import FakeGenerator, FakeStorageBackend, RecordingSleep


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def policies() -> InvocationPolicies:
    policy = RetryPolicy(timeout=5.0, max_retries=2)
    return InvocationPolicies(describe=policy, variant=policy, composite=policy)


@pytest.fixture
def config_store(tmp_path) -> ModelConfigStore:
    return ModelConfigStore(str(tmp_path / "model_selection.json"))


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def orchestrator(generator, config_store, policies, sleep) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        generator,
        config_store,
        policies,
        invoker=RetryingInvoker(sleep=sleep),
    )


@pytest.fixture
def backend() -> FakeStorageBackend:
    return FakeStorageBackend()


@pytest.fixture
def store(backend) -> ArtifactStore:
    return ArtifactStore(backend=backend, clock=lambda: 1700000000.0)


@pytest.fixture
def repository() -> InMemoryHistoryRepository:
    return InMemoryHistoryRepository()


@pytest.fixture
def recorder(repository, store) -> HistoryRecorder:
    return HistoryRecorder(repository, store)


@pytest.fixture
def user() -> CurrentUser:
    return CurrentUser(id="user-1", email="user@example.com")


@pytest.fixture
def test_client(orchestrator, recorder, config_store, store, user):
    """TestClient with services wired in and authentication bypassed.

    The lifespan is not run (no ``with`` block), so no real clients are built.
    """
    from viba.main import app

    generations_api.set_orchestrator(orchestrator)
    generations_api.set_recorder(recorder)
    history_api.set_recorder(recorder)
    models_api.set_config_store(config_store)
    health_api.set_store(store)
    app.dependency_overrides[verify_jwt] = lambda: user
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        generations_api.set_orchestrator(None)
        generations_api.set_recorder(None)
        history_api.set_recorder(None)
        models_api.set_config_store(None)
        health_api.set_store(None)
        health_api.set_dispatcher(None)
        jobs_api.set_dispatcher(None)
