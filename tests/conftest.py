"""
Shared pytest fixtures for the journey map workspace test suite.

Provides:
    - app: Flask application (session-scoped, testing config)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test fresh workspace engine + DB cleanup (autouse)
    - client: Flask test client (function-scoped)
    - engine: The app's WorkspaceEngine for the current test
    - workspace: A small pure EntityGraph (client → project → journey → 3 phases)
"""

from types import SimpleNamespace

import pytest

from journeymap import create_app
from journeymap.core.entities import EntityGraph
from journeymap.models import db as _db
from journeymap.services import graph_service as gs
from journeymap.services.storage import MemoryStore
from journeymap.services.workspace_engine import get_engine, init_engine


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: empty in-memory workspace, recreate tables afterwards."""
    init_engine(app, MemoryStore(EntityGraph().to_dict()))
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def engine(app):
    with app.app_context():
        return get_engine()


# ── Pure graph fixtures ──────────────────────────────────────────────────


def build_workspace(phase_count: int = 3) -> SimpleNamespace:
    """Client → project → journey with ``phase_count`` phases, built through the engine."""
    graph = EntityGraph()
    res = gs.create_client(graph, "Acme", website="https://www.acme.com")
    graph, client = res.graph, res.entity
    res = gs.create_project(graph, client.id, "Onboarding")
    graph, project = res.graph, res.entity
    res = gs.create_journey(graph, project.id, "Sign-up")
    graph, journey = res.graph, res.entity
    phases = []
    for _ in range(phase_count):
        res = gs.create_phase(graph, journey.id)
        graph = res.graph
        phases.append(res.entity)
    return SimpleNamespace(graph=graph, client=client, project=project, journey=journey, phases=phases)


@pytest.fixture()
def workspace():
    return build_workspace()
