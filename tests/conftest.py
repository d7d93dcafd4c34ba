# tests/conftest.py
import os

# La app construye su engine al importarse: usar SQLite en memoria en pruebas.
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, timedelta, UTC

import pytest
from fastapi.testclient import TestClient

from contractflow import main
from contractflow.blueprints import BlueprintStore
from contractflow.database import build_engine, create_schema
from contractflow.identity import IdentityProvider
from contractflow.models import Actor
from contractflow.observers import EventPublisher, LogObserver, MetricsObserver
from contractflow.workflow import WorkflowEngine


class FakeClock:
    """Reloj determinista: cada lectura avanza `step`."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 9, 0, tzinfo=UTC), step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        self.now = self.now + self.step
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


ALICE = Actor(id="usr_alice", name="Alice")
BOB = Actor(id="usr_bob", name="Bob")


@pytest.fixture()
def alice() -> Actor:
    return ALICE


@pytest.fixture()
def bob() -> Actor:
    return BOB


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def db_engine():
    """BD en memoria: una sola conexión compartida (StaticPool) por prueba."""
    eng = build_engine("sqlite://")
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def log_observer() -> LogObserver:
    return LogObserver()


@pytest.fixture()
def metrics_observer() -> MetricsObserver:
    return MetricsObserver()


@pytest.fixture()
def store(db_engine, clock) -> BlueprintStore:
    return BlueprintStore(db_engine, clock=clock)


@pytest.fixture()
def workflow_engine(db_engine, store, clock, log_observer, metrics_observer) -> WorkflowEngine:
    return WorkflowEngine(
        db_engine,
        store,
        EventPublisher([log_observer, metrics_observer]),
        clock=clock,
        max_retries=3,
        carry_over_defaults=False,
        strict_field_schema=True,
    )


@pytest.fixture()
def identity(db_engine, clock) -> IdentityProvider:
    return IdentityProvider(db_engine, clock=clock, session_ttl_hours=1)


@pytest.fixture()
def nda_blueprint(store, alice):
    """Blueprint con un campo de cada tipo."""
    return store.create_blueprint(
        "NDA",
        [
            {"id": "party", "kind": "text", "label": "Counterparty"},
            {"id": "start", "kind": "date", "label": "Start"},
            {"id": "ack", "kind": "checkbox", "label": "Acknowledged"},
            {"id": "sig", "kind": "signature", "label": "Signature"},
        ],
        alice,
    )


@pytest.fixture()
def client(db_engine, store, workflow_engine, identity, metrics_observer):
    """
    Cliente HTTP contra la app con los servicios globales intercambiados
    por versiones sobre la BD en memoria de la prueba.
    """
    saved = (main.identity, main.blueprints, main.workflow, main.metrics_observer)
    main.identity = identity
    main.blueprints = store
    main.workflow = workflow_engine
    main.metrics_observer = metrics_observer
    try:
        yield TestClient(main.app)
    finally:
        main.identity, main.blueprints, main.workflow, main.metrics_observer = saved


def signup(client: TestClient, name: str, email: str, password: str = "s3cret-pass") -> dict:
    """Registra y hace login; devuelve headers Authorization."""
    resp = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert resp.status_code == 201, resp.text
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}
