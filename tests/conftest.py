"""
Shared fixtures: in-memory database, stores and integrations, a fake carrier API and an API client.
"""
import os

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENV"] = "DEV"
os.environ["SYNC_AUTH_TOKEN"] = "test-scheduler-token"
os.environ["AUTO_SYNC_ENABLED"] = "false"

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import create_access_token
from app.database import Base, get_db
from app.http.controllers.sync import get_sync_engine
from app.models import Store, StoreIntegration, User, UserRole
from app.services.credentials import encrypt_token
from app.services.run_registry import RunRegistry
from app.services.shipstation_client import ShipStationClient
from app.services.sync_engine import SyncEngine

SCHEDULER_TOKEN = "test-scheduler-token"
CARRIER_BASE_URL = "https://carrier.test"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeCarrier:
    """
    In-memory ShipStation v2. collections maps a collection name to its full record list;
    failures maps a collection (or (collection, page)) to an HTTP status to return instead.
    """

    def __init__(self, collections=None, failures=None, envelope_extra=None, delay=None):
        self.collections = collections or {}
        self.failures = failures or {}
        self.envelope_extra = envelope_extra or {}
        self.delay = delay
        self.requests = []
        self.api_keys = []

    def pages_requested(self, collection):
        return [int(r.url.params["page"]) for r in self.requests if r.url.path.endswith(f"/{collection}")]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        collection = request.url.path.rsplit("/", 1)[-1]
        page = int(request.url.params.get("page", "1"))
        size = int(request.url.params.get("page_size", "100"))
        status = self.failures.get((collection, page)) or self.failures.get(collection)
        if status:
            return httpx.Response(status, json={"message": f"carrier said no ({status})"})
        records = self.collections.get(collection, [])
        start = (page - 1) * size
        return httpx.Response(200, json={collection: records[start:start + size], **self.envelope_extra})

    def client_factory(self, api_key: str) -> ShipStationClient:
        self.api_keys.append(api_key)
        return ShipStationClient(
            api_key,
            base_url=CARRIER_BASE_URL,
            client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)),
        )


def inventory_payloads(count: int, prefix: str = "SKU") -> list:
    return [
        {"sku": f"{prefix}-{i:04d}", "available": i, "on_hand": i + 2, "allocated": 2, "inventory_warehouse_id": "iw-1"}
        for i in range(count)
    ]


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    return TestingSessionLocal


def make_store(db, name="Test Store") -> Store:
    store = Store(name=name)
    db.add(store)
    db.commit()
    db.refresh(store)
    return store


def make_integration(db, store, api_key="ss-test-key", is_active=True, **kwargs) -> StoreIntegration:
    integration = StoreIntegration(
        store_id=store.id,
        integration_type="shipstation",
        api_key_encrypted=encrypt_token(api_key) if api_key is not None else None,
        is_active=is_active,
        **kwargs,
    )
    db.add(integration)
    db.commit()
    db.refresh(integration)
    return integration


@pytest.fixture
def store(db_session):
    return make_store(db_session)


@pytest.fixture
def integration(db_session, store):
    return make_integration(db_session, store)


@pytest.fixture
def carrier():
    return FakeCarrier()


@pytest.fixture
def registry():
    return RunRegistry()


@pytest.fixture
def sync_engine(db_session, carrier, registry):
    return SyncEngine(db_session, client_factory=carrier.client_factory, registry=registry)


@pytest.fixture
def admin_user(db_session, store):
    user = User(name="Store Admin", email="admin@example.com", store_id=store.id, role=UserRole.ADMIN)
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def auth_token(admin_user):
    return create_access_token(data={"sub": admin_user.email})


@pytest.fixture
def client(db_session, sync_engine):
    from main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sync_engine] = lambda: sync_engine
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
