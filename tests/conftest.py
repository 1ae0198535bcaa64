"""Shared test fixtures for FlowDeploy-Engine."""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from flowdeploy_engine.common.config import FlowDeploySettings
from flowdeploy_engine.common.database import DatabaseManager
from flowdeploy_engine.common.exceptions import RemoteNotFoundError
from flowdeploy_engine.engine.schemas import RemoteCredential, RemoteWorkflow
from flowdeploy_engine.tenants.service import TenantService


API_KEY = "test-admin-api-key"
TENANT_ID = "3f2a9c1e-7b4d-4e8a-9f00-123456789abc"

BUSINESS_CONFIG = {
    "business": {
        "name": "Hot Tub Man",
        "emailDomain": "hottubman.example",
        "phone": "+1 555 0100",
        "currency": "CAD",
    },
    "contact": {"phone": "+1 555 0100"},
    "services": [
        {"name": "Service Call", "pricingType": "fixed", "price": 125, "description": "Diagnosis"},
    ],
    "rules": {"tone": "Friendly", "allowPricing": False, "escalationRules": "Leaks are urgent"},
}

LABEL_MAP = {
    "URGENT": "Label_101",
    "SALES": "Label_102",
    "SUPPORT": "Label_103",
    "MISC": "Label_104",
}


class FakeEngine:
    """In-memory stand-in for EngineClient.

    Failure knobs (``fail_update``, ``fail_activate``, ...) hold an exception
    instance to raise from the matching operation.
    """

    def __init__(self):
        self.workflows: dict[str, RemoteWorkflow] = {}
        self.credentials: dict[str, RemoteCredential] = {}
        self.credential_data: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_list_workflows: Exception | None = None
        self.fail_list_credentials: Exception | None = None
        self.fail_update: Exception | None = None
        self.fail_activate: Exception | None = None
        self.fail_ping: Exception | None = None
        self._seq = 0
        self._now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}{self._seq}"

    def _tick(self) -> datetime:
        self._now += timedelta(minutes=1)
        return self._now

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)

    # ── Seeding helpers ──

    def add_workflow(self, name: str, active: bool = True, workflow_id: str | None = None) -> RemoteWorkflow:
        ts = self._tick()
        workflow = RemoteWorkflow(
            id=workflow_id or self._next_id("wf"),
            name=name,
            active=active,
            created_at=ts,
            updated_at=ts,
        )
        self.workflows[workflow.id] = workflow
        return workflow

    def add_credential(self, name: str, type_: str) -> RemoteCredential:
        ts = self._tick()
        credential = RemoteCredential(
            id=self._next_id("cred"), name=name, type=type_, created_at=ts, updated_at=ts
        )
        self.credentials[credential.id] = credential
        return credential

    # ── EngineClient surface ──

    async def ping(self) -> None:
        self.calls.append(("ping", ""))
        if self.fail_ping:
            raise self.fail_ping

    async def list_workflows(self) -> list[RemoteWorkflow]:
        self.calls.append(("list_workflows", ""))
        if self.fail_list_workflows:
            raise self.fail_list_workflows
        return list(self.workflows.values())

    async def get_workflow(self, workflow_id: str) -> RemoteWorkflow:
        self.calls.append(("get_workflow", workflow_id))
        if workflow_id not in self.workflows:
            raise RemoteNotFoundError(f"workflow {workflow_id} not found")
        return self.workflows[workflow_id]

    async def create_workflow(self, payload: dict) -> RemoteWorkflow:
        workflow = self.add_workflow(payload["name"], active=False)
        workflow.nodes = payload["nodes"]
        workflow.connections = payload["connections"]
        self.calls.append(("create_workflow", workflow.id))
        return workflow

    async def update_workflow(self, workflow_id: str, payload: dict) -> RemoteWorkflow:
        self.calls.append(("update_workflow", workflow_id))
        if self.fail_update:
            raise self.fail_update
        if workflow_id not in self.workflows:
            raise RemoteNotFoundError(f"workflow {workflow_id} not found")
        workflow = self.workflows[workflow_id]
        workflow.name = payload["name"]
        workflow.nodes = payload["nodes"]
        workflow.connections = payload["connections"]
        workflow.updated_at = self._tick()
        return workflow

    async def delete_workflow(self, workflow_id: str) -> None:
        self.calls.append(("delete_workflow", workflow_id))
        if self.workflows.pop(workflow_id, None) is None:
            raise RemoteNotFoundError(f"workflow {workflow_id} not found")

    async def activate_workflow(self, workflow_id: str) -> None:
        self.calls.append(("activate_workflow", workflow_id))
        if self.fail_activate:
            raise self.fail_activate
        if workflow_id not in self.workflows:
            raise RemoteNotFoundError(f"workflow {workflow_id} not found")
        self.workflows[workflow_id].active = True

    async def deactivate_workflow(self, workflow_id: str) -> None:
        self.calls.append(("deactivate_workflow", workflow_id))
        if workflow_id not in self.workflows:
            raise RemoteNotFoundError(f"workflow {workflow_id} not found")
        self.workflows[workflow_id].active = False

    async def list_credentials(self) -> list[RemoteCredential]:
        self.calls.append(("list_credentials", ""))
        if self.fail_list_credentials:
            raise self.fail_list_credentials
        return list(self.credentials.values())

    async def create_credential(self, name: str, type_: str, data: dict) -> RemoteCredential:
        credential = self.add_credential(name, type_)
        self.credential_data[credential.id] = data
        self.calls.append(("create_credential", credential.id))
        return credential

    async def delete_credential(self, credential_id: str) -> None:
        self.calls.append(("delete_credential", credential_id))
        if self.credentials.pop(credential_id, None) is None:
            raise RemoteNotFoundError(f"credential {credential_id} not found")


class SleepRecorder:
    """Async ``sleep`` replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def api_key():
    return API_KEY


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def no_sleep():
    return SleepRecorder()


@pytest.fixture
async def db():
    manager = DatabaseManager(FlowDeploySettings(db_url="sqlite+aiosqlite://"))
    await manager.init()
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
async def session(db):
    async with db.get_session() as s:
        yield s


@pytest.fixture
async def profile(session):
    """A seeded tenant with a connected gmail mailbox."""
    svc = TenantService()
    await svc.upsert_profile(
        session,
        TENANT_ID,
        business_config=BUSINESS_CONFIG,
        business_types=["Pools & Spas"],
        managers=[{"name": "Jillian", "email": "jillian@hottubman.example"}],
        suppliers=[{"name": "Aqua Supply", "email": "orders@aquasupply.example"}],
        label_map=LABEL_MAP,
        provider_in_use="gmail",
    )
    await svc.upsert_integration(session, TENANT_ID, "gmail", refresh_token="1//refresh-token")
    return await svc.get_profile(session, TENANT_ID)


@pytest.fixture
def app(monkeypatch):
    """Create a test app with in-memory DB."""
    monkeypatch.setenv("FLOWDEPLOY_DB_URL", "sqlite+aiosqlite://")
    monkeypatch.setenv("FLOWDEPLOY_API_KEY", API_KEY)
    monkeypatch.setenv("FLOWDEPLOY_GMAIL_CLIENT_ID", "gmail-client-id")
    monkeypatch.setenv("FLOWDEPLOY_GMAIL_CLIENT_SECRET", "gmail-client-secret")
    monkeypatch.setenv("FLOWDEPLOY_DATASTORE_CREDENTIAL_ID", "datastore-shared")
    monkeypatch.setenv("FLOWDEPLOY_LLM_KEYS", "sk-test-one,sk-test-two")

    # Clear caches and singletons so new env vars take effect
    from flowdeploy_engine.common.config import get_settings
    get_settings.cache_clear()

    from flowdeploy_engine.deps import reset_singletons
    reset_singletons()

    from flowdeploy_engine.app import create_app
    yield create_app()

    get_settings.cache_clear()
    reset_singletons()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from flowdeploy_engine.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def admin_headers():
    return {"X-FlowDeploy-Api-Key": API_KEY}


@pytest.fixture
async def seeded_tenant(client):
    """Seed the app database with the demo tenant; returns its id."""
    from flowdeploy_engine.deps import get_db

    svc = TenantService()
    async with get_db().get_session() as session:
        await svc.upsert_profile(
            session,
            TENANT_ID,
            business_config=BUSINESS_CONFIG,
            business_types=["Pools & Spas"],
            label_map=LABEL_MAP,
            provider_in_use="gmail",
        )
        await svc.upsert_integration(session, TENANT_ID, "gmail", refresh_token="1//refresh-token")
    return TENANT_ID
