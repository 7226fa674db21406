"""
Shared test fixtures — in-memory SQLite async database + httpx client over the ASGI app.

Strategy:
1. Set DATABASE_URL to SQLite before anything loads
2. Build a dedicated in-memory engine and route get_session to it through
   FastAPI dependency overrides
3. Swap the notification hook for a recorder so emitted events can be asserted
"""
import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# ── 1. Environment ──
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["DEBUG"] = "false"
os.environ["TEMPLATES_TENANT_SCOPED"] = "false"

# ── 2. Test engine (SQLite in-memory, one shared connection) ──
TEST_ENGINE = create_async_engine(
    "sqlite+aiosqlite://",
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSession = async_sessionmaker(
    TEST_ENGINE,
    class_=AsyncSession,
    expire_on_commit=False,
)


@event.listens_for(TEST_ENGINE.sync_engine, "connect")
def _enable_foreign_keys(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ── 3. Import the app and point it at the test engine ──
from app.database import get_session  # noqa: E402
from app.main import app as fastapi_app  # noqa: E402
from app.models import Base, Restaurant, User  # noqa: E402
from app.services.notifications import Notifier, get_notifier  # noqa: E402


async def _test_get_session() -> AsyncGenerator[AsyncSession, None]:
    async with TestSession() as session:
        yield session


fastapi_app.dependency_overrides[get_session] = _test_get_session


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events: list[tuple[str, int, dict]] = []

    async def emit(self, event: str, recipient_id: int, payload: dict) -> None:
        self.events.append((event, recipient_id, payload))


# ── Fixtures ──

@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Create all tables before each test, drop after."""
    async with TEST_ENGINE.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with TEST_ENGINE.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(autouse=True)
async def notifier() -> AsyncGenerator[RecordingNotifier, None]:
    recorder = RecordingNotifier()
    fastapi_app.dependency_overrides[get_notifier] = lambda: recorder
    yield recorder
    fastapi_app.dependency_overrides.pop(get_notifier, None)


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSession() as session:
        yield session


# ── Seed data helpers ──

def auth_headers(user_id: int, role: str, tenant_id: int = 1, restaurant_id: int | None = None) -> dict:
    headers = {"X-User-Id": str(user_id), "X-Tenant-Id": str(tenant_id), "X-User-Role": role}
    if restaurant_id is not None:
        headers["X-Restaurant-Id"] = str(restaurant_id)
    return headers


@pytest_asyncio.fixture
async def seed(db: AsyncSession):
    """Two restaurants and a small staff in tenant 1, one of each in tenant 2."""
    lyon = Restaurant(tenant_id=1, name="Le Comptoir Lyon", city="Lyon")
    paris = Restaurant(tenant_id=1, name="Le Comptoir Paris", city="Paris")
    nice = Restaurant(tenant_id=2, name="Chez Voisin Nice", city="Nice")
    manager = User(tenant_id=1, email="claire.martin@comptoir.test", display_name="Claire Martin", role="manager")
    inspector = User(tenant_id=1, email="hugo.bernard@comptoir.test", display_name="Hugo Bernard", role="inspector")
    colleague = User(tenant_id=1, email="lea.petit@comptoir.test", display_name="Lea Petit", role="inspector")
    former = User(tenant_id=1, email="former@comptoir.test", role="inspector", is_active=False)
    outsider = User(tenant_id=2, email="marc@voisin.test", display_name="Marc Voisin", role="manager")
    db.add_all([lyon, paris, nice, manager, inspector, colleague, former, outsider])
    await db.commit()

    return SimpleNamespace(
        lyon_id=lyon.id,
        paris_id=paris.id,
        nice_id=nice.id,
        manager_id=manager.id,
        inspector_id=inspector.id,
        colleague_id=colleague.id,
        former_id=former.id,
        outsider_id=outsider.id,
        manager=auth_headers(manager.id, "manager"),
        inspector=auth_headers(inspector.id, "inspector"),
        colleague=auth_headers(colleague.id, "inspector"),
        viewer_paris=auth_headers(colleague.id, "viewer", restaurant_id=paris.id),
        outsider=auth_headers(outsider.id, "manager", tenant_id=2),
    )


HYGIENE_TEMPLATE = {
    "name": "Hygiène Cuisine",
    "category": "hygiene",
    "description": "Contrôle hebdomadaire de la cuisine",
    "frequency": "weekly",
    "estimated_duration": 45,
    "items": [
        {"question": "Chambres froides sous 4°C ?", "type": "yes_no", "is_critical": True},
        {"question": "Plans de travail désinfectés ?", "type": "yes_no", "is_critical": True},
        {"question": "Propreté générale", "type": "score", "max_score": 5},
    ],
}


@pytest_asyncio.fixture
async def template(client: AsyncClient, seed) -> dict:
    r = await client.post("/audit-templates", json=HYGIENE_TEMPLATE, headers=seed.manager)
    assert r.status_code == 201, r.text
    return r.json()["data"]


async def schedule(client: AsyncClient, seed, template: dict, when: datetime | None = None, **overrides) -> dict:
    body = {
        "template_id": template["id"],
        "restaurant_id": seed.lyon_id,
        "inspector_id": seed.inspector_id,
        "scheduled_date": (when or datetime.utcnow()).isoformat(),
    }
    body.update(overrides)
    r = await client.post("/audits", json=body, headers=seed.manager)
    assert r.status_code == 201, r.text
    return r.json()["data"]


@pytest_asyncio.fixture
async def execution(client: AsyncClient, seed, template) -> dict:
    """An audit of the Lyon restaurant due right now."""
    return await schedule(client, seed, template)


async def answer_all(client: AsyncClient, seed, execution: dict, *, critical_answer: str = "yes", score: float = 4):
    items = execution["items"]
    for item in items:
        if item["type"] == "yes_no":
            body = {"item_id": item["id"], "value": critical_answer}
        else:
            body = {"item_id": item["id"], "score": score}
        r = await client.post(f"/audits/{execution['id']}/responses", json=body, headers=seed.inspector)
        assert r.status_code == 200, r.text


async def completed_execution(client: AsyncClient, seed, template: dict, **answers) -> dict:
    ex = await schedule(client, seed, template)
    await answer_all(client, seed, ex, **answers)
    r = await client.post(f"/audits/{ex['id']}/complete", headers=seed.inspector)
    assert r.status_code == 200, r.text
    return r.json()["data"]


def days_from_now(days: float) -> datetime:
    return datetime.utcnow() + timedelta(days=days)
