from decimal import Decimal

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from linkpay.main import app
from linkpay.models.database import Affiliate, Base, Link
from linkpay.services.auth import Principal
from linkpay.services.database import enable_sqlite_foreign_keys, get_db
from linkpay.services.fraud import get_rate_limiter


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    async def _record(self, *args):
        self.calls.append(args)
        if self.fail:
            raise RuntimeError("notification transport down")

    async def commission_earned(self, affiliate, amount, source):
        await self._record("commission_earned", affiliate.id, amount, source)

    async def payout_requested(self, affiliate, amount):
        await self._record("payout_requested", affiliate.id, amount)

    async def payout_status_changed(self, affiliate, amount, status):
        await self._record("payout_status_changed", affiliate.id, amount, status)


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture()
async def session_factory(tmp_path):
    db_path = tmp_path / "test.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", echo=False, connect_args={"timeout": 30})
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def admin(db_session) -> Principal:
    row = await create_affiliate_row(db_session, email="admin@example.com", rate=None, role="admin")
    return Principal(id=row.id, role="admin")


async def create_affiliate_row(db, *, email="aff@example.com", rate=Decimal("10"), role="affiliate", status="active"):
    affiliate = Affiliate(name=email.split("@")[0], email=email, role=role, commission_rate=rate, status=status)
    db.add(affiliate)
    await db.commit()
    await db.refresh(affiliate)
    return affiliate


async def create_link_row(db, affiliate, *, slug="spring-sale", rate=None, status="active", url="https://shop.example.com/p"):
    link = Link(
        affiliate_id=affiliate.id,
        name=slug,
        slug=slug,
        url=url,
        status=status,
        commission_rate=rate,
        clicks=0,
        conversions=0,
        revenue=Decimal("0"),
    )
    db.add(link)
    await db.commit()
    await db.refresh(link)
    return link


@pytest.fixture()
def api_db(tmp_path):
    """File-backed database for route tests; returns a sync sessionmaker for seeding.

    The app side uses NullPool so every request opens its connection on the
    TestClient's own event loop.
    """
    db_path = tmp_path / "api.db"
    sync_engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(sync_engine)
    async_engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}", poolclass=NullPool)
    maker = async_sessionmaker(async_engine, expire_on_commit=False)

    async def override_get_db():
        async with maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    get_rate_limiter().reset()
    try:
        yield sessionmaker(sync_engine, expire_on_commit=False)
    finally:
        app.dependency_overrides.pop(get_db, None)
        get_rate_limiter().reset()
        sync_engine.dispose()


@pytest.fixture()
def client(api_db) -> TestClient:
    return TestClient(app)


def admin_headers(admin_id: int = 1) -> dict:
    return {"X-Principal-Id": str(admin_id), "X-Principal-Role": "admin"}


def affiliate_headers(affiliate_id: int) -> dict:
    return {"X-Principal-Id": str(affiliate_id), "X-Principal-Role": "affiliate"}
