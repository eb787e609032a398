from urllib.parse import parse_qs, urlsplit

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from linkpay.config import settings


def _disable_prepared_statements(database_url: str) -> bool:
    parts = urlsplit(database_url)
    if "asyncpg" not in parts.scheme:
        return False
    host = (parts.hostname or "").lower()
    if "pooler" in host or "pgbouncer" in host:
        return True
    if parts.port == 6543:
        return True
    query = parse_qs(parts.query)
    pool_mode = (query.get("pool_mode") or [""])[0].lower()
    if pool_mode in {"transaction", "statement"}:
        return True
    return False


def _connect_args(database_url: str) -> dict:
    args: dict = {}
    if _disable_prepared_statements(database_url):
        args["statement_cache_size"] = 0
    if database_url.startswith("sqlite"):
        # Concurrent webhook deliveries wait on the writer lock instead of failing.
        args["timeout"] = 30
    return args


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(database_url: str) -> AsyncEngine:
    engine = create_async_engine(database_url, echo=False, connect_args=_connect_args(database_url))
    enable_sqlite_foreign_keys(engine)
    return engine


engine = build_engine(settings.database_url)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
