from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.ext.asyncio.session import AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from stableramp.core.config import settings

DB_URL = settings.DB_URL

engine = create_async_engine(DB_URL, future=True, echo=False)
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


def insert_for_dialect(dialect_name: str):
    """INSERT construct supporting ON CONFLICT for the given backend."""
    if dialect_name == "postgresql":
        return pg_insert
    if dialect_name == "sqlite":
        return sqlite_insert
    raise ValueError(f"Unsupported database backend: {dialect_name}")


# chosen once for the configured backend; repositories never branch on it
upsert_insert = insert_for_dialect(engine.dialect.name)


def load_models():
    # importing the modules registers their tables on Base.metadata
    from stableramp.db.models import activity_history, cashouts, payments, sync_watermarks, transfers  # noqa: F401


async def init_models():
    load_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session
