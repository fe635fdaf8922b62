# database.py
# Establishes connection to the SQL database (Postgres in production) and ORM setup.

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from config import settings

SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL


def _connect_args(url: str) -> dict:
    """asyncpg-only options; other drivers get none."""
    if url.startswith("postgresql+asyncpg"):
        return {
            "timeout": 30,
            "server_settings": {"application_name": "charity_platform"},
        }
    return {}


# NullPool: a new connection per session; concurrent requests never share one.
engine = create_async_engine(
    SQLALCHEMY_DATABASE_URL,
    echo=settings.SQL_ECHO,
    poolclass=NullPool,
    connect_args=_connect_args(SQLALCHEMY_DATABASE_URL),
)

SessionLocal = async_sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False
)

Base = declarative_base()


async def init_models() -> None:
    """Create all tables that do not exist yet."""
    import models  # noqa: F401  (registers the mappers on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
