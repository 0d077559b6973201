from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rms.config import settings


def engine_options(url: str, pool_size: int, max_overflow: int = 0) -> dict:
    """Keyword arguments for ``create_engine``/``create_async_engine``.

    SQLite (local runs and the test suite) keeps SQLAlchemy's default pool;
    server databases get sized, pre-pinged, recycled pools.
    """
    options: dict = {"echo": settings.db_echo}
    if make_url(url).get_backend_name() == "sqlite":
        return options
    options.update(
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=settings.db_pool_recycle_seconds,
    )
    return options


# API engine; one connection per in-flight request unit of work
engine = create_async_engine(
    settings.database_url,
    **engine_options(settings.database_url, settings.db_pool_size, settings.db_max_overflow),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# Celery outbox processor and cleanup; tasks run one batch at a time
sync_engine = create_engine(
    settings.database_url_sync,
    **engine_options(settings.database_url_sync, settings.db_sync_pool_size),
)
