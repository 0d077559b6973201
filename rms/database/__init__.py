from rms.database.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin
from rms.database.engine import async_session, engine, sync_engine
from rms.database.session import get_db, get_session_factory
from rms.database.transaction import Transaction, unit_of_work

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "Transaction",
    "UUIDPrimaryKeyMixin",
    "async_session",
    "engine",
    "sync_engine",
    "get_db",
    "get_session_factory",
    "unit_of_work",
]
