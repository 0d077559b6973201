"""Transaction handle for write paths.

Repository write methods and the audit recorder accept a ``Transaction``
rather than a bare session. A handle only exists inside ``unit_of_work`` and
is closed when the block exits, so a write attempted outside an open unit of
work fails loudly instead of silently autocommitting.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class TransactionClosedError(RuntimeError):
    """Raised when a write is attempted without an active transaction."""


class Transaction:
    """An open unit of work bound to one ``AsyncSession``."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._open = True

    @property
    def is_active(self) -> bool:
        return self._open and self.session.in_transaction()

    def ensure_active(self) -> AsyncSession:
        """Return the bound session, or raise if the unit of work has ended."""
        if not self.is_active:
            raise TransactionClosedError("Write attempted outside an active transaction")
        return self.session

    def close(self) -> None:
        self._open = False


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[Transaction]:
    """Open a session and a transaction; commit on success, roll back on any error."""
    async with session_factory() as session:
        async with session.begin():
            tx = Transaction(session)
            try:
                yield tx
            finally:
                tx.close()
