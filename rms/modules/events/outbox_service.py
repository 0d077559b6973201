"""OutboxService — writes domain events into the transactional outbox."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rms.database.transaction import Transaction
from rms.models.enums import EventStatus
from rms.models.event_outbox import EventOutbox


class OutboxService:
    """Publishes events as PENDING outbox rows inside the caller's transaction.

    The row commits or rolls back with the state change that produced it; the
    Celery outbox processor picks it up after commit.
    """

    async def publish_event(
        self,
        tx: Transaction,
        event_type: str,
        aggregate_type: str,
        aggregate_id: str,
        payload: dict,
    ) -> EventOutbox:
        session = tx.ensure_active()
        event = EventOutbox(
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            payload=payload,
            status=EventStatus.PENDING,
        )
        session.add(event)
        await session.flush()
        return event

    async def get_pending_events(self, db: AsyncSession, batch_size: int = 50) -> list[EventOutbox]:
        """Get pending events ordered by created_at, limited to batch_size."""
        statement = (
            select(EventOutbox)
            .where(EventOutbox.status == EventStatus.PENDING)
            .order_by(EventOutbox.created_at.asc())
            .limit(batch_size)
        )
        result = await db.execute(statement)
        return list(result.scalars().all())
