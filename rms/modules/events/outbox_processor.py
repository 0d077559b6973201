"""OutboxProcessor — synchronous batch processor for Celery workers."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session

from rms.config import settings
from rms.models.enums import EventStatus
from rms.models.event_outbox import EventOutbox
from rms.models.processed_event import ProcessedEvent
from rms.modules.events.handlers import EventHandlerRegistry

logger = logging.getLogger(__name__)

PROCESSED_EVENT_TTL = timedelta(days=7)
COMPLETED_EVENT_RETENTION = timedelta(days=30)


class OutboxProcessor:
    """Drains PENDING outbox rows through the handler registry.

    Rows are claimed with ``FOR UPDATE SKIP LOCKED`` on PostgreSQL so several
    workers can run side by side. The processed_events table makes delivery
    idempotent: an event already recorded there is marked COMPLETED without
    running its handlers again.
    """

    def __init__(self, engine: Engine | None = None) -> None:
        if engine is None:
            from rms.database.engine import sync_engine

            engine = sync_engine
        self.engine = engine

    def process_batch(self, batch_size: int | None = None) -> dict:
        """Process a batch of pending events.

        Returns dict with 'processed' and 'failed' counts.
        """
        processed_count = 0
        failed_count = 0

        with Session(self.engine) as session:
            pending = session.execute(
                select(EventOutbox)
                .where(EventOutbox.status == EventStatus.PENDING)
                .order_by(EventOutbox.created_at.asc())
                .limit(batch_size or settings.event_outbox_batch_size)
                .with_for_update(skip_locked=True)
            ).scalars().all()

            for event in pending:
                event_id = event.id
                event_type = event.event_type
                try:
                    already_processed = session.execute(
                        select(ProcessedEvent.id).where(ProcessedEvent.event_id == event_id)
                    ).first()
                    if already_processed:
                        event.status = EventStatus.COMPLETED
                        event.processed_at = datetime.now(UTC)
                        session.commit()
                        processed_count += 1
                        continue

                    # Not committed until handlers finish, so a crash leaves it PENDING
                    event.status = EventStatus.PROCESSING
                    session.flush()

                    results = EventHandlerRegistry.dispatch(event_type, event.payload)
                    handler_errors = [r for r in results if r["status"] == "error"]
                    if handler_errors:
                        error_messages = "; ".join(
                            f"{r['handler']}: {r['error']}" for r in handler_errors
                        )
                        raise RuntimeError(f"Handler errors: {error_messages}")

                    now = datetime.now(UTC)
                    session.add(
                        ProcessedEvent(
                            event_id=event_id,
                            event_type=event_type,
                            handler_name=",".join(r["handler"] for r in results)
                            if results
                            else "no_handlers",
                            processed_at=now,
                            expires_at=now + PROCESSED_EVENT_TTL,
                        )
                    )
                    event.status = EventStatus.COMPLETED
                    event.processed_at = now
                    session.commit()
                    processed_count += 1

                except Exception as exc:
                    session.rollback()
                    logger.exception(
                        "Failed to process event %s (type=%s)", event_id, event_type
                    )
                    failed = session.get(EventOutbox, event_id)
                    failed.retry_count += 1
                    failed.last_error = str(exc)
                    failed.status = (
                        EventStatus.FAILED
                        if failed.retry_count >= failed.max_retries
                        else EventStatus.PENDING
                    )
                    session.commit()
                    failed_count += 1

        logger.info(
            "Outbox batch done: %d processed, %d failed", processed_count, failed_count
        )
        return {"processed": processed_count, "failed": failed_count}

    def cleanup_expired(self) -> int:
        """Delete expired processed_events and old completed outbox events.

        Returns total number of rows deleted.
        """
        now = datetime.now(UTC)
        with Session(self.engine) as session:
            total_deleted = session.execute(
                delete(ProcessedEvent).where(ProcessedEvent.expires_at < now)
            ).rowcount
            total_deleted += session.execute(
                delete(EventOutbox).where(
                    EventOutbox.status == EventStatus.COMPLETED,
                    EventOutbox.processed_at < now - COMPLETED_EVENT_RETENTION,
                )
            ).rowcount
            session.commit()

        logger.info("Cleaned up %d expired event records", total_deleted)
        return total_deleted
