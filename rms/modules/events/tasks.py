"""Celery tasks for event outbox processing."""

from celery_app import celery
from rms.modules.events.outbox_processor import OutboxProcessor


@celery.task(name="rms.modules.events.tasks.process_outbox")
def process_outbox():
    """Process a batch of pending outbox events."""
    # Registers the rma.resolved handler in the worker process
    import rms.modules.fulfillment.handlers  # noqa: F401

    return OutboxProcessor().process_batch()


@celery.task(name="rms.modules.events.tasks.cleanup_processed_events")
def cleanup_processed_events():
    """Delete expired processed_events and old completed outbox entries."""
    return OutboxProcessor().cleanup_expired()
