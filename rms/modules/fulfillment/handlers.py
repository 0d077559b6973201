"""Outbox handler for rma.resolved — runs fulfillment after the resolve commits."""

import asyncio
import logging
import uuid

from rms.modules.events.handlers import EventHandlerRegistry
from rms.modules.rma.constants import EVENT_RMA_RESOLVED

logger = logging.getLogger(__name__)


async def _trigger_async(payload: dict) -> dict:
    from rms.database.engine import async_session, engine
    from rms.modules.fulfillment.service import FulfillmentService

    try:
        results = await FulfillmentService(async_session).trigger_for_rma(
            uuid.UUID(payload["rma_id"]),
            requested_by=uuid.UUID(payload["resolved_by_id"]),
            requested_by_role=payload["resolved_by_role"],
        )
    finally:
        # Pooled connections are bound to this event loop; drop them before it closes
        await engine.dispose()
    return {key: value.model_dump(mode="json") if value else None for key, value in results.items()}


def handle_rma_resolved(payload: dict) -> dict:
    """Synchronous entry point invoked by the outbox processor."""
    results = asyncio.run(_trigger_async(payload))
    logger.info("handle_rma_resolved complete for %s: %s", payload.get("rma_number"), results)
    return results


EventHandlerRegistry.register(EVENT_RMA_RESOLVED, handle_rma_resolved)
