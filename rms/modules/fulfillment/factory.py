"""Adapter factory — picks the fulfillment implementation from configuration."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from rms.config import settings
from rms.modules.fulfillment.base import FulfillmentAdapter
from rms.modules.fulfillment.stub import StubFulfillmentAdapter


def get_fulfillment_adapter(
    session: AsyncSession, adapter_name: str | None = None
) -> FulfillmentAdapter:
    name = (adapter_name or settings.fulfillment_adapter).lower()
    if name == "stub":
        return StubFulfillmentAdapter(session)
    raise ValueError(f"No fulfillment adapter named: {name}")
