"""Abstract base class for fulfillment adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod

from rms.modules.fulfillment.schemas import (
    CreditMemoPayload,
    FulfillmentResult,
    ReplacementOrderPayload,
)


class FulfillmentAdapter(ABC):
    @abstractmethod
    async def create_credit_memo(self, payload: CreditMemoPayload) -> FulfillmentResult:
        """Request a credit memo for approved CREDIT lines."""

    @abstractmethod
    async def create_replacement_order(
        self, payload: ReplacementOrderPayload
    ) -> FulfillmentResult:
        """Request a replacement order for REPLACEMENT lines."""
