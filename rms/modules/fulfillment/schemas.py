"""Payload and result shapes exchanged with the fulfillment system."""

from __future__ import annotations

import uuid
from decimal import Decimal

from pydantic import BaseModel, Field

from rms.models.enums import FulfillmentStatus


class CreditMemoLine(BaseModel):
    line_number: int
    part_number: str
    quantity_approved: int
    unit_cost: Decimal | None = None
    credit_reason: str


class CreditMemoPayload(BaseModel):
    rma_id: uuid.UUID
    rma_number: str
    customer_account_number: str | None = None
    lines: list[CreditMemoLine] = Field(min_length=1)
    requested_by: uuid.UUID


class ShipToAddress(BaseModel):
    line1: str
    line2: str | None = None
    city: str
    state: str
    zip: str
    country: str


class ReplacementOrderLine(BaseModel):
    line_number: int
    part_number: str
    quantity_approved: int
    unit_cost: Decimal | None = None


class ReplacementOrderPayload(BaseModel):
    rma_id: uuid.UUID
    rma_number: str
    customer_account_number: str | None = None
    # Not captured on the RMA yet; the fulfillment system falls back to the account default
    ship_to_address: ShipToAddress | None = None
    lines: list[ReplacementOrderLine] = Field(min_length=1)
    requested_by: uuid.UUID


class FulfillmentResult(BaseModel):
    success: bool
    reference_id: str | None = None
    status: FulfillmentStatus
    error_code: str | None = None
    error_message: str | None = None
