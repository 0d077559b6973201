"""Pydantic v2 schemas for the RMA lifecycle, approvals, and finance endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rms.models.enums import DispositionType, RmaStatus

# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------


class LineCreate(BaseModel):
    part_number: str = Field(..., min_length=1, max_length=100)
    ordered_qty: int = Field(..., gt=0)
    reason_code: str = Field(..., min_length=1, max_length=50)
    disposition: DispositionType | None = None
    unit_cost: Decimal | None = Field(None, ge=0)


class LineUpdate(BaseModel):
    """Partial line patch; only fields present in the request body are applied."""

    part_number: str | None = Field(None, min_length=1, max_length=100)
    ordered_qty: int | None = Field(None, gt=0)
    reason_code: str | None = Field(None, min_length=1, max_length=50)
    disposition: DispositionType | None = None
    unit_cost: Decimal | None = Field(None, ge=0)

    @field_validator("part_number", "ordered_qty", "reason_code")
    @classmethod
    def reject_null(cls, v):
        # Only runs for fields sent in the body; omitted fields keep their default.
        if v is None:
            raise ValueError("Field cannot be null; omit it to leave the value unchanged")
        return v


class LineSplitTarget(BaseModel):
    ordered_qty: int = Field(..., gt=0)
    disposition: DispositionType | None = None
    reason_code: str | None = Field(None, min_length=1, max_length=50)


class LineSplitRequest(BaseModel):
    splits: list[LineSplitTarget] = Field(..., min_length=2)


class ReceiptRequest(BaseModel):
    received_qty: int = Field(..., ge=0)


class QcInspectionRequest(BaseModel):
    inspected_qty: int = Field(..., ge=0)
    qc_pass: bool | None = None
    qc_findings: str | None = None
    qc_disposition_recommendation: DispositionType | None = None


class RmaLineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    rma_id: uuid.UUID
    part_number: str
    ordered_qty: int
    reason_code: str
    disposition: DispositionType | None = None
    unit_cost: Decimal | None = None
    received_qty: int
    inspected_qty: int
    qc_inspected_at: datetime | None = None
    qc_pass: bool | None = None
    qc_findings: str | None = None
    qc_disposition_recommendation: DispositionType | None = None
    finance_approved_at: datetime | None = None
    finance_approved_by_id: uuid.UUID | None = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# RMA header
# ---------------------------------------------------------------------------


class RmaCreate(BaseModel):
    branch_id: str = Field(..., min_length=1, max_length=64)
    customer_id: str | None = Field(None, max_length=64)
    lines: list[LineCreate] = Field(..., min_length=1)


class RmaResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    rma_number: str
    status: RmaStatus
    branch_id: str
    customer_id: str | None = None
    submitted_by_id: uuid.UUID | None = None
    rejection_reason: str | None = None
    cancellation_reason: str | None = None
    dispute_reason: str | None = None
    contested_at: datetime | None = None
    contest_resolution_note: str | None = None
    lines: list[RmaLineResponse] = []
    created_at: datetime
    updated_at: datetime


class RmaListResponse(BaseModel):
    items: list[RmaResponse]
    take: int
    skip: int


# ---------------------------------------------------------------------------
# Transition bodies
# ---------------------------------------------------------------------------


class InfoRequiredRequest(BaseModel):
    note: str | None = None


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class ContestRequest(BaseModel):
    dispute_reason: str = Field(..., min_length=1)


class ContestResolutionRequest(BaseModel):
    resolution_note: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


class AuditEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    rma_id: uuid.UUID | None = None
    rma_line_id: uuid.UUID | None = None
    actor_id: uuid.UUID
    actor_role: str
    action: str
    from_status: str | None = None
    to_status: str | None = None
    old_value: dict | None = None
    new_value: dict | None = None
    metadata: dict | None = Field(None, validation_alias="event_metadata")
    occurred_at: datetime


# ---------------------------------------------------------------------------
# Queues
# ---------------------------------------------------------------------------

ApprovalQueueStatus = Literal["SUBMITTED", "CONTESTED"]


class ApprovalQueueResponse(BaseModel):
    items: list[RmaResponse]
    take: int
    skip: int


class CreditApprovalLineResponse(RmaLineResponse):
    rma_number: str
    rma_status: RmaStatus
    branch_id: str


class CreditApprovalListResponse(BaseModel):
    items: list[CreditApprovalLineResponse]
    take: int
    skip: int
