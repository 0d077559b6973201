"""RMA lifecycle API router — creation, reads, transitions, and line operations."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rms.database.session import get_db
from rms.exceptions import NotFoundException
from rms.models.enums import RmaStatus, RmsRole
from rms.modules.audit.service import AuditService
from rms.modules.rma.dependencies import get_lifecycle_service
from rms.modules.rma.repository import RmaRepository
from rms.modules.rma.schemas import (
    AuditEventResponse,
    CancelRequest,
    ContestRequest,
    ContestResolutionRequest,
    InfoRequiredRequest,
    LineCreate,
    LineSplitRequest,
    LineUpdate,
    QcInspectionRequest,
    ReceiptRequest,
    RmaCreate,
    RmaListResponse,
    RmaResponse,
)
from rms.modules.rma.service import RmaLifecycleService
from rms.modules.users.dependencies import ALL_RMS_ROLES, require_roles
from rms.modules.users.service import ActorContext

router = APIRouter(prefix="/rmas", tags=["rmas"])


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


@router.post("/", response_model=RmaResponse, status_code=201)
async def create_rma(
    body: RmaCreate,
    actor: ActorContext = Depends(require_roles(RmsRole.RETURNS_AGENT)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    """Create a new DRAFT RMA with its initial lines."""
    rma = await svc.create_draft(
        branch_id=body.branch_id,
        lines=[line.model_dump() for line in body.lines],
        actor=actor,
        customer_id=body.customer_id,
    )
    return RmaResponse.model_validate(rma)


@router.get("/", response_model=RmaListResponse)
async def list_rmas(
    status: RmaStatus | None = Query(None),
    branch_id: str | None = Query(None),
    take: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
    actor: ActorContext = Depends(require_roles(*ALL_RMS_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """List RMAs in the caller's branches, newest first."""
    items = await RmaRepository(db).find_many_branch_scoped(
        actor, branch_id=branch_id, status=status, take=take, skip=skip
    )
    return RmaListResponse(
        items=[RmaResponse.model_validate(rma) for rma in items],
        take=take,
        skip=skip,
    )


@router.get("/{rma_id}", response_model=RmaResponse)
async def get_rma(
    rma_id: uuid.UUID,
    actor: ActorContext = Depends(require_roles(*ALL_RMS_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    rma = await RmaRepository(db).find_by_id_branch_scoped(rma_id, actor)
    if rma is None:
        raise NotFoundException(f"RMA {rma_id} not found")
    return RmaResponse.model_validate(rma)


@router.get("/{rma_id}/audit", response_model=list[AuditEventResponse])
async def get_rma_audit_trail(
    rma_id: uuid.UUID,
    actor: ActorContext = Depends(require_roles(*ALL_RMS_ROLES)),
    db: AsyncSession = Depends(get_db),
):
    """Audit trail for an RMA, oldest first."""
    rma = await RmaRepository(db).find_by_id_branch_scoped(rma_id, actor)
    if rma is None:
        raise NotFoundException(f"RMA {rma_id} not found")
    events = await AuditService().list_for_rma(db, rma.id)
    return [AuditEventResponse.model_validate(event) for event in events]


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@router.post("/{rma_id}/submit", response_model=RmaResponse)
async def submit_rma(
    rma_id: uuid.UUID,
    actor: ActorContext = Depends(require_roles(RmsRole.RETURNS_AGENT, RmsRole.CUSTOMER)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    return RmaResponse.model_validate(await svc.submit(rma_id, actor))


@router.post("/{rma_id}/resubmit", response_model=RmaResponse)
async def resubmit_rma(
    rma_id: uuid.UUID,
    actor: ActorContext = Depends(require_roles(RmsRole.RETURNS_AGENT, RmsRole.CUSTOMER)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    """Send an INFO_REQUIRED RMA back for review."""
    return RmaResponse.model_validate(await svc.submit(rma_id, actor))


@router.post("/{rma_id}/info-required", response_model=RmaResponse)
async def place_info_required(
    rma_id: uuid.UUID,
    body: InfoRequiredRequest,
    actor: ActorContext = Depends(require_roles(RmsRole.RETURNS_AGENT)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    return RmaResponse.model_validate(await svc.place_info_required(rma_id, actor, note=body.note))


@router.post("/{rma_id}/cancel", response_model=RmaResponse)
async def cancel_rma(
    rma_id: uuid.UUID,
    body: CancelRequest,
    actor: ActorContext = Depends(require_roles(RmsRole.RETURNS_AGENT, RmsRole.ADMIN)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    return RmaResponse.model_validate(await svc.cancel(rma_id, body.reason, actor))


@router.post("/{rma_id}/contest", response_model=RmaResponse)
async def contest_rma(
    rma_id: uuid.UUID,
    body: ContestRequest,
    actor: ActorContext = Depends(require_roles(RmsRole.CUSTOMER)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    """Dispute a rejection. Allowed once per RMA."""
    return RmaResponse.model_validate(await svc.contest(rma_id, body.dispute_reason, actor))


@router.post("/{rma_id}/overturn", response_model=RmaResponse)
async def overturn_rma(
    rma_id: uuid.UUID,
    body: ContestResolutionRequest,
    actor: ActorContext = Depends(require_roles(RmsRole.BRANCH_MANAGER)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    return RmaResponse.model_validate(await svc.overturn(rma_id, body.resolution_note, actor))


@router.post("/{rma_id}/uphold", response_model=RmaResponse)
async def uphold_rma(
    rma_id: uuid.UUID,
    body: ContestResolutionRequest,
    actor: ActorContext = Depends(require_roles(RmsRole.BRANCH_MANAGER)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    return RmaResponse.model_validate(await svc.uphold(rma_id, body.resolution_note, actor))


@router.post("/{rma_id}/complete-qc", response_model=RmaResponse)
async def complete_qc(
    rma_id: uuid.UUID,
    actor: ActorContext = Depends(require_roles(RmsRole.QC)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    return RmaResponse.model_validate(await svc.complete_qc(rma_id, actor))


@router.post("/{rma_id}/resolve", response_model=RmaResponse)
async def resolve_rma(
    rma_id: uuid.UUID,
    actor: ActorContext = Depends(require_roles(RmsRole.RETURNS_AGENT, RmsRole.FINANCE)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    """Resolve a QC_COMPLETE RMA once every CREDIT line is finance approved."""
    return RmaResponse.model_validate(await svc.resolve(rma_id, actor))


@router.post("/{rma_id}/close", response_model=RmaResponse)
async def close_rma(
    rma_id: uuid.UUID,
    actor: ActorContext = Depends(require_roles(RmsRole.RETURNS_AGENT, RmsRole.ADMIN)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    return RmaResponse.model_validate(await svc.close(rma_id, actor))


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------


@router.post("/{rma_id}/lines", response_model=RmaResponse, status_code=201)
async def add_line(
    rma_id: uuid.UUID,
    body: LineCreate,
    actor: ActorContext = Depends(require_roles(RmsRole.RETURNS_AGENT)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    return RmaResponse.model_validate(await svc.add_line(rma_id, body.model_dump(), actor))


@router.patch("/{rma_id}/lines/{line_id}", response_model=RmaResponse)
async def update_line(
    rma_id: uuid.UUID,
    line_id: uuid.UUID,
    body: LineUpdate,
    actor: ActorContext = Depends(require_roles(RmsRole.RETURNS_AGENT)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    rma = await svc.update_line(rma_id, line_id, body.model_dump(exclude_unset=True), actor)
    return RmaResponse.model_validate(rma)


@router.delete("/{rma_id}/lines/{line_id}", response_model=RmaResponse)
async def remove_line(
    rma_id: uuid.UUID,
    line_id: uuid.UUID,
    actor: ActorContext = Depends(require_roles(RmsRole.RETURNS_AGENT)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    return RmaResponse.model_validate(await svc.remove_line(rma_id, line_id, actor))


@router.post("/{rma_id}/lines/{line_id}/split", response_model=RmaResponse)
async def split_line(
    rma_id: uuid.UUID,
    line_id: uuid.UUID,
    body: LineSplitRequest,
    actor: ActorContext = Depends(require_roles(RmsRole.RETURNS_AGENT)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    """Split one line into several whose quantities sum to the original."""
    splits = [split.model_dump(exclude_none=True) for split in body.splits]
    return RmaResponse.model_validate(await svc.split_line(rma_id, line_id, splits, actor))


@router.post("/{rma_id}/lines/{line_id}/receive", response_model=RmaResponse)
async def record_receipt(
    rma_id: uuid.UUID,
    line_id: uuid.UUID,
    body: ReceiptRequest,
    actor: ActorContext = Depends(require_roles(RmsRole.WAREHOUSE)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    rma = await svc.record_receipt(rma_id, line_id, body.received_qty, actor)
    return RmaResponse.model_validate(rma)


@router.post("/{rma_id}/lines/{line_id}/qc-inspection", response_model=RmaResponse)
async def record_qc_inspection(
    rma_id: uuid.UUID,
    line_id: uuid.UUID,
    body: QcInspectionRequest,
    actor: ActorContext = Depends(require_roles(RmsRole.QC)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    rma = await svc.record_qc_inspection(
        rma_id,
        line_id,
        body.inspected_qty,
        actor,
        qc_pass=body.qc_pass,
        qc_findings=body.qc_findings,
        qc_disposition_recommendation=body.qc_disposition_recommendation,
    )
    return RmaResponse.model_validate(rma)


@router.post("/{rma_id}/lines/{line_id}/approve-credit", response_model=RmaResponse)
async def approve_line_credit(
    rma_id: uuid.UUID,
    line_id: uuid.UUID,
    actor: ActorContext = Depends(require_roles(RmsRole.FINANCE)),
    svc: RmaLifecycleService = Depends(get_lifecycle_service),
):
    return RmaResponse.model_validate(await svc.approve_line_credit(rma_id, line_id, actor))
