"""
FastAPI Router for Pending Signal Review Endpoints.

Provides REST API for the manual approval workflow:
- List and count pending signals
- Approve (executes in the background)
- Reject
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from api.dependencies import get_services, require_admin
from human_review.schemas import (
    PendingCountResponse,
    PendingSignalList,
    PendingSignalResponse,
    PendingStatusEnum,
    ReviewDecision,
    ReviewResult,
)

router = APIRouter(
    prefix="/admin/pending-signals",
    tags=["Pending Signals"],
    dependencies=[Depends(require_admin)],
)


# =============================================================
# QUEUE VIEW
# =============================================================

@router.get("", response_model=PendingSignalList)
def list_pending_signals(
    status: Optional[PendingStatusEnum] = Query(None),
    strategy_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    services=Depends(get_services),
):
    """Pending signals of any status, newest first."""
    rows = services.pending.list(
        status=status.value if status else None,
        strategy_id=strategy_id,
        limit=limit,
    )
    signals = [PendingSignalResponse.from_row(r["pending"], r["strategy_name"]) for r in rows]
    return PendingSignalList(count=len(signals), signals=signals)


@router.get("/count", response_model=PendingCountResponse)
def count_pending_signals(
    strategy_id: Optional[int] = Query(None),
    services=Depends(get_services),
):
    return PendingCountResponse(count=services.pending.count_pending(strategy_id))


# =============================================================
# DECISIONS
# =============================================================

@router.post("/{pending_id}/approve", response_model=ReviewResult)
async def approve_pending_signal(
    pending_id: int,
    decision: Optional[ReviewDecision] = Body(None),
    services=Depends(get_services),
):
    """
    Approve a pending signal.

    Execution runs in the background; poll the signal for the
    resulting order or failure.
    """
    reviewer = decision.reviewed_by if decision else None
    pending = await services.pending.approve(pending_id, reviewer or "admin")
    return ReviewResult(
        message="Signal approved and queued for execution"
        if pending.status == PendingStatusEnum.APPROVED.value
        else f"Signal already {pending.status}",
        signal=PendingSignalResponse.from_row(pending),
    )


@router.post("/{pending_id}/reject", response_model=ReviewResult)
def reject_pending_signal(
    pending_id: int,
    decision: Optional[ReviewDecision] = Body(None),
    services=Depends(get_services),
):
    reviewer = decision.reviewed_by if decision else None
    pending = services.pending.reject(pending_id, reviewer or "admin")
    return ReviewResult(
        message="Signal rejected"
        if pending.status == PendingStatusEnum.REJECTED.value
        else f"Signal already {pending.status}",
        signal=PendingSignalResponse.from_row(pending),
    )
