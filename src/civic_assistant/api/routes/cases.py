"""
Case API routes for the staff dashboard.
Lists escalations and submitted reports waiting for city staff.
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from civic_assistant.core.orchestrator import ConversationOrchestrator, get_orchestrator
from civic_assistant.models import Case, CaseKind

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/cases", tags=["Cases"])


class CaseSummaryResponse(BaseModel):
    """Case summary for API response."""

    id: str
    kind: str
    reference: str
    user_id: str
    flow: str | None
    slots: dict[str, str]
    status: str
    queue_position: int | None
    created_at: str


class QueueStatsResponse(BaseModel):
    """Queue statistics."""

    total: int
    by_kind: dict[str, int]


def _summarize(case: Case) -> CaseSummaryResponse:
    return CaseSummaryResponse(
        id=str(case.id),
        kind=case.kind.value,
        reference=case.reference,
        user_id=case.user_id,
        flow=case.flow.value if case.flow else None,
        slots=case.slots,
        status=case.status.value,
        queue_position=case.queue_position,
        created_at=case.created_at.isoformat(),
    )


@router.get("", response_model=list[CaseSummaryResponse])
async def list_cases(
    kind: CaseKind | None = None,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
):
    """
    Get all queued cases.

    Returns escalations first, then reports, each oldest first.
    """
    return [_summarize(case) for case in orchestrator.case_queue.list_cases(kind)]


@router.get("/stats", response_model=QueueStatsResponse)
async def get_case_stats(orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    """Get queue statistics."""
    stats = orchestrator.case_queue.get_stats()
    return QueueStatsResponse(total=stats["total"], by_kind=stats["by_kind"])


@router.get("/{case_id}")
async def get_case(case_id: UUID, orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    """Get a queued case with its transcript."""
    case = orchestrator.case_queue.get_by_id(case_id)
    if case is None:
        raise HTTPException(status_code=404, detail="Case not found")
    return case.model_dump(mode="json")


@router.post("/next")
async def assign_next_case(orchestrator: ConversationOrchestrator = Depends(get_orchestrator)):
    """Take the highest-priority case for an agent."""
    case = orchestrator.case_queue.get_next()
    if case is None:
        raise HTTPException(status_code=404, detail="No cases queued")

    logger.info("case_assigned", case_id=str(case.id), kind=case.kind.value, reference=case.reference)
    return case.model_dump(mode="json")
