"""
Case Queue - follow-up work handed from the bot to city staff.
Escalations and submitted issue reports are queued here for agents.
"""

from datetime import datetime, timezone
from typing import Callable
from uuid import UUID, uuid4

import structlog

from civic_assistant.models import Case, CaseKind, CaseStatus

logger = structlog.get_logger(__name__)

# Escalations are served before reports
KIND_PRIORITY = {
    CaseKind.ESCALATION: 2,
    CaseKind.ISSUE_REPORT: 1,
}


def new_report_reference() -> str:
    """Reference number quoted back to the citizen for a submitted report."""
    return f"RPT-{uuid4().hex[:10].upper()}"


class CaseQueue:
    """
    In-process queue of cases awaiting staff.
    In production, replace with the city's CRM or a message queue.
    """

    def __init__(self) -> None:
        self._queue: list[Case] = []
        self._handlers: list[Callable[[Case], None]] = []

    def add(self, case: Case) -> int:
        """Add a case, returning its queue position."""
        self._queue.append(case)
        self._queue.sort(key=lambda c: (-KIND_PRIORITY[c.kind], c.created_at))

        for i, item in enumerate(self._queue):
            item.queue_position = i + 1

        logger.info(
            "case_queued",
            case_id=str(case.id),
            kind=case.kind.value,
            reference=case.reference,
            position=case.queue_position,
        )

        # Listeners run after the case is committed; their failures are only logged
        for handler in self._handlers:
            try:
                handler(case)
            except Exception as e:
                logger.warning(
                    "case_handler_failed",
                    case_id=str(case.id),
                    handler=getattr(handler, "__name__", repr(handler)),
                    error=str(e),
                )

        return case.queue_position

    def get_next(self) -> Case | None:
        """Take the highest priority case for an agent."""
        if not self._queue:
            return None
        case = self._queue.pop(0)
        case.status = CaseStatus.ASSIGNED
        case.assigned_at = datetime.now(timezone.utc)
        case.queue_position = None
        for i, item in enumerate(self._queue):
            item.queue_position = i + 1
        return case

    def get_by_id(self, case_id: UUID) -> Case | None:
        return next((c for c in self._queue if c.id == case_id), None)

    def get_by_reference(self, reference: str) -> Case | None:
        return next((c for c in self._queue if c.reference == reference), None)

    def list_cases(self, kind: CaseKind | None = None) -> list[Case]:
        """Queued cases in service order."""
        return [c for c in self._queue if kind is None or c.kind == kind]

    def on_new_case(self, handler: Callable[[Case], None]) -> None:
        """Register handler for new cases."""
        self._handlers.append(handler)

    @property
    def size(self) -> int:
        return len(self._queue)

    def get_stats(self) -> dict:
        """Get queue statistics."""
        by_kind: dict[str, int] = {}
        for case in self._queue:
            by_kind[case.kind.value] = by_kind.get(case.kind.value, 0) + 1

        return {
            "total": len(self._queue),
            "by_kind": by_kind,
        }
