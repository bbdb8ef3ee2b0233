"""
Case models for work handed to city staff.
A case is either an escalation to a human agent or a submitted issue report.
"""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from civic_assistant.models.conversation import ConversationTurn, FlowName


class CaseKind(str, Enum):
    """Kind of follow-up work."""

    ESCALATION = "escalation"
    ISSUE_REPORT = "issue_report"


class CaseStatus(str, Enum):
    """Status of a queued case."""

    QUEUED = "queued"
    ASSIGNED = "assigned"
    RESOLVED = "resolved"


class Case(BaseModel):
    """Queued follow-up for city staff."""

    id: UUID = Field(default_factory=uuid4)
    kind: CaseKind
    user_id: str
    reference: str  # Ticket id for escalations, report reference for reports
    flow: FlowName | None = None
    slots: dict[str, str] = Field(default_factory=dict)
    transcript: list[ConversationTurn] = Field(default_factory=list)
    status: CaseStatus = CaseStatus.QUEUED
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    assigned_at: datetime | None = None
    queue_position: int | None = None
