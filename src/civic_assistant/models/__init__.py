"""Data models for the civic assistant."""

from civic_assistant.models.case import Case, CaseKind, CaseStatus
from civic_assistant.models.conversation import (
    Classification,
    ConversationTurn,
    DialogueState,
    FlowName,
    Intent,
    QuickReply,
    ReplyDirective,
    Session,
    StateKind,
    TurnRole,
)
from civic_assistant.models.service_request import ServiceRequestFilter, ServiceRequestRecord

__all__ = [
    # Conversation models
    "Classification",
    "ConversationTurn",
    "DialogueState",
    "FlowName",
    "Intent",
    "QuickReply",
    "ReplyDirective",
    "Session",
    "StateKind",
    "TurnRole",
    # Service request models
    "ServiceRequestFilter",
    "ServiceRequestRecord",
    # Case models
    "Case",
    "CaseKind",
    "CaseStatus",
]
