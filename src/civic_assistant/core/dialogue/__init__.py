"""Dialogue state machine and the actions it selects."""

from civic_assistant.core.dialogue.actions import (
    Action,
    AskRequestNumber,
    Clarify,
    ConfirmReport,
    Escalate,
    InformationalReply,
    PromptSlot,
    StatusLookup,
    SubmitReport,
)
from civic_assistant.core.dialogue.state_machine import (
    AWAITING_REQUEST_NUMBER,
    CONFIRM_PAYLOAD,
    PAYLOAD_INTENTS,
    RESTART_PAYLOAD,
    DialoguePolicy,
    Transition,
    new_ticket_id,
    transition,
)

__all__ = [
    # Actions
    "Action",
    "AskRequestNumber",
    "Clarify",
    "ConfirmReport",
    "Escalate",
    "InformationalReply",
    "PromptSlot",
    "StatusLookup",
    "SubmitReport",
    # State machine
    "AWAITING_REQUEST_NUMBER",
    "CONFIRM_PAYLOAD",
    "PAYLOAD_INTENTS",
    "RESTART_PAYLOAD",
    "DialoguePolicy",
    "Transition",
    "new_ticket_id",
    "transition",
]
