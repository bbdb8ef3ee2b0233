"""
Actions chosen by the dialogue state machine.

Each action is a small immutable value; the orchestrator executes it and
renders the reply. The state machine itself never performs I/O.
"""

from dataclasses import dataclass, field
from typing import ClassVar

from civic_assistant.models import FlowName


@dataclass(frozen=True)
class StatusLookup:
    """Look up a service request and report its status."""

    kind: ClassVar[str] = "status_lookup"

    request_number: str


@dataclass(frozen=True)
class AskRequestNumber:
    """Ask the user for their service request number."""

    kind: ClassVar[str] = "ask_request_number"

    rejected_value: str | None = None  # Malformed number the user supplied, if any


@dataclass(frozen=True)
class PromptSlot:
    """Prompt for the next slot of a flow, or re-prompt with guidance after invalid input."""

    kind: ClassVar[str] = "prompt_slot"

    flow: FlowName
    slot_name: str
    prompt: str
    guidance: str | None = None
    restarted: bool = False

    @property
    def is_retry(self) -> bool:
        return self.guidance is not None


@dataclass(frozen=True)
class ConfirmReport:
    """Present the collected data with a confirm/restart choice."""

    kind: ClassVar[str] = "confirm_report"

    flow: FlowName
    slots: dict[str, str] = field(default_factory=dict)
    reminder: bool = False


@dataclass(frozen=True)
class SubmitReport:
    """Submit the completed flow and acknowledge it."""

    kind: ClassVar[str] = "submit_report"

    flow: FlowName
    slots: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Escalate:
    """Hand off to a human channel with contact info and ticket confirmation."""

    kind: ClassVar[str] = "escalate"

    ticket_id: str
    new_ticket: bool = True
    interrupted_flow: FlowName | None = None


@dataclass(frozen=True)
class InformationalReply:
    """Static informational response keyed by topic."""

    kind: ClassVar[str] = "informational_reply"

    topic: str


@dataclass(frozen=True)
class Clarify:
    """Ask the user to rephrase; offered when the message could not be routed."""

    kind: ClassVar[str] = "clarify"

    reason: str  # "low_confidence" or "unrecognized"


Action = (
    StatusLookup
    | AskRequestNumber
    | PromptSlot
    | ConfirmReport
    | SubmitReport
    | Escalate
    | InformationalReply
    | Clarify
)
