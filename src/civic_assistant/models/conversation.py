"""
Conversation and session data models.
These models represent the per-user dialogue state persisted between turns.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Intent(str, Enum):
    """Intents produced by the classifier."""

    STATUS_CHECK = "STATUS_CHECK"
    REPORT_ISSUE = "REPORT_ISSUE"
    GENERAL_INQUIRY = "GENERAL_INQUIRY"
    GREETING = "GREETING"
    ESCALATE = "ESCALATE"

    # Replies to a confirmation prompt
    CONFIRM = "CONFIRM"
    RESTART = "RESTART"

    UNKNOWN = "UNKNOWN"


class FlowName(str, Enum):
    """Multi-turn slot-filling flows."""

    REPORT_ISSUE = "REPORT_ISSUE"


class StateKind(str, Enum):
    """Dialogue state machine states."""

    IDLE = "IDLE"
    AWAITING_SLOT = "AWAITING_SLOT"
    READY_TO_CONFIRM = "READY_TO_CONFIRM"
    ESCALATED = "ESCALATED"
    COMPLETED = "COMPLETED"


IN_FLOW_STATES = frozenset({StateKind.AWAITING_SLOT, StateKind.READY_TO_CONFIRM})


class DialogueState(BaseModel):
    """
    Current position in the dialogue.

    AWAITING_SLOT is parameterized by flow and slot index, READY_TO_CONFIRM by
    flow. IDLE may carry a sub-prompt marker (e.g. "request_number") when the
    bot has asked a follow-up question outside any flow.
    """

    model_config = ConfigDict(frozen=True)

    kind: StateKind = StateKind.IDLE
    flow: FlowName | None = None
    slot_index: int | None = Field(default=None, ge=0)
    awaiting: str | None = None

    @model_validator(mode="after")
    def check_parameters(self) -> "DialogueState":
        if self.kind in IN_FLOW_STATES and self.flow is None:
            raise ValueError(f"{self.kind.value} requires a flow")
        if self.kind not in IN_FLOW_STATES and self.flow is not None:
            raise ValueError(f"{self.kind.value} cannot carry a flow")
        if (self.kind == StateKind.AWAITING_SLOT) != (self.slot_index is not None):
            raise ValueError("slot_index is set only while awaiting a slot")
        if self.awaiting is not None and self.kind != StateKind.IDLE:
            raise ValueError("sub-prompts only exist in IDLE")
        return self

    @classmethod
    def idle(cls, awaiting: str | None = None) -> "DialogueState":
        return cls(kind=StateKind.IDLE, awaiting=awaiting)

    @classmethod
    def awaiting_slot(cls, flow: FlowName, slot_index: int) -> "DialogueState":
        return cls(kind=StateKind.AWAITING_SLOT, flow=flow, slot_index=slot_index)

    @classmethod
    def ready_to_confirm(cls, flow: FlowName) -> "DialogueState":
        return cls(kind=StateKind.READY_TO_CONFIRM, flow=flow)

    @classmethod
    def escalated(cls) -> "DialogueState":
        return cls(kind=StateKind.ESCALATED)

    @classmethod
    def completed(cls) -> "DialogueState":
        return cls(kind=StateKind.COMPLETED)

    @property
    def in_flow(self) -> bool:
        return self.kind in IN_FLOW_STATES

    def describe(self) -> str:
        """Compact label for logs, e.g. AWAITING_SLOT(REPORT_ISSUE, 1)."""
        if self.kind == StateKind.AWAITING_SLOT:
            return f"{self.kind.value}({self.flow.value}, {self.slot_index})"
        if self.kind == StateKind.READY_TO_CONFIRM:
            return f"{self.kind.value}({self.flow.value})"
        return self.kind.value


class Classification(BaseModel):
    """Intent classification result from the classifier collaborator."""

    intent: Intent
    entities: dict[str, str] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0)


class TurnRole(str, Enum):
    """Role in conversation turn."""

    USER = "user"
    BOT = "bot"


class ConversationTurn(BaseModel):
    """Single turn in conversation history."""

    role: TurnRole
    text: str
    timestamp: datetime


class Session(BaseModel):
    """Per-user conversation state, one per user_id."""

    user_id: str = Field(min_length=1)
    state: DialogueState = Field(default_factory=DialogueState)
    active_flow: FlowName | None = None
    slots: dict[str, str] = Field(default_factory=dict)
    history: list[ConversationTurn] = Field(default_factory=list)
    created_at: datetime
    last_interaction_at: datetime
    ticket_id: str | None = None

    @model_validator(mode="after")
    def check_invariants(self) -> "Session":
        # Deferred import: the flow registry itself depends on these models
        from civic_assistant.core.flows import declared_slot_names

        if self.state.in_flow != (self.active_flow is not None):
            raise ValueError(
                f"active_flow={self.active_flow} inconsistent with state {self.state.describe()}"
            )
        if self.active_flow is not None and self.state.flow != self.active_flow:
            raise ValueError("active_flow does not match the state's flow")

        allowed = declared_slot_names(self.active_flow)
        unknown = set(self.slots) - allowed
        if unknown:
            raise ValueError(f"undeclared slots: {sorted(unknown)}")
        if any(not value for value in self.slots.values()):
            raise ValueError("slots must not hold empty placeholders")
        return self

    @classmethod
    def new(cls, user_id: str, now: datetime) -> "Session":
        """Create a fresh IDLE session."""
        return cls(user_id=user_id, created_at=now, last_interaction_at=now)

    def evolve(self, **changes: Any) -> "Session":
        """Return a validated copy with the given fields replaced."""
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)

    def touch(self, now: datetime) -> "Session":
        """Return a copy whose last interaction is now, never moving backwards."""
        return self.evolve(last_interaction_at=max(self.last_interaction_at, now))

    def with_turns(self, turns: list[ConversationTurn], window: int) -> "Session":
        """Return a copy with turns appended and history bounded to the window."""
        history = [*self.history, *turns][-window:]
        return self.evolve(history=history)


class QuickReply(BaseModel):
    """Button offered alongside a reply."""

    title: str
    payload: str


class ReplyDirective(BaseModel):
    """Outbound reply for the delivery channel to render and send."""

    text: str
    quick_replies: list[QuickReply] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)
