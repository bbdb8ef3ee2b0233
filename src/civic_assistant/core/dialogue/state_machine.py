"""
Dialogue State Machine - pure decision function for one conversational turn.

transition(session, classification, text) -> (next session, action)

The function is synchronous, total and side-effect free: it never mutates the
session it is given and never calls a collaborator.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, NamedTuple
from uuid import uuid4

from civic_assistant.config import Settings
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
from civic_assistant.core.errors import InvalidSlotValue
from civic_assistant.core.flows import FlowSchema, get_flow_schema
from civic_assistant.models import (
    Classification,
    DialogueState,
    FlowName,
    Intent,
    Session,
    StateKind,
)

AWAITING_REQUEST_NUMBER = "request_number"

# Replies accepted at the confirmation step; quick-reply payloads match exactly
CONFIRM_PAYLOAD = "CONFIRM"
RESTART_PAYLOAD = "RESTART"
AFFIRMATIVE_REPLIES = frozenset({
    "yes", "y", "yep", "yeah", "sure", "ok", "okay", "confirm", "submit",
    "correct", "that's right", "looks good", "send it",
})
RESTART_REPLIES = frozenset({
    "no", "n", "nope", "restart", "start over", "redo", "change", "edit",
})

# Quick-reply payloads that carry their intent directly; never accepted as slot values
PAYLOAD_INTENTS: dict[str, Intent] = {
    intent.value: intent
    for intent in (Intent.STATUS_CHECK, Intent.REPORT_ISSUE, Intent.ESCALATE, Intent.CONFIRM, Intent.RESTART)
}

# Intents that start a flow, keyed to the flow they start
FLOW_INTENTS: dict[Intent, FlowName] = {
    Intent.REPORT_ISSUE: FlowName.REPORT_ISSUE,
}


def new_ticket_id() -> str:
    """Globally unique escalation ticket id."""
    return f"ESC-{uuid4().hex.upper()}"


@dataclass(frozen=True)
class DialoguePolicy:
    """Thresholds and factories the transition function depends on."""

    low_confidence_threshold: float = 0.5
    mid_flow_override_threshold: float = 0.75
    request_number_pattern: str = r"^\d{2}-\d{8}$"
    ticket_factory: Callable[[], str] = field(default=new_ticket_id)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DialoguePolicy":
        conversation = settings.conversation
        return cls(
            low_confidence_threshold=conversation.low_confidence_threshold,
            mid_flow_override_threshold=conversation.mid_flow_override_threshold,
            request_number_pattern=conversation.request_number_pattern,
        )

    def is_request_number(self, value: str | None) -> bool:
        return bool(value) and re.match(self.request_number_pattern, value.strip()) is not None

    def escalation_threshold(self, state: DialogueState) -> float:
        """Confidence an ESCALATE needs in the given state."""
        if state.in_flow:
            return self.mid_flow_override_threshold
        return self.low_confidence_threshold


class Transition(NamedTuple):
    """Result of one transition."""

    session: Session
    action: Action


def transition(
    session: Session,
    classification: Classification,
    text: str,
    policy: DialoguePolicy | None = None,
) -> Transition:
    """
    Decide the next session state and action for one turn.

    Args:
        session: Session as loaded at the start of the turn
        classification: Classifier output for this message
        text: Raw message text, used as the slot value while a flow awaits one
        policy: Thresholds and ticket factory

    Returns:
        Transition with the new session and the action to execute
    """
    policy = policy or DialoguePolicy()
    state = session.state

    # 1. Escalation pre-empts everything, including an in-progress flow
    if (
        classification.intent == Intent.ESCALATE
        and classification.confidence >= policy.escalation_threshold(state)
    ):
        return _escalate(session, policy)

    # 2. Inside a flow, the flow wins over any other intent
    if state.kind == StateKind.AWAITING_SLOT:
        return _continue_flow(session, classification, text)
    if state.kind == StateKind.READY_TO_CONFIRM:
        return _resolve_confirmation(session, classification, text, policy)

    # 3. IDLE, or a closed ESCALATED/COMPLETED turn being resumed
    return _route_idle(session, classification, text, policy)


def _escalate(session: Session, policy: DialoguePolicy) -> Transition:
    ticket_id = session.ticket_id or policy.ticket_factory()
    # Partially collected slots stay in place so the user can resume later
    escalated = session.evolve(
        state=DialogueState.escalated(),
        active_flow=None,
        ticket_id=ticket_id,
    )
    return Transition(
        escalated,
        Escalate(
            ticket_id=ticket_id,
            new_ticket=session.ticket_id is None,
            interrupted_flow=session.active_flow,
        ),
    )


def _route_idle(
    session: Session,
    classification: Classification,
    text: str,
    policy: DialoguePolicy,
) -> Transition:
    intent = classification.intent
    entities = classification.entities
    idle = session.evolve(state=DialogueState.idle())

    # A pending "what's your request number?" accepts a bare number whatever the intent
    if session.state.awaiting == AWAITING_REQUEST_NUMBER:
        number = _request_number_from(classification, text, policy)
        if number:
            return Transition(idle, StatusLookup(request_number=number))

    if classification.confidence < policy.low_confidence_threshold:
        return Transition(idle, Clarify(reason="low_confidence"))

    if intent == Intent.STATUS_CHECK:
        number = entities.get("request_number")
        if policy.is_request_number(number):
            return Transition(idle, StatusLookup(request_number=number.strip()))
        asking = session.evolve(state=DialogueState.idle(awaiting=AWAITING_REQUEST_NUMBER))
        return Transition(asking, AskRequestNumber(rejected_value=number or None))

    if intent in FLOW_INTENTS:
        return _start_flow(session, classification, FLOW_INTENTS[intent])

    if intent == Intent.GREETING:
        return Transition(idle, InformationalReply(topic=entities.get("topic") or "greeting"))

    if intent == Intent.GENERAL_INQUIRY:
        return Transition(idle, InformationalReply(topic=entities.get("topic") or "general"))

    return Transition(idle, Clarify(reason="unrecognized"))


def _request_number_from(
    classification: Classification,
    text: str,
    policy: DialoguePolicy,
) -> str | None:
    for candidate in (classification.entities.get("request_number"), text):
        if policy.is_request_number(candidate):
            return candidate.strip()
    return None


def _start_flow(session: Session, classification: Classification, flow: FlowName) -> Transition:
    schema = get_flow_schema(flow)
    slots = {name: value for name, value in session.slots.items() if name in schema.slot_names}
    slots = _fill_from_entities(schema, slots, classification.entities)
    return _advance(session, schema, slots)


def _continue_flow(session: Session, classification: Classification, text: str) -> Transition:
    schema = get_flow_schema(session.active_flow)
    current = schema.slot_at(session.state.slot_index)
    slots = dict(session.slots)

    if current.name not in slots:
        # An extracted entity for the prompted slot is preferred over the raw reply
        raw = None if text.strip() in PAYLOAD_INTENTS else text
        candidates = [v for v in (classification.entities.get(current.name), raw) if v]
        error: InvalidSlotValue | None = None
        for candidate in candidates:
            try:
                slots = schema.fill(slots, current.name, candidate)
                error = None
                break
            except InvalidSlotValue as e:
                error = error or e

        if current.name not in slots:
            guidance = error.guidance if error else current.guidance or current.prompt
            return Transition(
                session,
                PromptSlot(
                    flow=schema.flow,
                    slot_name=current.name,
                    prompt=current.prompt,
                    guidance=guidance,
                ),
            )

    slots = _fill_from_entities(schema, slots, classification.entities)
    return _advance(session, schema, slots)


def _fill_from_entities(schema: FlowSchema, slots: dict[str, str], entities: dict[str, str]) -> dict[str, str]:
    """Opportunistically fill any unfilled slot the classifier already extracted."""
    for name in schema.slot_names:
        value = entities.get(name)
        if not value or name in slots:
            continue
        try:
            slots = schema.fill(slots, name, value)
        except InvalidSlotValue:
            # The slot will be prompted for explicitly
            continue
    return slots


def _advance(session: Session, schema: FlowSchema, slots: dict[str, str]) -> Transition:
    index = schema.first_unfilled_index(slots)
    if index is None:
        ready = session.evolve(
            state=DialogueState.ready_to_confirm(schema.flow),
            active_flow=schema.flow,
            slots=slots,
        )
        return Transition(ready, ConfirmReport(flow=schema.flow, slots=dict(slots)))

    slot = schema.slot_at(index)
    awaiting = session.evolve(
        state=DialogueState.awaiting_slot(schema.flow, index),
        active_flow=schema.flow,
        slots=slots,
    )
    return Transition(awaiting, PromptSlot(flow=schema.flow, slot_name=slot.name, prompt=slot.prompt))


def _resolve_confirmation(
    session: Session,
    classification: Classification,
    text: str,
    policy: DialoguePolicy,
) -> Transition:
    schema = get_flow_schema(session.active_flow)
    reply = _confirmation_choice(classification, text, policy)

    if reply == Intent.CONFIRM:
        completed = session.evolve(
            state=DialogueState.completed(),
            active_flow=None,
            slots={},
        )
        return Transition(completed, SubmitReport(flow=schema.flow, slots=dict(session.slots)))

    if reply == Intent.RESTART:
        first = schema.slot_at(0)
        restarted = session.evolve(
            state=DialogueState.awaiting_slot(schema.flow, 0),
            active_flow=schema.flow,
            slots={},
        )
        return Transition(
            restarted,
            PromptSlot(flow=schema.flow, slot_name=first.name, prompt=first.prompt, restarted=True),
        )

    return Transition(session, ConfirmReport(flow=schema.flow, slots=dict(session.slots), reminder=True))


def _confirmation_choice(
    classification: Classification,
    text: str,
    policy: DialoguePolicy,
) -> Intent | None:
    normalized = " ".join(text.lower().strip(" .!").split())

    if text.strip() == CONFIRM_PAYLOAD or normalized in AFFIRMATIVE_REPLIES:
        return Intent.CONFIRM
    if text.strip() == RESTART_PAYLOAD or normalized in RESTART_REPLIES:
        return Intent.RESTART

    if classification.confidence >= policy.low_confidence_threshold:
        if classification.intent in (Intent.CONFIRM, Intent.RESTART):
            return classification.intent
    return None
