"""Unit tests for session and dialogue state models."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from civic_assistant.models import (
    Classification,
    ConversationTurn,
    DialogueState,
    FlowName,
    Intent,
    Session,
    StateKind,
    TurnRole,
)
from tests.conftest import T0, make_session


class TestDialogueState:
    """Tests for state parameter rules."""

    def test_awaiting_slot_carries_flow_and_index(self) -> None:
        state = DialogueState.awaiting_slot(FlowName.REPORT_ISSUE, 1)
        assert state.kind == StateKind.AWAITING_SLOT
        assert state.in_flow
        assert state.describe() == "AWAITING_SLOT(REPORT_ISSUE, 1)"

    def test_ready_to_confirm_requires_flow(self) -> None:
        with pytest.raises(ValidationError):
            DialogueState(kind=StateKind.READY_TO_CONFIRM)

    def test_idle_cannot_carry_flow(self) -> None:
        with pytest.raises(ValidationError):
            DialogueState(kind=StateKind.IDLE, flow=FlowName.REPORT_ISSUE)

    def test_slot_index_only_while_awaiting_slot(self) -> None:
        with pytest.raises(ValidationError):
            DialogueState(kind=StateKind.READY_TO_CONFIRM, flow=FlowName.REPORT_ISSUE, slot_index=0)

    def test_sub_prompt_only_in_idle(self) -> None:
        assert DialogueState.idle(awaiting="request_number").awaiting == "request_number"
        with pytest.raises(ValidationError):
            DialogueState(kind=StateKind.ESCALATED, awaiting="request_number")

    def test_states_outside_flows(self) -> None:
        for state in (DialogueState.idle(), DialogueState.escalated(), DialogueState.completed()):
            assert not state.in_flow


class TestClassification:
    """Tests for classifier output validation."""

    def test_confidence_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Classification(intent=Intent.GREETING, confidence=1.2)
        with pytest.raises(ValidationError):
            Classification(intent=Intent.GREETING, confidence=-0.1)


class TestSessionInvariants:
    """Tests for the session model's structural invariants."""

    def test_new_session_is_idle(self) -> None:
        session = Session.new("user-1", T0)
        assert session.state.kind == StateKind.IDLE
        assert session.active_flow is None
        assert session.slots == {}
        assert session.created_at == session.last_interaction_at == T0

    def test_active_flow_required_in_flow(self) -> None:
        with pytest.raises(ValidationError):
            Session(
                user_id="user-1",
                state=DialogueState.awaiting_slot(FlowName.REPORT_ISSUE, 0),
                created_at=T0,
                last_interaction_at=T0,
            )

    def test_active_flow_forbidden_outside_flow(self) -> None:
        with pytest.raises(ValidationError):
            Session(
                user_id="user-1",
                active_flow=FlowName.REPORT_ISSUE,
                created_at=T0,
                last_interaction_at=T0,
            )

    def test_undeclared_slot_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_session(
                state=DialogueState.awaiting_slot(FlowName.REPORT_ISSUE, 0),
                slots={"favourite_colour": "blue"},
            )

    def test_empty_slot_value_rejected(self) -> None:
        with pytest.raises(ValidationError):
            make_session(
                state=DialogueState.awaiting_slot(FlowName.REPORT_ISSUE, 1),
                slots={"issue_type": ""},
            )

    def test_preserved_slots_allowed_without_flow(self) -> None:
        session = make_session(state=DialogueState.escalated(), slots={"issue_type": "pothole"})
        assert session.slots == {"issue_type": "pothole"}

    def test_evolve_validates_changes(self) -> None:
        session = make_session()
        with pytest.raises(ValidationError):
            session.evolve(state=DialogueState.ready_to_confirm(FlowName.REPORT_ISSUE))

    def test_evolve_leaves_original_untouched(self) -> None:
        session = make_session()
        evolved = session.evolve(ticket_id="ESC-1")
        assert session.ticket_id is None
        assert evolved.ticket_id == "ESC-1"


class TestSessionHistory:
    """Tests for touch and bounded history."""

    def test_touch_never_moves_backwards(self) -> None:
        session = make_session(at=T0)
        assert session.touch(T0 + timedelta(minutes=5)).last_interaction_at == T0 + timedelta(minutes=5)
        assert session.touch(T0 - timedelta(minutes=5)).last_interaction_at == T0

    def test_history_keeps_newest_turns(self) -> None:
        session = make_session()
        turns = [
            ConversationTurn(role=TurnRole.USER, text=f"message {i}", timestamp=T0)
            for i in range(12)
        ]
        bounded = session.with_turns(turns, window=10)
        assert len(bounded.history) == 10
        assert bounded.history[0].text == "message 2"
        assert bounded.history[-1].text == "message 11"
