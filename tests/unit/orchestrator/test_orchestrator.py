"""Unit tests for the conversation orchestrator."""

import asyncio
from datetime import timedelta

import httpx
import pytest

from civic_assistant.config import ConversationSettings, Settings
from civic_assistant.core.dialogue import DialoguePolicy
from civic_assistant.core.errors import StoreUnavailable
from civic_assistant.core.handoff import CaseQueue
from civic_assistant.core.orchestrator import ConversationOrchestrator
from civic_assistant.core.session import InMemorySessionStore
from civic_assistant.models import (
    CaseKind,
    DialogueState,
    FlowName,
    Intent,
    StateKind,
    TurnRole,
)
from civic_assistant.services.classifier import PatternIntentClassifier
from civic_assistant.services.open_data import OpenDataClient
from tests.conftest import FakeClassifier, FakeClock, FakeDataService, classification, make_session


class FailingStore(InMemorySessionStore):
    """Store whose backend is down."""

    async def get(self, user_id, now):
        raise StoreUnavailable("redis down")


class BrokenQueue(CaseQueue):
    """Case queue that cannot accept work."""

    def add(self, case):
        raise RuntimeError("crm unreachable")


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def data_service(pothole_record) -> FakeDataService:
    return FakeDataService([pothole_record])


@pytest.fixture
def settings() -> Settings:
    return Settings(conversation=ConversationSettings(classifier_timeout_seconds=0.2, lookup_timeout_seconds=0.2))


@pytest.fixture
def build(store, data_service, settings, clock: FakeClock):
    """Factory for orchestrators sharing the fixtures' store and clock."""

    def _build(classifier=None, **overrides) -> ConversationOrchestrator:
        params = dict(
            store=store,
            classifier=classifier or PatternIntentClassifier(),
            data_service=data_service,
            settings=settings,
            clock=clock,
            policy=DialoguePolicy(ticket_factory=lambda: "ESC-TEST"),
        )
        params.update(overrides)
        return ConversationOrchestrator(**params)

    return _build


class TestStatusScenarios:
    """Status lookups end to end."""

    async def test_status_found(self, build, data_service) -> None:
        orchestrator = build(FakeClassifier(
            lambda text: classification(Intent.STATUS_CHECK, 0.95, request_number="25-00105756")
        ))

        result = await orchestrator.handle_turn("user-1", "What's the status of 25-00105756?")

        assert data_service.lookups == ["25-00105756"]
        assert "Street Condition - Pothole" in result.directive.text
        assert "123 MAIN STREET" in result.directive.text
        assert "In Progress" in result.directive.text
        assert result.session.state.kind == StateKind.IDLE

    async def test_status_not_found(self, build, store, clock) -> None:
        orchestrator = build(FakeClassifier(
            lambda text: classification(Intent.STATUS_CHECK, 0.95, request_number="99-99999999")
        ))

        directive = await orchestrator.handle_message("user-1", "status of 99-99999999")

        assert "couldn't find" in directive.text
        assert "99-99999999" in directive.text
        assert "try again" in directive.text
        assert (await store.get("user-1", clock())).state == DialogueState.idle()

    async def test_lookup_unavailable_degrades(self, build, data_service) -> None:
        data_service.failures = 2
        orchestrator = build(FakeClassifier(
            lambda text: classification(Intent.STATUS_CHECK, 0.95, request_number="25-00105756")
        ))

        directive = await orchestrator.handle_message("user-1", "status 25-00105756")

        assert "couldn't check that right now" in directive.text
        assert len(data_service.lookups) == 2

    async def test_lookup_recovers_on_retry(self, build, data_service) -> None:
        data_service.failures = 1
        orchestrator = build(FakeClassifier(
            lambda text: classification(Intent.STATUS_CHECK, 0.95, request_number="25-00105756")
        ))

        directive = await orchestrator.handle_message("user-1", "status 25-00105756")

        assert "In Progress" in directive.text

    async def test_malformed_record_degrades(self, build) -> None:
        row = {"unique_key": "25-00105756", "status": "Open", "created_date": "not-a-date"}
        http = httpx.AsyncClient(
            base_url="https://data.example.gov",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[row])),
        )
        data_service = OpenDataClient(Settings(), client=http)
        orchestrator = build(data_service=data_service)

        result = await orchestrator.handle_turn("user-1", "What's the status of 25-00105756?")

        assert "couldn't check that right now" in result.directive.text
        assert result.session.state.kind == StateKind.IDLE
        assert len(result.session.history) == 2

    async def test_number_asked_for_then_supplied(self, build) -> None:
        orchestrator = build()

        first = await orchestrator.handle_turn("user-1", "I want to check on my request")
        second = await orchestrator.handle_turn("user-1", "25-00105756")

        assert first.session.state.awaiting == "request_number"
        assert "In Progress" in second.directive.text


class TestReportingScenario:
    """The four-turn issue report."""

    async def test_four_turn_report(self, build, store, clock) -> None:
        queue = CaseQueue()
        orchestrator = build(case_queue=queue)

        turn1 = await orchestrator.handle_turn("user-1", "There's a pothole on 5th Ave")
        assert turn1.session.state == DialogueState.awaiting_slot(FlowName.REPORT_ISSUE, 1)
        assert turn1.session.slots == {"issue_type": "pothole"}

        clock.advance(timedelta(seconds=30))
        turn2 = await orchestrator.handle_turn("user-1", "5th and Pine")
        assert turn2.session.slots["location"] == "5th and Pine"

        clock.advance(timedelta(seconds=30))
        turn3 = await orchestrator.handle_turn("user-1", "About a foot wide, right by the crosswalk")
        assert turn3.session.state == DialogueState.ready_to_confirm(FlowName.REPORT_ISSUE)
        assert "5th and Pine" in turn3.directive.text

        clock.advance(timedelta(seconds=30))
        turn4 = await orchestrator.handle_turn("user-1", "CONFIRM")
        assert turn4.session.state.kind == StateKind.COMPLETED
        assert turn4.session.slots == {}
        assert "reference number is RPT-" in turn4.directive.text

        [case] = queue.list_cases(CaseKind.ISSUE_REPORT)
        assert case.slots == {
            "issue_type": "pothole",
            "location": "5th and Pine",
            "description": "About a foot wide, right by the crosswalk",
        }

        stored = await store.get("user-1", clock())
        assert stored.last_interaction_at == clock()

    async def test_failed_submission_keeps_report(self, build) -> None:
        orchestrator = build(case_queue=BrokenQueue())
        for text in ("There's a pothole on 5th Ave", "5th and Pine", "Deep hole by the curb"):
            await orchestrator.handle_turn("user-1", text)

        result = await orchestrator.handle_turn("user-1", "yes")

        assert "couldn't submit" in result.directive.text
        assert result.session.state == DialogueState.ready_to_confirm(FlowName.REPORT_ISSUE)
        assert result.session.slots["location"] == "5th and Pine"

    async def test_failing_case_listener_files_report_once(self, build) -> None:
        queue = CaseQueue()

        def broken(case) -> None:
            raise RuntimeError("dashboard offline")

        queue.on_new_case(broken)
        orchestrator = build(case_queue=queue)
        for text in ("There's a pothole on 5th Ave", "5th and Pine", "Deep hole by the curb"):
            await orchestrator.handle_turn("user-1", text)

        result = await orchestrator.handle_turn("user-1", "yes")
        await orchestrator.handle_turn("user-1", "yes")

        assert "reference number is RPT-" in result.directive.text
        assert result.session.state.kind == StateKind.COMPLETED
        assert queue.size == 1

    async def test_repeated_report_button_is_not_a_slot_value(self, build) -> None:
        orchestrator = build()

        await orchestrator.handle_turn("user-1", Intent.REPORT_ISSUE.value)
        result = await orchestrator.handle_turn("user-1", Intent.REPORT_ISSUE.value)

        assert result.session.slots == {}
        assert result.session.state == DialogueState.awaiting_slot(FlowName.REPORT_ISSUE, 0)
        assert result.action.kind == "prompt_slot"


class TestEscalationPath:
    """Escalation from inside a flow and with a down classifier."""

    async def test_escalation_mid_flow_files_case(self, build) -> None:
        queue = CaseQueue()
        orchestrator = build(case_queue=queue)

        await orchestrator.handle_turn("user-1", "There's a pothole on 5th Ave")
        result = await orchestrator.handle_turn("user-1", "I want to talk to a real person")

        assert result.session.state.kind == StateKind.ESCALATED
        assert result.session.ticket_id == "ESC-TEST"
        assert result.session.slots == {"issue_type": "pothole"}
        assert "ESC-TEST" in result.directive.text

        [case] = queue.list_cases(CaseKind.ESCALATION)
        assert case.reference == "ESC-TEST"
        assert case.flow == FlowName.REPORT_ISSUE

    async def test_repeat_escalation_does_not_file_twice(self, build) -> None:
        queue = CaseQueue()
        orchestrator = build(case_queue=queue)

        await orchestrator.handle_turn("user-1", "talk to a person")
        await orchestrator.handle_turn("user-1", "talk to a person")

        assert queue.size == 1

    async def test_escalation_reply_survives_queue_failure(self, build) -> None:
        orchestrator = build(case_queue=BrokenQueue())
        result = await orchestrator.handle_turn("user-1", "talk to a person")

        assert "ESC-TEST" in result.directive.text
        assert result.session.state.kind == StateKind.ESCALATED

    async def test_classifier_down_keeps_escalation_reachable(self, build) -> None:
        classifier = FakeClassifier(failures=2)
        orchestrator = build(classifier)

        result = await orchestrator.handle_turn("user-1", "Let me speak to a human")

        assert result.degraded
        assert len(classifier.calls) == 2
        assert result.session.state.kind == StateKind.ESCALATED

    async def test_classifier_timeout_falls_back(self, build) -> None:
        orchestrator = build(FakeClassifier(delay=1.0))

        result = await orchestrator.handle_turn("user-1", "hello")

        assert result.degraded
        assert result.action.kind == "informational_reply"

    async def test_degraded_clarification(self, build) -> None:
        orchestrator = build(FakeClassifier(failures=2))
        result = await orchestrator.handle_turn("user-1", "qwerty")

        assert result.action.kind == "clarify"
        assert "trouble understanding" in result.directive.text


class TestSessionLifecycle:
    """Session creation, history and expiry through the orchestrator."""

    async def test_history_passed_to_classifier(self, build) -> None:
        classifier = FakeClassifier(lambda text: classification(Intent.GREETING, 0.9))
        orchestrator = build(classifier)

        await orchestrator.handle_turn("user-1", "hi")
        await orchestrator.handle_turn("user-1", "hello again")

        _, history = classifier.calls[1]
        assert [turn.role for turn in history] == [TurnRole.USER, TurnRole.BOT]
        assert history[0].text == "hi"

    async def test_quick_reply_payload_bypasses_classifier(self, build) -> None:
        classifier = FakeClassifier()
        orchestrator = build(classifier)

        result = await orchestrator.handle_turn("user-1", Intent.REPORT_ISSUE.value)

        assert classifier.calls == []
        assert result.session.state == DialogueState.awaiting_slot(FlowName.REPORT_ISSUE, 0)

    async def test_history_bounded(self, build, settings) -> None:
        orchestrator = build(FakeClassifier(lambda text: classification(Intent.GREETING, 0.9)))
        for i in range(8):
            result = await orchestrator.handle_turn("user-1", f"hi {i}")

        assert len(result.session.history) == settings.conversation.history_window
        assert result.session.history[-2].text == "hi 7"

    async def test_expired_session_restarts_fresh(self, build, clock) -> None:
        orchestrator = build()
        await orchestrator.handle_turn("user-1", "There's a pothole on 5th Ave")

        clock.advance(timedelta(minutes=30, seconds=1))
        result = await orchestrator.handle_turn("user-1", "hello")

        assert result.session.slots == {}
        assert result.session.created_at == clock()
        assert len(result.session.history) == 2

    async def test_session_within_ttl_resumes(self, build, clock) -> None:
        orchestrator = build()
        await orchestrator.handle_turn("user-1", "There's a pothole on 5th Ave")

        clock.advance(timedelta(minutes=29, seconds=59))
        result = await orchestrator.handle_turn("user-1", "5th and Pine")

        assert result.session.slots["location"] == "5th and Pine"

    async def test_store_unavailable_aborts_turn(self, build) -> None:
        classifier = FakeClassifier()
        orchestrator = build(classifier, store=FailingStore())

        with pytest.raises(StoreUnavailable):
            await orchestrator.handle_turn("user-1", "hello")
        assert classifier.calls == []


class TestConcurrency:
    """Per-user serialization."""

    async def test_same_user_turns_never_interleave(self, build) -> None:
        classifier = FakeClassifier(lambda text: classification(Intent.GREETING, 0.9), delay=0.02)
        orchestrator = build(classifier)

        await asyncio.gather(
            orchestrator.handle_turn("user-1", "hello"),
            orchestrator.handle_turn("user-1", "hello"),
        )

        assert classifier.max_in_flight == 1
        # The second turn saw the first one's history
        assert len(classifier.calls[1][1]) == 2

    async def test_redelivered_message_yields_one_consistent_session(self, build, store, clock) -> None:
        orchestrator = build(FakeClassifier(
            lambda text: classification(Intent.REPORT_ISSUE, 0.85, issue_type="pothole"), delay=0.01
        ))

        await asyncio.gather(
            orchestrator.handle_turn("user-1", "There's a pothole on 5th Ave"),
            orchestrator.handle_turn("user-1", "There's a pothole on 5th Ave"),
        )

        session = await store.get("user-1", clock())
        assert len(session.history) == 4
        assert session.active_flow == FlowName.REPORT_ISSUE

    async def test_different_users_run_in_parallel(self, build) -> None:
        classifier = FakeClassifier(lambda text: classification(Intent.GREETING, 0.9), delay=0.02)
        orchestrator = build(classifier)

        await asyncio.gather(
            orchestrator.handle_turn("user-1", "hello"),
            orchestrator.handle_turn("user-2", "hello"),
        )

        assert classifier.max_in_flight == 2


class TestSweep:
    """Lock-aware expiry sweep."""

    async def test_sweep_evicts_expired(self, build, store, clock) -> None:
        await store.put("user-1", make_session(at=clock()))
        orchestrator = build()

        clock.advance(timedelta(minutes=31))
        assert await orchestrator.sweep_expired() == 1
        assert len(store) == 0

    async def test_sweep_waits_for_in_progress_turn(self, build, store, clock) -> None:
        await store.put("user-1", make_session(at=clock()))
        clock.advance(timedelta(minutes=31))
        orchestrator = build()

        async with orchestrator.locks.hold("user-1"):
            sweep = asyncio.create_task(orchestrator.sweep_expired())
            await asyncio.sleep(0)
            assert not sweep.done()
            # A turn refreshes the session while holding the lock
            await store.put("user-1", make_session(at=clock()))

        assert await sweep == 0
        assert await store.get("user-1", clock()) is not None
