"""
Conversation Orchestrator - drives one conversational turn end-to-end.

Loads the session, classifies the message, runs the dialogue state machine,
executes the chosen action against collaborators, persists the session and
returns the reply directive. This is the only component that writes to the
session store.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, NamedTuple, TypeVar

import structlog

from civic_assistant.config import Settings, get_settings
from civic_assistant.core.dialogue import (
    PAYLOAD_INTENTS,
    Action,
    AskRequestNumber,
    Clarify,
    ConfirmReport,
    DialoguePolicy,
    Escalate,
    InformationalReply,
    PromptSlot,
    StatusLookup,
    SubmitReport,
    transition,
)
from civic_assistant.core.errors import (
    ClassifierUnavailable,
    CollaboratorUnavailable,
    LookupServiceUnavailable,
    StoreUnavailable,
)
from civic_assistant.core.handoff import CaseQueue, new_report_reference
from civic_assistant.core.orchestrator.responses import ResponseGenerator
from civic_assistant.core.session import SessionLockManager, SessionStore
from civic_assistant.models import (
    Case,
    CaseKind,
    Classification,
    ConversationTurn,
    ReplyDirective,
    Session,
    TurnRole,
)
from civic_assistant.services.classifier import BaseIntentClassifier, PatternIntentClassifier
from civic_assistant.services.open_data import ServiceRequestDataService

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TRANSCRIPT_TURNS = 6


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TurnResult(NamedTuple):
    """Outcome of one processed turn."""

    directive: ReplyDirective
    action: Action
    session: Session
    degraded: bool


class ConversationOrchestrator:
    """
    Turn-level coordinator for the conversation core.

    Turns for the same user are serialized by a per-user lock held for the
    whole read-modify-write cycle; turns for different users run concurrently.
    """

    def __init__(
        self,
        store: SessionStore,
        classifier: BaseIntentClassifier,
        data_service: ServiceRequestDataService,
        case_queue: CaseQueue | None = None,
        locks: SessionLockManager | None = None,
        fallback_classifier: BaseIntentClassifier | None = None,
        policy: DialoguePolicy | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or get_settings()
        conversation = self.settings.conversation

        self.store = store
        self.classifier = classifier
        self.data_service = data_service
        self.case_queue = case_queue or CaseQueue()
        self.locks = locks or SessionLockManager()
        self.fallback_classifier = fallback_classifier or PatternIntentClassifier()
        self.policy = policy or DialoguePolicy.from_settings(self.settings)
        self.responses = ResponseGenerator(self.settings.escalation)
        self.clock = clock

        self.history_window = conversation.history_window
        self.classifier_timeout = conversation.classifier_timeout_seconds
        self.lookup_timeout = conversation.lookup_timeout_seconds
        self.retries = conversation.collaborator_retries

    async def handle_message(self, user_id: str, text: str) -> ReplyDirective:
        """Process one inbound message and return the reply to deliver."""
        result = await self.handle_turn(user_id, text)
        return result.directive

    async def handle_turn(self, user_id: str, text: str) -> TurnResult:
        """
        Process one inbound message.

        Raises:
            StoreUnavailable: session state could not be read or written;
                the turn is aborted and should be retried upstream
        """
        text = text.strip()

        async with self.locks.hold(user_id):
            now = self.clock()

            # 1. Load or lazily create the session
            session = await self.store.get(user_id, now)
            if session is None:
                session = Session.new(user_id, now)
                logger.info("session_created", user_id=user_id)

            # 2. Classify with history as context
            classification, degraded = await self._classify(text, session.history)

            # 3. Decide
            decided = transition(session, classification, text, self.policy)

            # 4. Execute
            directive, next_session = await self._execute(decided.action, decided.session, session, degraded)

            # 5. Persist with the turn appended to bounded history
            turns = [
                ConversationTurn(role=TurnRole.USER, text=text, timestamp=now),
                ConversationTurn(role=TurnRole.BOT, text=directive.text, timestamp=now),
            ]
            next_session = next_session.with_turns(turns, self.history_window).touch(now)
            await self.store.put(user_id, next_session)

        logger.info(
            "turn_completed",
            user_id=user_id,
            intent=classification.intent.value,
            confidence=round(classification.confidence, 3),
            action=decided.action.kind,
            state_before=session.state.describe(),
            state_after=next_session.state.describe(),
            degraded=degraded,
        )

        return TurnResult(directive=directive, action=decided.action, session=next_session, degraded=degraded)

    async def _classify(self, text: str, history: list[ConversationTurn]) -> tuple[Classification, bool]:
        """Classify the message; falls back to local patterns if the classifier is down."""
        payload_intent = PAYLOAD_INTENTS.get(text)
        if payload_intent is not None:
            return Classification(intent=payload_intent, confidence=1.0), False

        try:
            classification = await self._call_with_retry(
                "classifier",
                lambda: self.classifier.classify(text, history),
                self.classifier_timeout,
                ClassifierUnavailable,
            )
            return classification, False
        except ClassifierUnavailable as e:
            logger.warning("classifier_degraded", error=str(e))

        # Keeps escalation reachable while the classifier is down
        return await self.fallback_classifier.classify(text, history), True

    async def _call_with_retry(
        self,
        name: str,
        operation: Callable[[], Awaitable[T]],
        timeout: float,
        unavailable: type[CollaboratorUnavailable],
    ) -> T:
        """Run a collaborator call under a deadline with bounded retries."""
        attempts = 1 + self.retries
        last_error: CollaboratorUnavailable | None = None

        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(operation(), timeout)
            except asyncio.TimeoutError:
                last_error = unavailable(f"{name} timed out after {timeout}s")
            except CollaboratorUnavailable as e:
                last_error = e

            logger.warning(
                "collaborator_call_failed",
                collaborator=name,
                attempt=attempt,
                max_attempts=attempts,
                error=str(last_error),
            )

        raise last_error

    async def _execute(
        self,
        action: Action,
        session: Session,
        previous: Session,
        degraded: bool,
    ) -> tuple[ReplyDirective, Session]:
        """Execute an action, returning the reply and the session to persist."""
        if isinstance(action, StatusLookup):
            return await self._lookup_status(action), session

        if isinstance(action, AskRequestNumber):
            return self.responses.ask_request_number(action.rejected_value), session

        if isinstance(action, PromptSlot):
            return self.responses.slot_prompt(action), session

        if isinstance(action, ConfirmReport):
            return self.responses.confirm_report(action), session

        if isinstance(action, SubmitReport):
            return self._submit_report(action, session, previous)

        if isinstance(action, Escalate):
            self._file_escalation(action, session)
            return self.responses.escalation(action.ticket_id, action.new_ticket), session

        if isinstance(action, InformationalReply):
            return self.responses.informational(action.topic), session

        if isinstance(action, Clarify):
            return self.responses.clarify(action.reason, degraded=degraded), session

        raise TypeError(f"Unhandled action: {action!r}")

    async def _lookup_status(self, action: StatusLookup) -> ReplyDirective:
        try:
            record = await self._call_with_retry(
                "data_service",
                lambda: self.data_service.lookup_by_request_number(action.request_number),
                self.lookup_timeout,
                LookupServiceUnavailable,
            )
        except LookupServiceUnavailable as e:
            logger.warning("status_lookup_degraded", request_number=action.request_number, error=str(e))
            return self.responses.status_unavailable()

        if record is None:
            return self.responses.status_not_found(action.request_number)
        return self.responses.status_found(record)

    def _submit_report(
        self,
        action: SubmitReport,
        session: Session,
        previous: Session,
    ) -> tuple[ReplyDirective, Session]:
        reference = new_report_reference()
        case = Case(
            kind=CaseKind.ISSUE_REPORT,
            user_id=session.user_id,
            reference=reference,
            flow=action.flow,
            slots=action.slots,
            transcript=previous.history[-TRANSCRIPT_TURNS:],
        )
        try:
            self.case_queue.add(case)
        except Exception as e:
            # Keep the collected data so the user can confirm again
            logger.error("report_submission_failed", user_id=session.user_id, error=str(e))
            return self.responses.report_not_submitted(), previous

        logger.info("report_submitted", user_id=session.user_id, reference=reference, flow=action.flow.value)
        return self.responses.report_submitted(reference), session

    def _file_escalation(self, action: Escalate, session: Session) -> None:
        if not action.new_ticket:
            return

        case = Case(
            kind=CaseKind.ESCALATION,
            user_id=session.user_id,
            reference=action.ticket_id,
            flow=action.interrupted_flow,
            slots=session.slots,
            transcript=session.history[-TRANSCRIPT_TURNS:],
        )
        try:
            self.case_queue.add(case)
        except Exception as e:
            # The citizen still gets the contact details and ticket number
            logger.error("escalation_filing_failed", user_id=session.user_id, ticket_id=action.ticket_id, error=str(e))

    async def sweep_expired(self, now: datetime | None = None) -> int:
        """Evict expired sessions, taking each user's lock before evicting."""
        now = now or self.clock()
        removed = 0
        for user_id in await self.store.expired_user_ids(now):
            async with self.locks.hold(user_id):
                if await self.store.evict_if_expired(user_id, now):
                    removed += 1

        if removed:
            logger.info("expired_sessions_evicted", removed=removed)
        return removed


async def run_session_sweeper(orchestrator: ConversationOrchestrator, interval: timedelta) -> None:
    """Periodically evict expired sessions until cancelled."""
    seconds = interval.total_seconds()
    logger.info("session_sweeper_started", interval_seconds=seconds)
    while True:
        await asyncio.sleep(seconds)
        try:
            await orchestrator.sweep_expired()
        except StoreUnavailable as e:
            logger.warning("session_sweep_failed", error=str(e))
