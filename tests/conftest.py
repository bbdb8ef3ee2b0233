"""Shared test fixtures for the civic assistant test suite."""

import asyncio
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone

import pytest

from civic_assistant.config import get_settings
from civic_assistant.core.errors import ClassifierUnavailable, LookupServiceUnavailable
from civic_assistant.models import (
    Classification,
    ConversationTurn,
    DialogueState,
    FlowName,
    Intent,
    ServiceRequestFilter,
    ServiceRequestRecord,
    Session,
)
from civic_assistant.services.classifier import BaseIntentClassifier
from civic_assistant.services.open_data import ServiceRequestDataService

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Settings are re-read from the environment for every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def now() -> datetime:
    """Fixed reference time."""
    return T0


class FakeClock:
    """Controllable clock for orchestrator tests."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current += delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class FakeClassifier(BaseIntentClassifier):
    """Classifier returning scripted results, recording calls and concurrency."""

    def __init__(
        self,
        respond: Callable[[str], Classification] | None = None,
        delay: float = 0.0,
        failures: int = 0,
    ) -> None:
        self.respond = respond or (lambda text: Classification(intent=Intent.UNKNOWN, confidence=0.3))
        self.delay = delay
        self.failures = failures
        self.calls: list[tuple[str, list[ConversationTurn]]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def classify(self, text: str, history: list[ConversationTurn]) -> Classification:
        self.calls.append((text, list(history)))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.failures > 0:
                self.failures -= 1
                raise ClassifierUnavailable("classifier down")
            return self.respond(text)
        finally:
            self.in_flight -= 1


class FakeDataService(ServiceRequestDataService):
    """In-memory service request data."""

    def __init__(self, records: list[ServiceRequestRecord] | None = None, failures: int = 0) -> None:
        self.records = {r.request_number: r for r in records or []}
        self.failures = failures
        self.lookups: list[str] = []

    async def lookup_by_request_number(self, request_number: str) -> ServiceRequestRecord | None:
        self.lookups.append(request_number)
        if self.failures > 0:
            self.failures -= 1
            raise LookupServiceUnavailable("lookup down")
        return self.records.get(request_number)

    async def search_by_location_or_type(self, filter: ServiceRequestFilter) -> list[ServiceRequestRecord]:
        return list(self.records.values())[: filter.limit]


def classification(intent: Intent, confidence: float = 0.9, **entities: str) -> Classification:
    return Classification(intent=intent, confidence=confidence, entities=entities)


def make_session(
    user_id: str = "user-1",
    state: DialogueState | None = None,
    slots: dict[str, str] | None = None,
    at: datetime = T0,
    **fields,
) -> Session:
    """Build a session, deriving active_flow from the state."""
    state = state or DialogueState.idle()
    return Session(
        user_id=user_id,
        state=state,
        active_flow=state.flow,
        slots=slots or {},
        created_at=at,
        last_interaction_at=at,
        **fields,
    )


@pytest.fixture
def pothole_record() -> ServiceRequestRecord:
    return ServiceRequestRecord(
        request_number="25-00105756",
        request_type="Street Condition - Pothole",
        location="123 MAIN STREET",
        status="In Progress",
        agency="Department of Transportation",
    )


@pytest.fixture
def awaiting_location() -> Session:
    """Issue report in progress with the issue type collected."""
    return make_session(
        state=DialogueState.awaiting_slot(FlowName.REPORT_ISSUE, 1),
        slots={"issue_type": "pothole"},
    )
