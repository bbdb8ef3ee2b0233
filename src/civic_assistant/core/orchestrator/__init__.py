"""Conversation orchestrator and reply rendering."""

from civic_assistant.config import Settings, get_settings
from civic_assistant.core.handoff import CaseQueue
from civic_assistant.core.orchestrator.orchestrator import (
    ConversationOrchestrator,
    TurnResult,
    run_session_sweeper,
)
from civic_assistant.core.orchestrator.responses import ResponseGenerator
from civic_assistant.core.session import create_session_store
from civic_assistant.services.classifier import IntentClassifierFactory
from civic_assistant.services.open_data import OpenDataClient


def create_orchestrator(settings: Settings | None = None) -> ConversationOrchestrator:
    """Wire an orchestrator with the configured collaborators."""
    settings = settings or get_settings()
    return ConversationOrchestrator(
        store=create_session_store(settings),
        classifier=IntentClassifierFactory.create(settings=settings),
        data_service=OpenDataClient(settings),
        case_queue=CaseQueue(),
        settings=settings,
    )


# Singleton orchestrator
_orchestrator: ConversationOrchestrator | None = None


def get_orchestrator() -> ConversationOrchestrator:
    """Get or create orchestrator instance."""
    global _orchestrator

    if _orchestrator is None:
        _orchestrator = create_orchestrator()

    return _orchestrator


def set_orchestrator(orchestrator: ConversationOrchestrator | None) -> None:
    """Replace the orchestrator instance (used at startup and in tests)."""
    global _orchestrator
    _orchestrator = orchestrator


__all__ = [
    "ConversationOrchestrator",
    "ResponseGenerator",
    "TurnResult",
    "create_orchestrator",
    "get_orchestrator",
    "run_session_sweeper",
    "set_orchestrator",
]
