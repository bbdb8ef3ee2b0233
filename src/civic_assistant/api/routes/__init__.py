"""API Routes module."""

from civic_assistant.api.routes.cases import router as cases_router
from civic_assistant.api.routes.messages import router as messages_router

__all__ = ["messages_router", "cases_router"]
