"""
Message API routes.
Inbound text from any messaging channel is turned into one conversational turn.
"""

import structlog
from fastapi import APIRouter, Depends
from prometheus_client import Counter
from pydantic import BaseModel, Field

from civic_assistant.core.dialogue import Escalate
from civic_assistant.core.orchestrator import ConversationOrchestrator, get_orchestrator
from civic_assistant.models import QuickReply
from civic_assistant.services.delivery import DeliveryChannel, NullDeliveryChannel

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/messages", tags=["Messages"])

TURN_COUNT = Counter(
    "civic_assistant_turns_total",
    "Conversation turns processed",
    ["action"]
)
DEGRADED_TURN_COUNT = Counter(
    "civic_assistant_degraded_turns_total",
    "Turns classified by the fallback classifier"
)
ESCALATION_COUNT = Counter(
    "civic_assistant_escalations_total",
    "Escalations to a person",
    ["new_ticket"]
)


# Request/Response Models
class MessageRequest(BaseModel):
    """Inbound message from a citizen."""

    user_id: str = Field(..., min_length=1, max_length=128)
    text: str = Field(..., max_length=2000)
    deliver: bool = Field(default=False, description="Also forward the reply through the delivery channel")


class MessageResponse(BaseModel):
    """Reply directive plus turn metadata."""

    text: str
    quick_replies: list[QuickReply]
    links: list[str]
    action: str
    state: str
    ticket_id: str | None
    degraded: bool
    delivered: bool


# Singleton delivery channel
_delivery_channel: DeliveryChannel | None = None


def get_delivery_channel() -> DeliveryChannel:
    """Get the configured delivery channel."""
    global _delivery_channel
    if _delivery_channel is None:
        _delivery_channel = NullDeliveryChannel()
    return _delivery_channel


def set_delivery_channel(channel: DeliveryChannel | None) -> None:
    global _delivery_channel
    _delivery_channel = channel


@router.post("", response_model=MessageResponse)
async def post_message(
    request: MessageRequest,
    orchestrator: ConversationOrchestrator = Depends(get_orchestrator),
    channel: DeliveryChannel = Depends(get_delivery_channel),
):
    """
    Process one inbound message.

    Returns 503 if session state is unavailable; the caller should retry.
    """
    result = await orchestrator.handle_turn(request.user_id, request.text)

    TURN_COUNT.labels(action=result.action.kind).inc()
    if result.degraded:
        DEGRADED_TURN_COUNT.inc()
    if isinstance(result.action, Escalate):
        ESCALATION_COUNT.labels(new_ticket=str(result.action.new_ticket).lower()).inc()

    delivered = False
    if request.deliver:
        delivered = await channel.send(request.user_id, result.directive)

    return MessageResponse(
        text=result.directive.text,
        quick_replies=result.directive.quick_replies,
        links=result.directive.links,
        action=result.action.kind,
        state=result.session.state.describe(),
        ticket_id=result.session.ticket_id,
        degraded=result.degraded,
        delivered=delivered,
    )
