"""
Delivery channels that render and send reply directives to citizens.
The conversation core never sends; the transport layer hands directives here.
"""

from abc import ABC, abstractmethod

import httpx
import structlog

from civic_assistant.config import Settings, get_settings
from civic_assistant.models import ReplyDirective

logger = structlog.get_logger(__name__)


class DeliveryChannel(ABC):
    """Outbound message channel."""

    @abstractmethod
    async def send(self, user_id: str, directive: ReplyDirective) -> bool:
        """Deliver a reply. Returns True if the channel accepted it."""

    async def close(self) -> None:
        """Release any held resources."""


class NullDeliveryChannel(DeliveryChannel):
    """Channel used when replies are returned synchronously to the caller."""

    async def send(self, user_id: str, directive: ReplyDirective) -> bool:
        logger.debug("delivery_skipped", user_id=user_id)
        return False


class WebhookDeliveryChannel(DeliveryChannel):
    """Forwards directives to a messaging gateway over HTTP."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout_seconds
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, user_id: str, directive: ReplyDirective) -> bool:
        client = await self._get_client()
        payload = {"user_id": user_id, **directive.model_dump(mode="json")}

        try:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("delivery_failed", user_id=user_id, url=self.url, error=str(e))
            return False

        logger.info("reply_delivered", user_id=user_id, quick_replies=len(directive.quick_replies))
        return True

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()


def create_delivery_channel(settings: Settings | None = None) -> DeliveryChannel:
    """Build the configured delivery channel."""
    settings = settings or get_settings()
    if settings.delivery.webhook_url:
        return WebhookDeliveryChannel(
            settings.delivery.webhook_url,
            timeout_seconds=settings.delivery.timeout_seconds,
        )
    return NullDeliveryChannel()
