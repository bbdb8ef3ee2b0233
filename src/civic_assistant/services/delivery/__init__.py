"""Outbound reply delivery."""

from civic_assistant.services.delivery.channel import (
    DeliveryChannel,
    NullDeliveryChannel,
    WebhookDeliveryChannel,
    create_delivery_channel,
)

__all__ = [
    "DeliveryChannel",
    "NullDeliveryChannel",
    "WebhookDeliveryChannel",
    "create_delivery_channel",
]
