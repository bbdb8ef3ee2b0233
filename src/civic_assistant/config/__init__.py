"""Configuration module."""

from civic_assistant.config.settings import (
    APISettings,
    ClassifierSettings,
    ConversationSettings,
    DeliverySettings,
    EscalationSettings,
    OpenDataSettings,
    RedisSettings,
    Settings,
    get_settings,
)

__all__ = [
    "APISettings",
    "ClassifierSettings",
    "ConversationSettings",
    "DeliverySettings",
    "EscalationSettings",
    "OpenDataSettings",
    "RedisSettings",
    "Settings",
    "get_settings",
]
