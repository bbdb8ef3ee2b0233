"""Intent classifier collaborators."""

from civic_assistant.services.classifier.intent_classifier import (
    BaseIntentClassifier,
    IntentClassifierFactory,
    PatternIntentClassifier,
    RemoteIntentClassifier,
)

__all__ = [
    "BaseIntentClassifier",
    "IntentClassifierFactory",
    "PatternIntentClassifier",
    "RemoteIntentClassifier",
]
