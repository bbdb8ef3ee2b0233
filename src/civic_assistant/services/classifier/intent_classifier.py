"""
Intent classification for citizen messages.

RemoteIntentClassifier calls the external NLU service. PatternIntentClassifier
is a fast local classifier used in development and as the fallback that keeps
escalation reachable while the remote service is down.
"""

import re
from abc import ABC, abstractmethod

import httpx
import structlog
from pydantic import ValidationError

from civic_assistant.config import Settings, get_settings
from civic_assistant.core.errors import ClassifierUnavailable
from civic_assistant.models import Classification, ConversationTurn, Intent

logger = structlog.get_logger(__name__)


# Intent patterns, listed in precedence order
INTENT_PATTERNS = {
    Intent.ESCALATE: [
        r"\b(talk|speak|chat)\s+(to|with)\s+(a\s+|an\s+)?(real\s+)?(person|human|agent|someone|representative)",
        r"\b(human|live agent|real person|representative|operator|supervisor)\b",
        r"\bescalate\b",
        r"^(agent|help me)$",
    ],
    Intent.STATUS_CHECK: [
        r"\bstatus\b",
        r"\b(check|track|follow up on|update on)\s+(on\s+)?(my\s+)?(request|ticket|report|case|complaint)",
        r"\b\d{2}-\d{8}\b",
    ],
    Intent.REPORT_ISSUE: [
        r"\breport\s+(an?\s+)?(issue|problem)\b",
        r"\b(pothole|street\s*light|graffiti|illegal dumping|abandoned (car|vehicle)|water leak|broken sidewalk|fallen tree|tree down|missed (pickup|collection)|overflowing (bin|trash))",
        r"\bi (want|need|would like) to report\b",
    ],
    Intent.CONFIRM: [
        r"^(yes|yep|yeah|confirm|correct|submit)\b",
    ],
    Intent.RESTART: [
        r"^(no|nope|restart|start over)\b",
    ],
    Intent.GREETING: [
        r"^(hi|hello|hey|howdy|good\s*(morning|afternoon|evening))\b",
    ],
    Intent.GENERAL_INQUIRY: [
        r"\b(hours|open|closed|schedule|when is|how do i|how can i|where can i|what is|info|information)\b",
        r"\b(recycling|bulk pickup|trash day|parking|permit)\b",
    ],
}

INTENT_PRECEDENCE = list(INTENT_PATTERNS)

ISSUE_TYPES = {
    "pothole": r"pot\s*holes?",
    "streetlight out": r"street\s*lights?",
    "graffiti": r"graffiti",
    "illegal dumping": r"illegal dumping",
    "abandoned vehicle": r"abandoned (car|vehicle)",
    "water leak": r"water leak",
    "broken sidewalk": r"broken sidewalk",
    "fallen tree": r"fallen tree|tree down",
    "missed collection": r"missed (pickup|collection)",
    "overflowing bin": r"overflowing (bin|trash)",
}

TOPICS = {
    "hours": r"\b(hours|open|closed)\b",
    "trash_pickup": r"\b(trash day|trash pickup|garbage|bulk pickup)\b",
    "recycling": r"\brecycl",
    "parking": r"\b(parking|permit)\b",
    "contact": r"\b(phone number|contact|email)\b",
}

REQUEST_NUMBER_PATTERN = r"\b(\d{2}-\d{8})\b"


class BaseIntentClassifier(ABC):
    """Abstract base class for intent classification."""

    @abstractmethod
    async def classify(self, text: str, history: list[ConversationTurn]) -> Classification:
        """
        Classify a message in the context of prior turns.

        Raises:
            ClassifierUnavailable: if no classification could be produced
        """

    async def close(self) -> None:
        """Release any held resources."""


class PatternIntentClassifier(BaseIntentClassifier):
    """
    Pattern-based intent classifier for fast, local classification.
    Used in development and as the fallback when the remote service fails.
    """

    def __init__(self) -> None:
        self.patterns = {
            intent: [re.compile(pattern, re.IGNORECASE) for pattern in patterns]
            for intent, patterns in INTENT_PATTERNS.items()
        }
        self.issue_types = {
            label: re.compile(pattern, re.IGNORECASE) for label, pattern in ISSUE_TYPES.items()
        }
        self.topics = {
            topic: re.compile(pattern, re.IGNORECASE) for topic, pattern in TOPICS.items()
        }
        self.request_number = re.compile(REQUEST_NUMBER_PATTERN)

    async def classify(self, text: str, history: list[ConversationTurn]) -> Classification:
        """Classify intent using regex patterns."""
        text_clean = text.strip()

        matches: list[tuple[Intent, int]] = []
        for intent, patterns in self.patterns.items():
            for pattern in patterns:
                if pattern.search(text_clean):
                    matches.append((intent, len(pattern.pattern)))
                    break

        entities = self.extract_entities(text_clean)

        if not matches:
            return Classification(intent=Intent.UNKNOWN, entities=entities, confidence=0.3)

        # Precedence first, then the more specific (longer) pattern
        matches.sort(key=lambda m: (INTENT_PRECEDENCE.index(m[0]), -m[1]))
        best_intent, pattern_length = matches[0]
        confidence = min(0.85, 0.6 + (pattern_length / 100))

        return Classification(intent=best_intent, entities=entities, confidence=confidence)

    def extract_entities(self, text: str) -> dict[str, str]:
        """Extract request number, issue type and topic entities."""
        entities: dict[str, str] = {}

        number = self.request_number.search(text)
        if number:
            entities["request_number"] = number.group(1)

        for label, pattern in self.issue_types.items():
            if pattern.search(text):
                entities["issue_type"] = label
                break

        for topic, pattern in self.topics.items():
            if pattern.search(text):
                entities["topic"] = topic
                break

        return entities


class RemoteIntentClassifier(BaseIntentClassifier):
    """
    Client for the external NLU classification service.

    POSTs {"text", "history"} and expects {"intent", "entities", "confidence"}.
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = get_settings()
        self.url = url or self.settings.classifier.url
        self.api_key = api_key if api_key is not None else self.settings.classifier.api_key
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                headers=headers,
                timeout=self.settings.conversation.classifier_timeout_seconds,
            )
        return self._client

    async def classify(self, text: str, history: list[ConversationTurn]) -> Classification:
        client = await self._get_client()
        payload = {
            "text": text,
            "history": [turn.model_dump(mode="json") for turn in history],
        }

        try:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("classifier_api_error", status=e.response.status_code, detail=str(e))
            raise ClassifierUnavailable(f"Classifier returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("classifier_request_failed", error=str(e))
            raise ClassifierUnavailable(f"Classifier request failed: {e}") from e
        except ValueError as e:
            logger.error("classifier_invalid_json", error=str(e))
            raise ClassifierUnavailable("Classifier returned invalid JSON") from e

        return self._parse(body)

    def _parse(self, body: dict) -> Classification:
        if not isinstance(body, dict):
            raise ClassifierUnavailable("Classifier response is not a JSON object")

        intent_str = str(body.get("intent", "")).upper()
        try:
            intent = Intent(intent_str)
        except ValueError:
            logger.warning("classifier_unknown_intent", intent=intent_str)
            intent = Intent.UNKNOWN

        entities = {
            str(key): str(value)
            for key, value in (body.get("entities") or {}).items()
            if value not in (None, "")
        }

        try:
            return Classification(
                intent=intent,
                entities=entities,
                confidence=float(body.get("confidence", 0.0)),
            )
        except (TypeError, ValueError, ValidationError) as e:
            logger.error("classifier_invalid_response", error=str(e))
            raise ClassifierUnavailable("Classifier returned an invalid classification") from e

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()


class IntentClassifierFactory:
    """Factory for creating intent classifier instances."""

    @staticmethod
    def create(provider: str | None = None, settings: Settings | None = None) -> BaseIntentClassifier:
        """Create an intent classifier."""
        settings = settings or get_settings()
        provider = provider or settings.classifier.provider

        if provider == "remote":
            return RemoteIntentClassifier(
                url=settings.classifier.url,
                api_key=settings.classifier.api_key,
            )
        if provider == "pattern":
            return PatternIntentClassifier()

        raise ValueError(f"Unknown classifier provider: {provider}")
