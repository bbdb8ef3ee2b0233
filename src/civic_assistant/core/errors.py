"""
Error kinds raised across the conversation core.

Low-confidence classifications and missing service requests are ordinary
outcomes and are not represented here.
"""


class AssistantError(Exception):
    """Base class for civic assistant errors."""


class CollaboratorUnavailable(AssistantError):
    """An external collaborator failed or exceeded its deadline."""


class ClassifierUnavailable(CollaboratorUnavailable):
    """The intent classifier could not produce a classification."""


class LookupServiceUnavailable(CollaboratorUnavailable):
    """The open-data lookup service could not be reached."""


class StoreUnavailable(AssistantError):
    """The session store backend is unreachable; the turn must be retried upstream."""


class InvalidSlotValue(AssistantError):
    """A slot validator rejected the user's input."""

    def __init__(self, slot_name: str, value: str, guidance: str) -> None:
        super().__init__(f"Invalid value for slot '{slot_name}': {guidance}")
        self.slot_name = slot_name
        self.value = value
        self.guidance = guidance
