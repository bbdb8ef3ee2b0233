"""
Slot Schema Registry - declarative description of multi-turn flows.
Each flow lists, in order, the slots it must collect before completion.
"""

import re
from dataclasses import dataclass
from typing import Callable

from civic_assistant.core.errors import InvalidSlotValue
from civic_assistant.models import FlowName

_HAS_WORD_CHAR = re.compile(r"\w")


def length_between(min_length: int, max_length: int) -> Callable[[str], bool]:
    """Build a shape check accepting text of the given length with at least one word character."""

    def check(value: str) -> bool:
        return min_length <= len(value) <= max_length and bool(_HAS_WORD_CHAR.search(value))

    return check


@dataclass(frozen=True)
class SlotDefinition:
    """Definition of a slot to be filled by a flow."""

    name: str
    prompt: str
    validator: Callable[[str], bool]
    guidance: str = ""
    label: str = ""

    @property
    def display_name(self) -> str:
        return self.label or self.name.replace("_", " ").capitalize()


@dataclass(frozen=True)
class FlowSchema:
    """Ordered slot definitions for one flow."""

    flow: FlowName
    title: str
    slots: tuple[SlotDefinition, ...]

    @property
    def slot_names(self) -> tuple[str, ...]:
        return tuple(slot.name for slot in self.slots)

    def slot_at(self, index: int) -> SlotDefinition:
        return self.slots[index]

    def get_slot(self, name: str) -> SlotDefinition | None:
        return next((s for s in self.slots if s.name == name), None)

    def first_unfilled_index(self, filled: dict[str, str]) -> int | None:
        """Index of the first slot with no value, or None when complete."""
        for index, slot in enumerate(self.slots):
            if slot.name not in filled:
                return index
        return None

    def is_complete(self, filled: dict[str, str]) -> bool:
        return self.first_unfilled_index(filled) is None

    def fill(self, filled: dict[str, str], name: str, raw_value: str) -> dict[str, str]:
        """
        Append one slot value, returning the new slot mapping.

        Raises:
            ValueError: if the slot is undeclared or already filled
            InvalidSlotValue: if the slot's validator rejects the value
        """
        slot = self.get_slot(name)
        if slot is None:
            raise ValueError(f"Slot '{name}' is not declared by flow {self.flow.value}")
        if name in filled:
            raise ValueError(f"Slot '{name}' is already filled")

        value = " ".join(raw_value.split())
        if not value or not slot.validator(value):
            raise InvalidSlotValue(name, raw_value, slot.guidance or slot.prompt)

        return {**filled, name: value}


REPORT_ISSUE_SCHEMA = FlowSchema(
    flow=FlowName.REPORT_ISSUE,
    title="Issue report",
    slots=(
        SlotDefinition(
            name="issue_type",
            label="Issue",
            prompt="What kind of issue would you like to report? (e.g. pothole, streetlight out, graffiti)",
            validator=length_between(3, 80),
            guidance="Please describe the kind of issue in a few words, like \"pothole\" or \"broken streetlight\".",
        ),
        SlotDefinition(
            name="location",
            label="Location",
            prompt="Where is it? A street address or the nearest intersection works best.",
            validator=length_between(3, 200),
            guidance="I need a street address or intersection, for example \"5th Ave and Pine St\".",
        ),
        SlotDefinition(
            name="description",
            label="Details",
            prompt="Please describe the problem briefly (size, hazards, how long it has been there).",
            validator=length_between(5, 1000),
            guidance="A short description helps the crew. Please add a few more details.",
        ),
    ),
)

FLOW_SCHEMAS: dict[FlowName, FlowSchema] = {
    FlowName.REPORT_ISSUE: REPORT_ISSUE_SCHEMA,
}


def get_flow_schema(flow: FlowName) -> FlowSchema:
    """Look up the schema for a flow."""
    try:
        return FLOW_SCHEMAS[flow]
    except KeyError:
        raise ValueError(f"No schema registered for flow {flow}") from None


def declared_slot_names(flow: FlowName | None = None) -> frozenset[str]:
    """Slot names declared by a flow, or by any registered flow when flow is None."""
    if flow is not None:
        return frozenset(get_flow_schema(flow).slot_names)
    return frozenset(name for schema in FLOW_SCHEMAS.values() for name in schema.slot_names)
