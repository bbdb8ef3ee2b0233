"""Slot schema registry for multi-turn flows."""

from civic_assistant.core.flows.schema import (
    FLOW_SCHEMAS,
    REPORT_ISSUE_SCHEMA,
    FlowSchema,
    SlotDefinition,
    declared_slot_names,
    get_flow_schema,
    length_between,
)

__all__ = [
    "FLOW_SCHEMAS",
    "REPORT_ISSUE_SCHEMA",
    "FlowSchema",
    "SlotDefinition",
    "declared_slot_names",
    "get_flow_schema",
    "length_between",
]
