"""Handoff of escalations and reports to city staff."""

from civic_assistant.core.handoff.case_queue import CaseQueue, new_report_reference

__all__ = ["CaseQueue", "new_report_reference"]
