"""
Reply rendering for each action outcome.
Produces the text, quick replies and links of a ReplyDirective.
"""

from civic_assistant.config import EscalationSettings
from civic_assistant.core.dialogue import (
    CONFIRM_PAYLOAD,
    RESTART_PAYLOAD,
    ConfirmReport,
    PromptSlot,
)
from civic_assistant.core.flows import get_flow_schema
from civic_assistant.models import Intent, QuickReply, ReplyDirective, ServiceRequestRecord

CHECK_STATUS_REPLY = QuickReply(title="Check a request", payload=Intent.STATUS_CHECK.value)
REPORT_ISSUE_REPLY = QuickReply(title="Report an issue", payload=Intent.REPORT_ISSUE.value)
ESCALATE_REPLY = QuickReply(title="Talk to a person", payload=Intent.ESCALATE.value)

MAIN_MENU = [CHECK_STATUS_REPLY, REPORT_ISSUE_REPLY, ESCALATE_REPLY]


class ResponseGenerator:
    """Generates reply directives from templates."""

    INFO_RESPONSES = {
        "greeting": "Hello! I'm the city's virtual assistant. I can check the status of a service request, "
                    "help you report an issue, or connect you with a person.",
        "general": "I can check the status of a service request, help you report issues like potholes or "
                   "broken streetlights, or connect you with a person. What would you like to do?",
        "hours": "City service centers are open Monday to Friday, 8am to 6pm. "
                 "You can report issues here any time.",
        "trash_pickup": "Trash is collected weekly on your neighborhood's scheduled day. "
                        "Bulk items can be picked up by appointment through the service portal.",
        "recycling": "Recycling is collected every other week, on the same day as trash. "
                     "Rinse containers and keep plastic bags out of the bin.",
        "parking": "Residential parking permits can be requested through the service portal. "
                   "Permits are processed within 5 business days.",
        "contact": "You can reach the city service line at {phone} ({hours}) or email {email}.",
    }

    CLARIFY_RESPONSES = {
        "low_confidence": "Sorry, I'm not sure I understood. Could you rephrase? "
                          "For example: \"What's the status of 25-00105756?\" or \"Report a pothole\".",
        "unrecognized": "I'm not sure how to help with that yet. I can check a request status, "
                        "take an issue report, or connect you with a person.",
        "degraded": "I'm having trouble understanding messages right now. You can try again in a moment, "
                    "or ask to talk to a person.",
    }

    def __init__(self, escalation: EscalationSettings | None = None) -> None:
        self._escalation = escalation or EscalationSettings()

    def informational(self, topic: str) -> ReplyDirective:
        """Static informational response keyed by topic."""
        template = self.INFO_RESPONSES.get(topic, self.INFO_RESPONSES["general"])
        text = template.format(
            phone=self._escalation.phone,
            hours=self._escalation.hours,
            email=self._escalation.email,
        )
        return ReplyDirective(text=text, quick_replies=list(MAIN_MENU))

    def clarify(self, reason: str, degraded: bool = False) -> ReplyDirective:
        """Ask the user to rephrase."""
        key = "degraded" if degraded else reason
        text = self.CLARIFY_RESPONSES.get(key, self.CLARIFY_RESPONSES["unrecognized"])
        return ReplyDirective(text=text, quick_replies=list(MAIN_MENU))

    def ask_request_number(self, rejected_value: str | None = None) -> ReplyDirective:
        if rejected_value:
            text = (f"\"{rejected_value}\" doesn't look like a request number. "
                    "Request numbers look like 25-00105756. What's yours?")
        else:
            text = "Sure, what's your service request number? It looks like 25-00105756."
        return ReplyDirective(text=text, quick_replies=[ESCALATE_REPLY])

    def status_found(self, record: ServiceRequestRecord) -> ReplyDirective:
        """Format the status of a service request from its record fields."""
        lines = [
            f"Request {record.request_number}:",
            f"Type: {record.request_type}",
            f"Location: {record.location}",
            f"Status: {record.status}",
        ]
        if record.updated_at:
            lines.append(f"Last updated: {record.updated_at:%b %d, %Y}")
        if record.resolution:
            lines.append(record.resolution)

        links = [record.details_url] if record.details_url else []
        return ReplyDirective(
            text="\n".join(lines),
            quick_replies=[CHECK_STATUS_REPLY, REPORT_ISSUE_REPLY],
            links=links,
        )

    def status_not_found(self, request_number: str) -> ReplyDirective:
        return ReplyDirective(
            text=(f"I couldn't find a service request with number {request_number}. "
                  "Please double-check the number and try again. It should look like 25-00105756."),
            quick_replies=[CHECK_STATUS_REPLY, ESCALATE_REPLY],
        )

    def status_unavailable(self) -> ReplyDirective:
        return ReplyDirective(
            text="I couldn't check that right now. Please try again in a few minutes, or ask to talk to a person.",
            quick_replies=[CHECK_STATUS_REPLY, ESCALATE_REPLY],
            links=[self._escalation.portal_url],
        )

    def slot_prompt(self, action: PromptSlot) -> ReplyDirective:
        """Prompt for a slot, prefixed with guidance on a retry."""
        if action.is_retry:
            text = action.guidance
        elif action.restarted:
            text = f"No problem, let's start over. {action.prompt}"
        else:
            text = action.prompt
        return ReplyDirective(text=text, quick_replies=[ESCALATE_REPLY])

    def confirm_report(self, action: ConfirmReport) -> ReplyDirective:
        """Present collected data with a confirm/restart choice."""
        schema = get_flow_schema(action.flow)
        header = "Please reply Yes to submit or Start over to change something." if action.reminder \
            else "Here's what I have:"
        lines = [header]
        for slot in schema.slots:
            lines.append(f"{slot.display_name}: {action.slots.get(slot.name, '-')}")
        if not action.reminder:
            lines.append("Shall I submit this report?")

        return ReplyDirective(
            text="\n".join(lines),
            quick_replies=[
                QuickReply(title="Submit", payload=CONFIRM_PAYLOAD),
                QuickReply(title="Start over", payload=RESTART_PAYLOAD),
            ],
        )

    def report_submitted(self, reference: str) -> ReplyDirective:
        return ReplyDirective(
            text=(f"Thanks! Your report has been submitted. Your reference number is {reference}. "
                  "A crew will review it shortly."),
            quick_replies=[CHECK_STATUS_REPLY, REPORT_ISSUE_REPLY],
        )

    def report_not_submitted(self) -> ReplyDirective:
        return ReplyDirective(
            text="I couldn't submit your report just now. Reply Yes to try again, or ask to talk to a person.",
            quick_replies=[
                QuickReply(title="Submit", payload=CONFIRM_PAYLOAD),
                ESCALATE_REPLY,
            ],
        )

    def escalation(self, ticket_id: str, new_ticket: bool) -> ReplyDirective:
        """Escalation contact info plus ticket confirmation."""
        opening = "I've passed your conversation to our team." if new_ticket \
            else "Your conversation is already with our team."
        text = (f"{opening} Your ticket number is {ticket_id}.\n"
                f"You can also reach a person at {self._escalation.phone} ({self._escalation.hours}) "
                f"or email {self._escalation.email}. Please mention your ticket number.")
        return ReplyDirective(text=text, links=[self._escalation.portal_url])
