"""
Notification service — template rendering + dispatch via an injected sender.

The core never talks to a mail or push transport. NotificationSink renders
the template for an event's action and hands subject/body to whatever
async sender the application wires in:

    async def send(recipients: list[str], subject: str, body: str) -> bool

Recipients are addresses of the form "user:<id>" or "role:<name>"; the
sender resolves them.
"""

from typing import Awaitable, Callable, Optional

import structlog

from payables.config import settings
from payables.services.outbox import AuditEvent

logger = structlog.get_logger()

Sender = Callable[[list[str], str, str], Awaitable[bool]]

# ---------- Template registry ----------
# audience: "requester" → context["notify_user_id"]; "approvers" → approver roles.

TEMPLATES = {
    "request_submitted": {
        "audience": "approvers",
        "subject": "New {entity_label} request awaiting approval",
        "body": (
            "A new {entity_label} request \"{entity_name}\" has been submitted "
            "and is waiting for review."
        ),
    },
    "request_resubmitted": {
        "audience": "approvers",
        "subject": "{entity_label} request resubmitted",
        "body": (
            "The {entity_label} request \"{entity_name}\" was resubmitted "
            "(resubmission #{resubmission_count}) and is waiting for review."
        ),
    },
    "request_approved": {
        "audience": "requester",
        "subject": "Your {entity_label} request was approved",
        "body": (
            "Your {entity_label} request \"{entity_name}\" has been approved.\n"
            "{admin_notes}"
        ),
    },
    "request_rejected": {
        "audience": "requester",
        "subject": "Your {entity_label} request was rejected",
        "body": (
            "Your {entity_label} request \"{entity_name}\" has been rejected.\n"
            "Reason: {reason}\n"
            "Resubmissions left: {attempts_left}"
        ),
    },
    "payment_recorded": {
        "audience": "approvers",
        "only_if": {"payment_status": "pending"},
        "subject": "Payment for invoice {invoice_number} awaiting approval",
        "body": (
            "A payment of {amount_display} against invoice {invoice_number} "
            "is waiting for approval."
        ),
    },
    "payment_approved": {
        "audience": "requester",
        "subject": "Payment for invoice {invoice_number} approved",
        "body": "Your payment of {amount_display} against invoice {invoice_number} was approved.",
    },
    "payment_rejected": {
        "audience": "requester",
        "subject": "Payment for invoice {invoice_number} rejected",
        "body": (
            "Your payment of {amount_display} against invoice {invoice_number} "
            "was rejected.\nReason: {reason}"
        ),
    },
}


def render_notification(action: str, context: dict) -> Optional[tuple[str, str]]:
    """Render (subject, body) for an action, or None if it has no template."""
    template = TEMPLATES.get(action)
    if not template:
        return None
    try:
        subject = template["subject"].format(**context)
        body = template["body"].format(**context)
    except KeyError as e:
        logger.error("notification_template_render_error", action=action, missing_key=str(e))
        return None
    return subject, body.strip()


def resolve_recipients(action: str, context: dict) -> list[str]:
    template = TEMPLATES.get(action) or {}
    if template.get("audience") == "approvers":
        return [f"role:{role}" for role in sorted(settings.approver_roles_set)]
    user_id = context.get("notify_user_id")
    return [f"user:{user_id}"] if user_id else []


class NotificationSink:
    def __init__(self, sender: Sender):
        self.sender = sender

    async def record(self, event: AuditEvent) -> None:
        template = TEMPLATES.get(event.action)
        if not template:
            return
        for key, expected in template.get("only_if", {}).items():
            if event.context.get(key) != expected:
                return

        recipients = resolve_recipients(event.action, event.context)
        if not recipients:
            logger.warning("notification_no_recipients", action=event.action)
            return

        rendered = render_notification(event.action, event.context)
        if rendered is None:
            return
        subject, body = rendered

        result = await self.sender(recipients, subject, body)
        logger.info(
            "notification_sent",
            action=event.action,
            recipients=recipients,
            success=result,
        )
