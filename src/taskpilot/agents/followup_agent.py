"""
Follow-Up Agent — follow-up email through the email capability.
"""

import logging
from typing import Any, Dict, Optional

from ..services import EmailService
from ..storage.models import AgentType
from .base_agent import AgentExecutionError, BaseAgent, as_list, first_param

logger = logging.getLogger(__name__)


class FollowUpAgent(BaseAgent):
    """
    Sends follow-up messages to one or more recipients.

    Params:
        recipients / to / emails / email / attendees / recipient: who gets the email
        subject: defaults to "Follow-up: <description>"
        body / message / content: defaults to the description
    """

    agent_type = AgentType.FOLLOWUP
    default_name = "Follow-up Agent"
    default_capabilities = ["email_sending", "follow_up_management", "communication"]
    stats_counters = ("emailsSent", "totalEmails")
    integration = ("SendGrid", "emailsSent")

    def __init__(self, email: EmailService, name: Optional[str] = None, capabilities=None):
        super().__init__(name=name, capabilities=capabilities)
        self.email = email

    async def execute(
        self,
        action: str,
        params: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        context = context or {}
        recipients = as_list(first_param(params, "recipients", "to", "emails", "email", "attendees", "recipient"))
        if not recipients:
            raise AgentExecutionError("No recipients for follow-up", code="INVALID_ARGUMENT")

        description = context.get("description") or action.replace("_", " ")
        subject = str(first_param(params, "subject", default=f"Follow-up: {description[:60]}"))
        body = str(first_param(params, "body", "message", "content", default=description))

        data = self.require_success(await self.email.send_email(recipients, subject, body), "send_email")
        logger.info(f"[{self.name}] Follow-up sent to {len(recipients)} recipient(s)")

        return {
            "success": True,
            "emailsSent": data["emails_sent"],
            "deliveryStatus": "All emails delivered successfully",
            "trackingIds": data["tracking_ids"],
        }
