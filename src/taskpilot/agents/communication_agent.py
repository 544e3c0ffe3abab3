"""
Communication Agent — phone calls and SMS through the telephony capability.
"""

import logging
from typing import Any, Dict, Optional

from ..services import TelephonyService
from ..storage.models import AgentType
from .base_agent import AgentExecutionError, BaseAgent, first_param

logger = logging.getLogger(__name__)

SMS_KEYWORDS = ("sms", "text")


def format_duration(seconds: Any) -> str:
    """'125' -> '2m 5s'"""
    try:
        total = int(seconds)
    except (TypeError, ValueError):
        return "0m 0s"
    return f"{total // 60}m {total % 60}s"


class CommunicationAgent(BaseAgent):
    """
    Places phone calls (default) or sends text messages.

    Actions containing "sms" or "text" send an SMS, anything else is a call.

    Params:
        phone / phone_number / to / contact / recipient: who to reach
        message / script / topic: what to say (falls back to the description)
    """

    agent_type = AgentType.COMMUNICATION
    default_name = "Communication Agent"
    default_capabilities = ["phone_calls", "voice_interaction", "customer_contact"]
    stats_counters = ("callsToday", "totalCalls")
    integration = ("Twilio", "callsToday")

    def __init__(self, telephony: TelephonyService, name: Optional[str] = None, capabilities=None):
        super().__init__(name=name, capabilities=capabilities)
        self.telephony = telephony

    async def execute(
        self,
        action: str,
        params: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        context = context or {}
        to = first_param(params, "phone", "phone_number", "to", "contact", "recipient", "number")
        if not to:
            raise AgentExecutionError("Missing required parameter: phone", code="INVALID_ARGUMENT")

        message = first_param(
            params, "message", "script", "topic",
            default=context.get("description") or f"Hello, this is an automated call regarding {action}.",
        )

        if any(keyword in action.lower() for keyword in SMS_KEYWORDS):
            return await self._send_sms(str(to), str(message))
        return await self._make_call(str(to), str(message))

    async def _make_call(self, to: str, message: str) -> Dict[str, Any]:
        result = await self.telephony.make_call(to, message)
        data = self.require_success(result, "make_call")

        logger.info(f"[{self.name}] Call to {to} completed: {data['call_sid']}")
        return {
            "success": True,
            "callSid": data["call_sid"],
            "status": data.get("status", "completed"),
            "callDuration": format_duration(data.get("duration")),
            "contactReached": True,
            "response": "Contact confirmed and acknowledged the message",
        }

    async def _send_sms(self, to: str, message: str) -> Dict[str, Any]:
        result = await self.telephony.send_sms(to, message)
        data = self.require_success(result, "send_sms")

        return {
            "success": True,
            "messageSid": data["message_sid"],
            "status": "sent",
            "contactReached": True,
        }
