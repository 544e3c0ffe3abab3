"""
Telephony capability — phone calls and SMS.
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Optional
from xml.sax.saxutils import escape

from .base_service import ServiceResult, SimulatedService

logger = logging.getLogger(__name__)

CALL_STATUS_EVENTS = ["initiated", "ringing", "answered", "completed"]


def build_twiml(message: str, voice: str = "alice") -> str:
    """Render the TwiML document that reads `message` aloud."""
    return f'<Response><Say voice="{voice}">{escape(message)}</Say></Response>'


class TelephonyService(ABC):
    """Places calls and sends text messages."""

    @abstractmethod
    async def make_call(self, to: str, message: str, callback: Optional[str] = None) -> ServiceResult:
        """Call `to` and read `message`. data: call_sid, status, duration."""

    @abstractmethod
    async def get_call_status(self, call_sid: str) -> ServiceResult:
        """data: status, duration, start_time, end_time."""

    @abstractmethod
    async def send_sms(self, to: str, message: str) -> ServiceResult:
        """data: message_sid."""


class MockTelephonyService(SimulatedService, TelephonyService):
    """In-process telephony: calls always 'complete' unless the simulated call fails."""

    def __init__(self, from_number: str = "+15550000000", **kwargs):
        super().__init__(**kwargs)
        self.from_number = from_number
        self._call_log: dict = {}

    async def make_call(self, to: str, message: str, callback: Optional[str] = None) -> ServiceResult:
        if not to:
            return ServiceResult.fail("Missing destination number")

        twiml = build_twiml(message)
        success = await self._simulate("make_call", to=to, twiml=twiml, callback=callback)
        if not success:
            logger.error(f"Call to {to} failed (simulated)")
            return ServiceResult.fail("No answer, left voicemail", status="no-answer")

        call_sid = f"CA{uuid.uuid4().hex}"
        duration = self._rng.randint(30, 360)
        self._call_log[call_sid] = {
            "to": to,
            "status": "completed",
            "duration": str(duration),
            "start_time": time.time(),
        }
        logger.info(f"Call initiated to {to}, SID: {call_sid}")
        return ServiceResult.ok(call_sid=call_sid, status="completed", duration=str(duration))

    async def get_call_status(self, call_sid: str) -> ServiceResult:
        call = self._call_log.get(call_sid)
        if call is None:
            return ServiceResult.fail(f"Unknown call: {call_sid}", status="unknown")
        return ServiceResult.ok(status=call["status"], duration=call["duration"])

    async def send_sms(self, to: str, message: str) -> ServiceResult:
        if not to:
            return ServiceResult.fail("Missing destination number")

        success = await self._simulate("send_sms", to=to, body=message)
        if not success:
            return ServiceResult.fail("SMS delivery failed")
        return ServiceResult.ok(message_sid=f"SM{uuid.uuid4().hex}")
