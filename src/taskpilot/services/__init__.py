"""
External capability interfaces and their mock implementations.

- TelephonyService: calls and SMS
- CalendarService: events and availability
- EmailService: follow-up email
- ChatNotifier: team chat notifications
"""

import random
from dataclasses import dataclass
from typing import Optional, Tuple

from .base_service import ServiceResult, SimulatedService
from .calendar_service import CalendarEvent, CalendarService, EventTime, MockCalendarService
from .chat import ChatNotifier, MockChatNotifier
from .email_service import EmailService, MockEmailService
from .telephony import MockTelephonyService, TelephonyService, build_twiml


@dataclass
class ServiceBundle:
    """The capabilities available to agents."""
    telephony: TelephonyService
    calendar: CalendarService
    email: EmailService
    chat: Optional[ChatNotifier] = None


def create_mock_services(
    mock_delay: Tuple[float, float] = (0.0, 0.0),
    success_rate: float = 1.0,
    seed: Optional[int] = None,
) -> ServiceBundle:
    """Build mock capabilities sharing one random source."""
    rng = random.Random(seed)
    options = {"mock_delay": mock_delay, "success_rate": success_rate, "rng": rng}
    return ServiceBundle(
        telephony=MockTelephonyService(**options),
        calendar=MockCalendarService(**options),
        email=MockEmailService(**options),
        # Chat notifications are not part of the simulated failure budget
        chat=MockChatNotifier(rng=rng),
    )


__all__ = [
    "ServiceResult",
    "SimulatedService",
    "ServiceBundle",
    "create_mock_services",
    "TelephonyService",
    "MockTelephonyService",
    "build_twiml",
    "CalendarService",
    "CalendarEvent",
    "EventTime",
    "MockCalendarService",
    "EmailService",
    "MockEmailService",
    "ChatNotifier",
    "MockChatNotifier",
]
