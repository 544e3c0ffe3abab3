"""
Booking Agent — meetings and room reservations through the calendar capability.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from ..services import CalendarEvent, CalendarService, EventTime
from ..storage.models import AgentType
from .base_agent import AgentExecutionError, BaseAgent, as_list, first_param

logger = logging.getLogger(__name__)

AVAILABILITY_KEYWORDS = ("availab", "find_slot", "free_slot", "check")
CANCEL_KEYWORDS = ("cancel", "delete")
RESCHEDULE_KEYWORDS = ("reschedule", "update", "move")

DEFAULT_DURATION_MINUTES = 60
SEARCH_WINDOW_DAYS = 7


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 value; free-form text like 'next Tuesday' gives None."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


class BookingAgent(BaseAgent):
    """
    Books meetings, checks availability and cancels events.

    Params:
        title / summary / meeting: event title (falls back to the description)
        start_time / start / datetime: ISO start; the first free slot otherwise
        duration_minutes / duration: meeting length, 60 by default
        room / location: where the meeting takes place
        attendees / participants: attendee emails or names
        event_id: required for cancel and reschedule
    """

    agent_type = AgentType.BOOKING
    default_name = "Booking Agent"
    default_capabilities = ["calendar_management", "room_booking", "scheduling"]
    stats_counters = ("bookingsToday", "totalBookings")
    integration = ("Google Calendar", "eventsScheduled")

    def __init__(
        self,
        calendar: CalendarService,
        name: Optional[str] = None,
        capabilities=None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        super().__init__(name=name, capabilities=capabilities)
        self.calendar = calendar
        self._clock = clock

    async def execute(
        self,
        action: str,
        params: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        context = context or {}
        action_lower = action.lower()

        if any(keyword in action_lower for keyword in CANCEL_KEYWORDS):
            return await self._cancel(params)
        if any(keyword in action_lower for keyword in RESCHEDULE_KEYWORDS):
            return await self._reschedule(params)
        if any(keyword in action_lower for keyword in AVAILABILITY_KEYWORDS):
            return await self._check_availability(params)
        return await self._book(params, context)

    # =========================================================================
    # Actions
    # =========================================================================

    async def _book(self, params: Dict[str, Any], context: Dict[str, Any]) -> Dict[str, Any]:
        duration = self._duration(params)
        requested = first_param(params, "start_time", "start", "datetime", "time")
        start = parse_datetime(requested)

        if start is None:
            slots = await self._find_slots(params, duration)
            if not slots:
                raise AgentExecutionError("No available time slots", code="RESOURCE_EXHAUSTED")
            start = datetime.fromisoformat(slots[0]["start"])

        end = start + timedelta(minutes=duration)
        summary = str(first_param(
            params, "title", "summary", "meeting", "subject",
            default=context.get("description") or "Meeting",
        ))
        room = first_param(params, "room", "location", "venue")

        event = CalendarEvent(
            summary=summary,
            description=context.get("description"),
            start=EventTime(date_time=start.isoformat()),
            end=EventTime(date_time=end.isoformat()),
            attendees=[{"email": email} for email in self._attendees(params)],
            location=room,
        )
        data = self.require_success(await self.calendar.create_event(event), "create_event")

        result = {
            "success": True,
            "bookingId": data["event_id"],
            "eventUrl": data["event_url"],
            "roomBooked": room or "Virtual",
            "timeSlot": f"{start.isoformat()} - {end.isoformat()}",
        }
        if requested and parse_datetime(requested) is None:
            result["requestedTime"] = requested
        return result

    async def _check_availability(self, params: Dict[str, Any]) -> Dict[str, Any]:
        slots = await self._find_slots(params, self._duration(params))
        return {
            "success": True,
            "availableSlots": slots,
            "slotCount": len(slots),
        }

    async def _cancel(self, params: Dict[str, Any]) -> Dict[str, Any]:
        event_id = self._event_id(params)
        self.require_success(await self.calendar.delete_event(event_id), "delete_event")
        return {"success": True, "bookingId": event_id, "status": "cancelled"}

    async def _reschedule(self, params: Dict[str, Any]) -> Dict[str, Any]:
        event_id = self._event_id(params)
        start = parse_datetime(first_param(params, "start_time", "start", "datetime"))
        if start is None:
            raise AgentExecutionError("Missing or invalid start_time for reschedule", code="INVALID_ARGUMENT")

        end = start + timedelta(minutes=self._duration(params))
        updates = {
            "start": {"date_time": start.isoformat()},
            "end": {"date_time": end.isoformat()},
        }
        self.require_success(await self.calendar.update_event(event_id, updates), "update_event")
        return {
            "success": True,
            "bookingId": event_id,
            "status": "rescheduled",
            "timeSlot": f"{start.isoformat()} - {end.isoformat()}",
        }

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _find_slots(self, params: Dict[str, Any], duration: int) -> List[Dict[str, str]]:
        window_start = (self._clock() + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)
        window_end = window_start + timedelta(days=SEARCH_WINDOW_DAYS)
        result = await self.calendar.find_available_slots(
            window_start.isoformat(),
            window_end.isoformat(),
            duration,
            self._attendees(params),
        )
        return self.require_success(result, "find_available_slots").get("available_slots", [])

    @staticmethod
    def _duration(params: Dict[str, Any]) -> int:
        raw = first_param(params, "duration_minutes", "duration", default=DEFAULT_DURATION_MINUTES)
        try:
            duration = int(raw)
        except (TypeError, ValueError):
            return DEFAULT_DURATION_MINUTES
        return duration if duration > 0 else DEFAULT_DURATION_MINUTES

    @staticmethod
    def _attendees(params: Dict[str, Any]) -> List[str]:
        return as_list(first_param(params, "attendees", "participants", "attendee_emails"))

    @staticmethod
    def _event_id(params: Dict[str, Any]) -> str:
        event_id = first_param(params, "event_id", "booking_id", "bookingId")
        if not event_id:
            raise AgentExecutionError("Missing required parameter: event_id", code="INVALID_ARGUMENT")
        return str(event_id)
