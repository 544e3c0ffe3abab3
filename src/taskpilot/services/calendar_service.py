"""
Calendar capability — events and availability.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .base_service import ServiceResult, SimulatedService

logger = logging.getLogger(__name__)

EVENT_URL_TEMPLATE = "https://calendar.google.com/calendar/event?eid={event_id}"

# Candidate meeting start hours when searching for free slots
WORKING_HOURS = (10, 14, 15)


class EventTime(BaseModel):
    date_time: str
    time_zone: Optional[str] = None


class Attendee(BaseModel):
    email: str
    display_name: Optional[str] = None


class CalendarEvent(BaseModel):
    id: Optional[str] = None
    summary: str = Field(..., min_length=1)
    description: Optional[str] = None
    start: EventTime
    end: EventTime
    attendees: List[Attendee] = Field(default_factory=list)
    location: Optional[str] = None


class CalendarService(ABC):
    """Creates, finds and manages calendar events."""

    @abstractmethod
    async def create_event(self, event: CalendarEvent) -> ServiceResult:
        """data: event_id, event_url."""

    @abstractmethod
    async def find_available_slots(
        self,
        start_date: str,
        end_date: str,
        duration_minutes: int,
        attendee_emails: Optional[List[str]] = None,
    ) -> ServiceResult:
        """data: available_slots [{start, end}] (ISO 8601)."""

    @abstractmethod
    async def update_event(self, event_id: str, updates: Dict[str, Any]) -> ServiceResult:
        """Apply partial updates to an event."""

    @abstractmethod
    async def delete_event(self, event_id: str) -> ServiceResult:
        """Remove an event."""


class MockCalendarService(SimulatedService, CalendarService):
    """In-memory calendar."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.events: Dict[str, CalendarEvent] = {}

    async def create_event(self, event: CalendarEvent) -> ServiceResult:
        success = await self._simulate("create_event", summary=event.summary)
        if not success:
            return ServiceResult.fail("Calendar event creation failed")

        event_id = f"event_{uuid.uuid4().hex[:12]}"
        self.events[event_id] = event.model_copy(update={"id": event_id})
        logger.info(
            f"Calendar event created: {event_id} '{event.summary}' "
            f"{event.start.date_time} - {event.end.date_time}"
        )
        return ServiceResult.ok(event_id=event_id, event_url=EVENT_URL_TEMPLATE.format(event_id=event_id))

    async def find_available_slots(
        self,
        start_date: str,
        end_date: str,
        duration_minutes: int,
        attendee_emails: Optional[List[str]] = None,
    ) -> ServiceResult:
        try:
            start = datetime.fromisoformat(start_date)
            end = datetime.fromisoformat(end_date)
        except ValueError as e:
            return ServiceResult.fail(f"Invalid date range: {e}")
        if duration_minutes <= 0:
            return ServiceResult.fail("Duration must be positive")

        success = await self._simulate(
            "find_available_slots",
            start_date=start_date,
            end_date=end_date,
            attendees=attendee_emails or [],
        )
        if not success:
            return ServiceResult.fail("Failed to find available slots")

        taken = {e.start.date_time for e in self.events.values()}
        length = timedelta(minutes=duration_minutes)
        slots = []
        day = start.replace(hour=0, minute=0, second=0, microsecond=0)
        while day <= end:
            for hour in WORKING_HOURS:
                slot_start = day.replace(hour=hour)
                slot_end = slot_start + length
                if slot_start < start or slot_end > end:
                    continue
                if slot_start.isoformat() in taken:
                    continue
                slots.append({"start": slot_start.isoformat(), "end": slot_end.isoformat()})
            day += timedelta(days=1)

        return ServiceResult.ok(available_slots=slots)

    async def update_event(self, event_id: str, updates: Dict[str, Any]) -> ServiceResult:
        event = self.events.get(event_id)
        if event is None:
            return ServiceResult.fail(f"Event not found: {event_id}")

        success = await self._simulate("update_event", event_id=event_id, updates=updates)
        if not success:
            return ServiceResult.fail("Calendar event update failed")

        merged = {**event.model_dump(), **updates}
        self.events[event_id] = CalendarEvent.model_validate(merged)
        logger.info(f"Calendar event updated: {event_id}")
        return ServiceResult.ok(event_id=event_id)

    async def delete_event(self, event_id: str) -> ServiceResult:
        if event_id not in self.events:
            return ServiceResult.fail(f"Event not found: {event_id}")

        success = await self._simulate("delete_event", event_id=event_id)
        if not success:
            return ServiceResult.fail("Calendar event deletion failed")

        del self.events[event_id]
        logger.info(f"Calendar event deleted: {event_id}")
        return ServiceResult.ok(event_id=event_id)
