"""
Tests for the mock capabilities: telephony, calendar, email, chat.
"""

import pytest

from taskpilot.services import (
    CalendarEvent,
    EventTime,
    MockCalendarService,
    MockChatNotifier,
    MockEmailService,
    MockTelephonyService,
    ServiceResult,
    build_twiml,
    create_mock_services,
)
from taskpilot.services.chat import build_alert_blocks, build_task_blocks


def _event(start="2030-01-15T10:00:00", end="2030-01-15T11:00:00", summary="Review"):
    return CalendarEvent(summary=summary, start=EventTime(date_time=start), end=EventTime(date_time=end))


class TestSimulation:

    def test_rejects_invalid_success_rate(self):
        with pytest.raises(ValueError):
            MockEmailService(success_rate=1.5)

    def test_rejects_inverted_delay(self):
        with pytest.raises(ValueError):
            MockEmailService(mock_delay=(2.0, 1.0))

    def test_bundle_shares_settings(self):
        bundle = create_mock_services(success_rate=0.0, seed=1)
        assert bundle.telephony.success_rate == 0.0
        assert bundle.email.success_rate == 0.0
        # chat always delivers
        assert bundle.chat.success_rate == 1.0

    def test_result_helpers(self):
        assert ServiceResult.ok(a=1).data == {"a": 1}
        failed = ServiceResult.fail("boom", status="x")
        assert not failed.success and failed.error == "boom" and failed.data == {"status": "x"}


class TestTelephony:

    def test_twiml_escapes_message(self):
        assert build_twiml("A & B") == '<Response><Say voice="alice">A &amp; B</Say></Response>'

    @pytest.mark.asyncio
    async def test_call_success(self):
        telephony = MockTelephonyService()
        result = await telephony.make_call("+15551234567", "Hello")
        assert result.success
        assert result.data["call_sid"].startswith("CA")
        assert 30 <= int(result.data["duration"]) <= 360

        status = await telephony.get_call_status(result.data["call_sid"])
        assert status.data["status"] == "completed"

    @pytest.mark.asyncio
    async def test_call_failure_reports_no_answer(self):
        result = await MockTelephonyService(success_rate=0.0).make_call("+15551234567", "Hello")
        assert not result.success
        assert result.error == "No answer, left voicemail"
        assert result.data["status"] == "no-answer"

    @pytest.mark.asyncio
    async def test_call_without_number(self):
        telephony = MockTelephonyService()
        result = await telephony.make_call("", "Hello")
        assert not result.success
        assert telephony.calls == []

    @pytest.mark.asyncio
    async def test_sms(self):
        result = await MockTelephonyService().send_sms("+15551234567", "Hi")
        assert result.data["message_sid"].startswith("SM")


class TestCalendar:

    @pytest.mark.asyncio
    async def test_create_event(self):
        calendar = MockCalendarService()
        result = await calendar.create_event(_event())
        event_id = result.data["event_id"]
        assert event_id in calendar.events
        assert event_id in result.data["event_url"]

    @pytest.mark.asyncio
    async def test_slots_skip_taken_times(self):
        calendar = MockCalendarService()
        await calendar.create_event(_event())
        result = await calendar.find_available_slots("2030-01-15T00:00:00", "2030-01-15T23:59:00", 60)
        starts = [slot["start"] for slot in result.data["available_slots"]]
        assert starts == ["2030-01-15T14:00:00", "2030-01-15T15:00:00"]

    @pytest.mark.asyncio
    async def test_slots_reject_bad_input(self):
        calendar = MockCalendarService()
        assert not (await calendar.find_available_slots("tomorrow", "2030-01-16T00:00:00", 60)).success
        assert not (await calendar.find_available_slots("2030-01-15T00:00:00", "2030-01-16T00:00:00", 0)).success

    @pytest.mark.asyncio
    async def test_update_and_delete(self):
        calendar = MockCalendarService()
        event_id = (await calendar.create_event(_event())).data["event_id"]

        updated = await calendar.update_event(event_id, {"summary": "Renamed"})
        assert updated.success
        assert calendar.events[event_id].summary == "Renamed"

        assert (await calendar.delete_event(event_id)).success
        assert not (await calendar.delete_event(event_id)).success


class TestEmail:

    @pytest.mark.asyncio
    async def test_send_to_recipients(self):
        email = MockEmailService()
        result = await email.send_email(["a@example.com", "b@example.com"], "Recap", "Body")
        assert result.data["emails_sent"] == 2
        assert len(result.data["tracking_ids"]) == 2
        assert [m["to"] for m in email.outbox] == ["a@example.com", "b@example.com"]

    @pytest.mark.asyncio
    async def test_no_recipients(self):
        result = await MockEmailService().send_email([], "Recap", "Body")
        assert result.error == "No recipients"

    @pytest.mark.asyncio
    async def test_simulated_failure(self):
        result = await MockEmailService(success_rate=0.0).send_email(["a@example.com"], "Recap", "Body")
        assert result.error == "Some emails failed to send"


class TestChat:

    def test_task_blocks_include_results_when_completed(self):
        blocks = build_task_blocks(1, "Call", "communication", "completed", {"success": True})
        assert len(blocks) == 4
        assert blocks[0]["text"]["text"].startswith("✅")

    def test_task_blocks_skip_results_when_started(self):
        assert len(build_task_blocks(1, "Call", "communication", "started", {"success": True})) == 3

    def test_unknown_status_and_severity(self):
        with pytest.raises(ValueError):
            build_task_blocks(1, "Call", "communication", "paused")
        with pytest.raises(ValueError):
            build_alert_blocks("Title", "Message", "fatal")

    @pytest.mark.asyncio
    async def test_notifications_are_recorded(self):
        chat = MockChatNotifier()
        await chat.send_task_notification(1, "Call the client", "communication", "started")
        await chat.send_agent_update("Booking Agent", "busy", current_task="Book room")
        await chat.send_system_alert("Down", "LLM unavailable", severity="error")

        assert [m["channel"] for m in chat.messages] == ["#agents"] * 3
        assert chat.messages[0]["text"] == "Agent task started: Call the client"
        assert chat.messages[2]["text"] == "System error: Down"
