"""
Tests for background sub-task execution, bookkeeping and roll-up.
"""

import asyncio
import json
from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from conftest import FakeWebSocket
from taskpilot.agents import DEFAULT_AGENTS, AgentRegistry, BaseAgent, build_default_registry
from taskpilot.orchestrator import SubTask, TaskAssigner, TaskExecutor
from taskpilot.services import create_mock_services
from taskpilot.storage import ActivityType, AgentStatus, AgentType, TaskStatus

USER = "user-1"


@pytest.fixture
def seeded(storage):
    for agent in DEFAULT_AGENTS:
        storage.create_agent(agent["name"], agent["type"], agent["capabilities"], agent["stats"])
    storage.create_integration("Twilio", "communication", usage={"callsToday": 12, "callsLimit": 100})
    storage.ensure_user(USER)
    return storage


@pytest.fixture
def executor(seeded, registry, hub, services):
    return TaskExecutor(seeded, registry, hub=hub, chat=services.chat, start_delay=0)


def make_task(storage, *sub_tasks):
    """Create a task and assign each SubTask; returns (task, agent_tasks)."""
    task = storage.create_task(USER, "Call the client and book a meeting", [])
    assigner = TaskAssigner(storage)
    agent_tasks = [assigner.assign(s.type, task.id, s) for s in sub_tasks]
    return task, agent_tasks


CALL = SubTask(type="communication", action="make_call", description="Call the client",
               parameters={"phone": "+15551234567"})
BOOK = SubTask(type="booking", action="schedule_meeting", description="Book a review",
               parameters={"start_time": "2030-01-15T14:00:00"})


class TestSuccessfulRun:

    @pytest.mark.asyncio
    async def test_sub_task_completes(self, seeded, executor):
        task, (agent_task,) = make_task(seeded, CALL)

        done = await executor.run(agent_task.id)

        assert done.status == TaskStatus.COMPLETED
        assert done.result["success"] is True
        assert done.result["callSid"].startswith("CA")
        assert done.started_at is not None and done.completed_at is not None

    @pytest.mark.asyncio
    async def test_agent_released_and_counters_bumped(self, seeded, executor):
        task, (agent_task,) = make_task(seeded, CALL)
        await executor.run(agent_task.id)

        agent = seeded.get_agent(agent_task.agent_id)
        assert agent.status == AgentStatus.ACTIVE
        assert agent.current_task is None
        assert agent.stats["callsToday"] == 1
        assert agent.stats["totalCalls"] == 1
        assert agent.stats["successRate"] == 94
        assert seeded.get_integration("Twilio").usage["callsToday"] == 13

    @pytest.mark.asyncio
    async def test_parent_completed_when_all_sub_tasks_complete(self, seeded, executor):
        task, agent_tasks = make_task(seeded, CALL, BOOK)

        await executor.run(agent_tasks[0].id)
        assert seeded.get_task(task.id).status == TaskStatus.PENDING

        await executor.run(agent_tasks[1].id)
        parent = seeded.get_task(task.id)
        assert parent.status == TaskStatus.COMPLETED
        assert parent.results["completed"] == 2
        assert set(parent.results["subTasks"]) == {str(t.id) for t in agent_tasks}

    @pytest.mark.asyncio
    async def test_activities_written(self, seeded, executor):
        task, (agent_task,) = make_task(seeded, CALL)
        await executor.run(agent_task.id)

        titles = [a.title for a in reversed(seeded.get_user_activities(USER))]
        assert titles == [
            "Communication Agent started task",
            "Communication Agent completed task",
            "Task completed",
        ]
        assert seeded.get_user_activities(USER)[0].type == ActivityType.TASK_UPDATE


class TestFailedRun:

    @pytest.mark.asyncio
    async def test_capability_failure(self, seeded, hub):
        services = create_mock_services(success_rate=0.0)
        executor = TaskExecutor(seeded, build_default_registry(services), hub=hub, start_delay=0)
        task, (agent_task,) = make_task(seeded, CALL)

        done = await executor.run(agent_task.id)

        assert done.status == TaskStatus.FAILED
        assert done.result["error"] == "No answer, left voicemail"
        assert done.result["code"] == "UNAVAILABLE"
        assert seeded.get_task(task.id).status == TaskStatus.FAILED

        agent = seeded.get_agent(agent_task.agent_id)
        assert agent.status == AgentStatus.ACTIVE
        assert agent.stats["callsToday"] == 0

    @pytest.mark.asyncio
    async def test_mixed_outcome_fails_parent(self, seeded, hub):
        services = create_mock_services()
        services.telephony.success_rate = 0.0
        executor = TaskExecutor(seeded, build_default_registry(services), hub=hub, start_delay=0)
        task, agent_tasks = make_task(seeded, CALL, BOOK)

        for agent_task in agent_tasks:
            await executor.run(agent_task.id)

        parent = seeded.get_task(task.id)
        assert parent.status == TaskStatus.FAILED
        assert parent.results["completed"] == 1
        assert parent.results["failed"] == 1

    @pytest.mark.asyncio
    async def test_agent_without_handler(self, seeded, executor):
        seeded.create_agent("Travel Agent", "travel", [])
        task, (agent_task,) = make_task(seeded, SubTask(type="travel", action="book_flight", description="Fly"))

        done = await executor.run(agent_task.id)
        assert done.status == TaskStatus.FAILED
        assert done.result["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unknown_sub_task(self, executor):
        with pytest.raises(KeyError):
            await executor.run(999)


class TestNotifications:

    @pytest.mark.asyncio
    async def test_owner_receives_updates(self, seeded, executor, hub):
        ws = FakeWebSocket()
        await hub.handle_message(ws, json.dumps({"type": "auth", "userId": USER}))
        task, (agent_task,) = make_task(seeded, CALL)

        await executor.run(agent_task.id)

        statuses = [m["data"]["status"] for m in ws.of_type("task_update")]
        assert statuses == ["in_progress", "completed", "completed"]
        assert ws.of_type("agent_update")[-1]["data"]["status"] == "active"
        assert len(ws.of_type("new_activity")) == 3

    @pytest.mark.asyncio
    async def test_chat_messages(self, seeded, executor, services):
        task, (agent_task,) = make_task(seeded, CALL)
        await executor.run(agent_task.id)

        texts = [m["text"] for m in services.chat.messages]
        assert texts == ["Agent task started: Call the client", "Agent task completed: Call the client"]

    @pytest.mark.asyncio
    async def test_broken_connection_does_not_affect_status(self, seeded, executor, hub):
        ws = FakeWebSocket()
        await hub.handle_message(ws, json.dumps({"type": "auth", "userId": USER}))
        ws.fail_on_send = True
        task, (agent_task,) = make_task(seeded, CALL)

        done = await executor.run(agent_task.id)
        assert done.status == TaskStatus.COMPLETED
        assert USER not in hub.clients

    @pytest.mark.asyncio
    async def test_failing_chat_is_tolerated(self, seeded, registry):
        chat = AsyncMock()
        chat.send_task_notification.side_effect = RuntimeError("chat down")
        executor = TaskExecutor(seeded, registry, chat=chat, start_delay=0)
        task, (agent_task,) = make_task(seeded, CALL)

        assert (await executor.run(agent_task.id)).status == TaskStatus.COMPLETED


class TestDispatch:

    @pytest.mark.asyncio
    async def test_dispatch_and_wait_idle(self, seeded, executor):
        task, agent_tasks = make_task(seeded, CALL, BOOK)
        for agent_task in agent_tasks:
            executor.dispatch(agent_task.id)
        assert executor.in_flight == 2

        await executor.wait_idle()

        assert executor.in_flight == 0
        assert seeded.get_task(task.id).status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_dispatch_of_missing_sub_task_is_logged(self, executor, caplog):
        executor.dispatch(12345)
        await executor.wait_idle()
        assert "Agent task execution failed: 12345" in caplog.text

    @pytest.mark.asyncio
    async def test_llm_summary(self, seeded, registry):
        interpreter = AsyncMock()
        interpreter.generate_agent_response.return_value = "Client confirmed."
        executor = TaskExecutor(seeded, registry, start_delay=0, interpreter=interpreter, llm_summaries=True)
        task, (agent_task,) = make_task(seeded, CALL)

        done = await executor.run(agent_task.id)
        assert done.result["summary"] == "Client confirmed."


class YieldingWebSocket(FakeWebSocket):
    """Socket whose sends yield to the event loop, like a real network write."""

    async def send_text(self, text: str):
        await asyncio.sleep(0)
        await super().send_text(text)


class TimestampAgent(BaseAgent):
    """Returns a result that cannot be stored as JSON."""

    agent_type = AgentType.COMMUNICATION
    default_name = "Timestamp Agent"

    async def execute(self, action, params, context=None):
        return {"when": datetime(2030, 1, 15, 14, 0)}


class TestConcurrentCompletion:

    @pytest.mark.asyncio
    async def test_parent_rolled_up_once(self, seeded, executor, hub):
        ws = YieldingWebSocket()
        await hub.handle_message(ws, json.dumps({"type": "auth", "userId": USER}))
        task, agent_tasks = make_task(seeded, CALL, BOOK)

        for agent_task in agent_tasks:
            executor.dispatch(agent_task.id)
        await executor.wait_idle()

        titles = [a.title for a in seeded.get_user_activities(USER)]
        assert titles.count("Task completed") == 1
        parent_updates = [m for m in ws.of_type("task_update") if "agentTaskId" not in m["data"]]
        assert len(parent_updates) == 1
        assert seeded.get_task(task.id).status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_roll_up_of_finished_task_is_noop(self, seeded, executor):
        task, (agent_task,) = make_task(seeded, CALL)
        await executor.run(agent_task.id)

        assert await executor._roll_up(seeded.get_task(task.id)) is None
        assert [a.title for a in seeded.get_user_activities(USER)].count("Task completed") == 1


class TestUnexpectedFailure:

    @pytest.mark.asyncio
    async def test_unstorable_result_releases_agent_and_fails_parent(self, seeded, hub):
        executor = TaskExecutor(seeded, AgentRegistry([TimestampAgent()]), hub=hub, start_delay=0)
        task, (agent_task,) = make_task(seeded, CALL)

        executor.dispatch(agent_task.id)
        await executor.wait_idle()

        failed = seeded.get_agent_task(agent_task.id)
        assert failed.status == TaskStatus.FAILED
        assert failed.result["error"] == "Task execution failed"
        assert seeded.get_agent(agent_task.agent_id).status == AgentStatus.ACTIVE
        assert seeded.get_task(task.id).status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_agent_can_be_assigned_again(self, seeded, hub):
        executor = TaskExecutor(seeded, AgentRegistry([TimestampAgent()]), hub=hub, start_delay=0)
        task, (agent_task,) = make_task(seeded, CALL)
        executor.dispatch(agent_task.id)
        await executor.wait_idle()

        again = TaskAssigner(seeded).assign("communication", task.id, CALL)
        assert again is not None
        assert again.agent_id == agent_task.agent_id
