"""
Tests for end-to-end instruction processing.
"""

import pytest

from conftest import THREE_STEP_PLAN, make_openai_client
from taskpilot.orchestrator import QUICK_EXAMPLES, OrchestrationError, build_orchestrator
from taskpilot.storage import AgentStatus, TaskStatus

USER = "user-1"


def orchestrator_for(settings, storage, services, payload=None, error=None):
    orch = build_orchestrator(
        settings,
        storage=storage,
        services=services,
        llm_client=make_openai_client(payload, error=error),
    )
    orch.initialize_default_agents()
    orch.initialize_default_integrations()
    storage.ensure_user(USER)
    return orch


# =============================================================================
# Seeding
# =============================================================================

class TestSeeding:

    def test_default_agents_and_integrations(self, orchestrator, storage):
        assert [a.name for a in storage.get_all_agents()] == [
            "Communication Agent", "Booking Agent", "Follow-up Agent",
        ]
        assert [i.name for i in storage.get_all_integrations()] == [
            "Twilio", "Google Calendar", "SendGrid", "OpenAI",
        ]

    def test_seeding_is_idempotent(self, orchestrator, storage):
        assert orchestrator.initialize_default_agents() == 0
        assert orchestrator.initialize_default_integrations() == 0
        assert len(storage.get_all_agents()) == 3

    def test_quick_examples(self, orchestrator):
        examples = orchestrator.get_quick_examples()
        assert examples == QUICK_EXAMPLES
        assert len(examples) == 5


# =============================================================================
# Processing
# =============================================================================

class TestProcessInstruction:

    @pytest.mark.asyncio
    async def test_tasks_assigned_and_dispatched(self, orchestrator, storage):
        storage.ensure_user(USER)
        result = await orchestrator.process_instruction(USER, "Call the client and schedule a follow-up")

        assert len(result.agent_task_ids) == 3
        assert result.processed.intent == THREE_STEP_PLAN["intent"]

        task = storage.get_task(result.task_id)
        assert task.status == TaskStatus.IN_PROGRESS
        assert len(task.assigned_agents) == 3
        assert task.processed_tasks[0]["type"] == "communication"
        assert all(a.status == AgentStatus.BUSY for a in storage.get_all_agents())

        await orchestrator.executor.wait_idle()

        assert storage.get_task(result.task_id).status == TaskStatus.COMPLETED
        assert all(a.status == AgentStatus.ACTIVE for a in storage.get_all_agents())

    @pytest.mark.asyncio
    async def test_activities_logged(self, orchestrator, storage):
        storage.ensure_user(USER)
        result = await orchestrator.process_instruction(USER, "Call the client")

        titles = [a.title for a in reversed(storage.get_user_activities(USER))]
        assert titles[:4] == [
            "Natural language processed",
            "Task assigned to communication agent",
            "Task assigned to booking agent",
            "Task assigned to followup agent",
        ]
        processed = storage.get_user_activities(USER)[-1]
        assert processed.metadata == {"intent": THREE_STEP_PLAN["intent"], "confidence": 0.93, "taskCount": 3}

        await orchestrator.executor.wait_idle()

    @pytest.mark.asyncio
    async def test_execution_order_skips_duplicates_and_out_of_range(self, settings, storage, services):
        payload = {**THREE_STEP_PLAN, "executionOrder": [2, 2, 7, 0]}
        orch = orchestrator_for(settings, storage, services, payload)

        result = await orch.process_instruction(USER, "Email then call")
        agent_tasks = [storage.get_agent_task(i) for i in result.agent_task_ids]
        assert [t.type for t in agent_tasks] == ["send_email", "make_call"]

        await orch.executor.wait_idle()

    @pytest.mark.asyncio
    async def test_busy_agent_leaves_second_sub_task_unassigned(self, settings, storage, services):
        call = THREE_STEP_PLAN["tasks"][0]
        payload = {"intent": "Two calls", "tasks": [call, {**call, "description": "Second call"}]}
        orch = orchestrator_for(settings, storage, services, payload)

        result = await orch.process_instruction(USER, "Call twice")
        assert len(result.agent_task_ids) == 1
        assert len(result.processed.tasks) == 2

        await orch.executor.wait_idle()

    @pytest.mark.asyncio
    async def test_nothing_assignable_fails_task(self, settings, storage, services):
        payload = {"intent": "Travel", "tasks": [{"type": "travel", "action": "book_flight"}]}
        orch = orchestrator_for(settings, storage, services, payload)

        result = await orch.process_instruction(USER, "Book a flight")

        assert result.agent_task_ids == []
        assert storage.get_task(result.task_id).status == TaskStatus.FAILED

    @pytest.mark.asyncio
    async def test_empty_plan(self, settings, storage, services):
        orch = orchestrator_for(settings, storage, services, {})
        result = await orch.process_instruction(USER, "Hmm")
        assert result.processed.intent == "Unknown intent"
        assert result.agent_task_ids == []


class TestFailures:

    @pytest.mark.asyncio
    async def test_llm_failure(self, settings, storage, services):
        orch = orchestrator_for(settings, storage, services, error=ConnectionError("LLM unreachable"))

        with pytest.raises(OrchestrationError, match="^Failed to process instruction: LLM unreachable"):
            await orch.process_instruction(USER, "Call the client")

        assert storage.get_user_tasks(USER) == []
        activity = storage.get_user_activities(USER)[0]
        assert activity.title == "Instruction processing failed"
        assert "LLM unreachable" in activity.metadata["error"]

        alert = services.chat.messages[-1]
        assert alert["text"] == "System error: Instruction processing failed"

    @pytest.mark.asyncio
    async def test_stats(self, orchestrator, storage):
        storage.ensure_user(USER)
        await orchestrator.process_instruction(USER, "Call the client")
        stats = orchestrator.get_stats()
        assert stats["in_flight"] == 3
        assert stats["agent_tasks"] == 3

        await orchestrator.executor.wait_idle()
        assert orchestrator.get_stats()["tasks"]["completed"] == 1


class TestRecovery:

    @pytest.mark.asyncio
    async def test_interrupted_work_is_failed_and_agents_freed(self, settings, storage, services):
        crashed = orchestrator_for(settings, storage, services, THREE_STEP_PLAN)
        result = await crashed._process(USER, "Call the client")
        assert all(a.status == AgentStatus.BUSY for a in storage.get_all_agents())

        restarted = orchestrator_for(settings, storage, services, THREE_STEP_PLAN)
        assert restarted.recover_interrupted() == 3

        assert all(a.status == AgentStatus.ACTIVE for a in storage.get_all_agents())
        for agent_task in storage.get_task_agent_tasks(result.task_id):
            assert agent_task.status == TaskStatus.FAILED
            assert agent_task.result["code"] == "ABORTED"
        assert storage.get_task(result.task_id).status == TaskStatus.FAILED

        again = await restarted.process_instruction(USER, "Call the client")
        assert len(again.agent_task_ids) == 3
        await restarted.executor.wait_idle()

    def test_nothing_to_recover(self, orchestrator):
        assert orchestrator.recover_interrupted() == 0
