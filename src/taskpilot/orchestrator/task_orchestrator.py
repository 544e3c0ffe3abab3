"""
Task Orchestrator — from a natural-language instruction to running agents.

Flow of process_instruction():
    1. Interpret the instruction into sub-tasks (LLM)
    2. Create the task record and log the "Natural language processed" activity
    3. Assign sub-tasks in execution order, one activity per assignment
    4. Mark the task in_progress (or failed when nothing could be assigned)
    5. Dispatch every assigned sub-task to the executor
"""

import logging
from datetime import datetime
from typing import Any, List, Optional

from ..agents import DEFAULT_AGENTS, AgentRegistry, build_default_registry
from ..config import Settings
from ..services import ChatNotifier, ServiceBundle, create_mock_services
from ..storage import StorageService
from ..storage.models import ActivityType, AgentStatus, IntegrationType, TaskStatus
from .assigner import TaskAssigner
from .executor import TaskExecutor
from .interpreter import InstructionInterpreter
from .models import InstructionResult, InterpretationError, OrchestrationError

logger = logging.getLogger(__name__)


DEFAULT_INTEGRATIONS = [
    {
        "name": "Twilio",
        "type": IntegrationType.COMMUNICATION,
        "config": {"apiKey": "configured"},
        "usage": {"callsToday": 12, "callsLimit": 100},
    },
    {
        "name": "Google Calendar",
        "type": IntegrationType.CALENDAR,
        "config": {"clientId": "configured"},
        "usage": {"eventsScheduled": 8, "eventsLimit": 50},
    },
    {
        "name": "SendGrid",
        "type": IntegrationType.EMAIL,
        "config": {"apiKey": "configured"},
        "usage": {"emailsSent": 24, "emailsLimit": 100},
    },
    {
        "name": "OpenAI",
        "type": IntegrationType.AI,
        "config": {"apiKey": "configured"},
        "usage": {"tokensUsed": 1200, "tokensLimit": 10000},
    },
]

QUICK_EXAMPLES = [
    "Schedule team meeting for next Tuesday at 2 PM and send invitations to all team members",
    "Follow up on the proposal we sent last week with a phone call and email reminder",
    "Book travel arrangements for the conference next month including flight and hotel",
    "Call the client to discuss project timeline and then schedule a follow-up meeting",
    "Reserve the main conference room for tomorrow's presentation and notify all attendees",
]


class TaskOrchestrator:
    """
    Coordinates interpretation, assignment and execution of instructions.
    """

    def __init__(
        self,
        storage: StorageService,
        interpreter: InstructionInterpreter,
        executor: TaskExecutor,
        chat: Optional[ChatNotifier] = None,
    ):
        self.storage = storage
        self.interpreter = interpreter
        self.executor = executor
        self.assigner = TaskAssigner(storage)
        self.chat = chat

        logger.info("TaskOrchestrator initialized")

    # =========================================================================
    # Seeding
    # =========================================================================

    def initialize_default_agents(self) -> int:
        """Create the built-in agent records when none exist."""
        if self.storage.get_all_agents():
            return 0
        for agent in DEFAULT_AGENTS:
            self.storage.create_agent(
                name=agent["name"],
                type=agent["type"],
                capabilities=agent["capabilities"],
                stats=dict(agent["stats"]),
            )
        logger.info(f"Created {len(DEFAULT_AGENTS)} default agents")
        return len(DEFAULT_AGENTS)

    def initialize_default_integrations(self) -> int:
        """Create the built-in integration records when none exist."""
        if self.storage.get_all_integrations():
            return 0
        for integration in DEFAULT_INTEGRATIONS:
            self.storage.create_integration(
                name=integration["name"],
                type=integration["type"],
                config=dict(integration["config"]),
                usage=dict(integration["usage"]),
            )
        logger.info(f"Created {len(DEFAULT_INTEGRATIONS)} default integrations")
        return len(DEFAULT_INTEGRATIONS)

    def recover_interrupted(self) -> int:
        """
        Fail sub-tasks left open by a previous process and free their agents.

        Only call at startup, before anything is dispatched.

        Returns:
            Number of agents returned to active
        """
        interrupted = {"error": "Interrupted before completion", "code": "ABORTED"}
        released = 0
        parents = set()

        for agent in self.storage.get_all_agents():
            for agent_task in self.storage.get_agent_tasks(agent.id):
                if agent_task.status.is_terminal:
                    continue
                self.storage.update_agent_task(
                    agent_task.id,
                    status=TaskStatus.FAILED,
                    result=interrupted,
                    completed_at=datetime.utcnow(),
                )
                parents.add(agent_task.task_id)
            if agent.status == AgentStatus.BUSY:
                self.storage.update_agent_status(agent.id, AgentStatus.ACTIVE)
                released += 1

        for task_id in parents:
            task = self.storage.get_task(task_id)
            if task is not None and not task.status.is_terminal:
                self.storage.update_task_status(task_id, TaskStatus.FAILED, results=interrupted)

        if released or parents:
            logger.warning(f"Recovered {len(parents)} interrupted task(s), released {released} agent(s)")
        return released

    @staticmethod
    def get_quick_examples() -> List[str]:
        return list(QUICK_EXAMPLES)

    # =========================================================================
    # Processing
    # =========================================================================

    async def process_instruction(self, user_id: str, instruction: str) -> InstructionResult:
        """
        Process a natural-language instruction for `user_id`.

        Raises:
            OrchestrationError: If interpretation or bookkeeping fails
        """
        logger.info(f"Processing instruction for {user_id}: {instruction[:80]}")
        try:
            result = await self._process(user_id, instruction)
        except Exception as e:
            logger.error(f"Failed to process user instruction: {e}")
            await self._record_failure(user_id, e)
            message = str(e) if isinstance(e, InterpretationError) else f"Failed to process instruction: {e}"
            raise OrchestrationError(message) from e

        for agent_task_id in result.agent_task_ids:
            self.executor.dispatch(agent_task_id)
        return result

    async def _process(self, user_id: str, instruction: str) -> InstructionResult:
        processed = await self.interpreter.interpret(instruction)

        task = self.storage.create_task(
            user_id=user_id,
            original_instruction=instruction,
            processed_tasks=[t.model_dump(by_alias=True) for t in processed.tasks],
            status=TaskStatus.PENDING,
        )

        self.storage.create_activity(
            user_id=user_id,
            type=ActivityType.SYSTEM,
            title="Natural language processed",
            description=(
                f"Instruction parsed into {len(processed.tasks)} sub-tasks for agent execution"
            ),
            task_id=task.id,
            metadata={
                "intent": processed.intent,
                "confidence": processed.confidence,
                "taskCount": len(processed.tasks),
            },
        )

        agent_task_ids: List[int] = []
        assigned_agent_ids: List[int] = []

        for index, sub_task in processed.iter_execution_order():
            agent_task = self.assigner.assign(sub_task.type, task.id, sub_task)
            if agent_task is None:
                continue

            agent_task_ids.append(agent_task.id)
            assigned_agent_ids.append(agent_task.agent_id)

            self.storage.create_activity(
                user_id=user_id,
                type=ActivityType.AGENT_ACTION,
                title=f"Task assigned to {sub_task.type} agent",
                description=sub_task.description,
                agent_id=agent_task.agent_id,
                task_id=task.id,
                metadata={
                    "taskIndex": index,
                    "taskType": sub_task.action,
                    "parameters": sub_task.parameters,
                },
            )

        if agent_task_ids:
            self.storage.update_task_status(task.id, TaskStatus.IN_PROGRESS, assigned_agents=assigned_agent_ids)
        else:
            logger.warning(f"Task {task.id}: no sub-task could be assigned")
            self.storage.update_task_status(
                task.id,
                TaskStatus.FAILED,
                results={"error": "No available agents for any sub-task"},
                assigned_agents=[],
            )

        logger.info(f"Task {task.id}: {len(agent_task_ids)}/{len(processed.tasks)} sub-tasks assigned")
        return InstructionResult(task_id=task.id, processed=processed, agent_task_ids=agent_task_ids)

    async def _record_failure(self, user_id: str, error: Exception) -> None:
        try:
            self.storage.create_activity(
                user_id=user_id,
                type=ActivityType.SYSTEM,
                title="Instruction processing failed",
                description=f"Failed to process natural language instruction: {error}",
                metadata={"error": str(error)},
            )
        except Exception as e:
            logger.error(f"Could not record failure activity: {e}")

        if self.chat is not None:
            try:
                await self.chat.send_system_alert(
                    "Instruction processing failed",
                    str(error),
                    severity="error",
                    metadata={"userId": user_id},
                )
            except Exception as e:
                logger.warning(f"System alert failed: {e}")

    def get_stats(self) -> dict:
        return {
            **self.storage.get_stats(),
            "in_flight": self.executor.in_flight,
        }


# =============================================================================
# Wiring
# =============================================================================

def build_orchestrator(
    settings: Settings,
    storage: Optional[StorageService] = None,
    services: Optional[ServiceBundle] = None,
    registry: Optional[AgentRegistry] = None,
    hub: Any = None,
    llm_client: Any = None,
) -> TaskOrchestrator:
    """
    Wire a TaskOrchestrator from settings.

    Components not given are created: SQL storage at settings.database_url,
    mock capabilities with the configured delay and success rate, the three
    built-in agents.
    """
    storage = storage or StorageService(settings.database_url)
    services = services or create_mock_services(
        mock_delay=(settings.service_delay_min_seconds, settings.service_delay_max_seconds),
        success_rate=settings.service_success_rate,
    )
    registry = registry or build_default_registry(services)
    interpreter = InstructionInterpreter.from_settings(settings, client=llm_client)

    executor = TaskExecutor(
        storage,
        registry,
        hub=hub,
        chat=services.chat,
        start_delay=settings.execution_start_delay_seconds,
        interpreter=interpreter,
        llm_summaries=settings.llm_summaries,
    )
    return TaskOrchestrator(storage, interpreter, executor, chat=services.chat)
