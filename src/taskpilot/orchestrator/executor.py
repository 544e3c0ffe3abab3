"""
Task Executor — runs assigned sub-tasks in the background.

Lifecycle of a sub-task:

    pending --(start delay)--> in_progress --> completed | failed

After the terminal transition the executor:
    1. Bumps the agent stats and integration usage counters (completed only)
    2. Returns the agent to "active" when it has no other open sub-tasks
    3. Rolls up the parent task once every sub-task is terminal

Every transition is recorded as an activity and pushed to the task owner.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Set

from ..agents import AgentExecutionError, AgentRegistry, BaseAgent, get_error_code
from ..services import ChatNotifier
from ..storage import Agent, AgentTask, StorageService, Task
from ..storage.models import ActivityType, AgentStatus, TaskStatus

logger = logging.getLogger(__name__)

OPEN_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


class TaskExecutor:
    """
    Fire-and-forget execution of sub-tasks on the running event loop.

    Args:
        storage: persistence
        registry: agent type -> handler
        hub: optional NotificationHub for live updates
        chat: optional ChatNotifier for team chat messages
        start_delay: seconds between dispatch and start
        interpreter: optional InstructionInterpreter for result summaries
        llm_summaries: add an LLM-written "summary" to completed results
    """

    def __init__(
        self,
        storage: StorageService,
        registry: AgentRegistry,
        hub=None,
        chat: Optional[ChatNotifier] = None,
        start_delay: float = 1.0,
        interpreter=None,
        llm_summaries: bool = False,
    ):
        self.storage = storage
        self.registry = registry
        self.hub = hub
        self.chat = chat
        self.start_delay = start_delay
        self.interpreter = interpreter
        self.llm_summaries = llm_summaries
        self._running: Set[asyncio.Task] = set()

    # =========================================================================
    # Dispatch
    # =========================================================================

    def dispatch(self, agent_task_id: int) -> asyncio.Task:
        """Schedule execution of a sub-task without waiting for it."""
        task = asyncio.get_running_loop().create_task(
            self._run_safely(agent_task_id),
            name=f"agent-task-{agent_task_id}",
        )
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        logger.debug(f"Dispatched sub-task {agent_task_id}")
        return task

    @property
    def in_flight(self) -> int:
        return len(self._running)

    async def wait_idle(self) -> None:
        """Wait until every dispatched sub-task has finished."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def _run_safely(self, agent_task_id: int) -> Optional[AgentTask]:
        try:
            return await self.run(agent_task_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Agent task execution failed: {agent_task_id}")
            try:
                self.storage.update_agent_task(
                    agent_task_id,
                    status=TaskStatus.FAILED,
                    result={"error": "Task execution failed", "code": get_error_code(e)},
                    completed_at=datetime.utcnow(),
                )
            except Exception as update_error:
                logger.error(f"Could not mark sub-task {agent_task_id} as failed: {update_error}")
                return None
            await self._recover(agent_task_id)
            return None

    async def _recover(self, agent_task_id: int) -> None:
        """Release the agent and roll up the parent after an unexpected failure."""
        agent_task = self.storage.get_agent_task(agent_task_id)
        if agent_task is None:
            return
        task = self.storage.get_task(agent_task.task_id)

        try:
            agent = self.storage.get_agent(agent_task.agent_id)
            if agent is not None:
                agent = self._release_agent(agent)
                if self.hub is not None and task is not None:
                    await self.hub.broadcast_task_update(task.user_id, {
                        "taskId": agent_task.task_id,
                        "agentTaskId": agent_task.id,
                        "status": agent_task.status.value,
                        "result": agent_task.result,
                    })
                    await self.hub.broadcast_agent_update(task.user_id, _dump(agent))
        except Exception as e:
            logger.error(f"Could not release agent for sub-task {agent_task_id}: {e}")

        if task is None:
            return
        try:
            await self._roll_up(task)
        except Exception as e:
            logger.error(f"Could not roll up task {task.id}: {e}")

    # =========================================================================
    # Execution
    # =========================================================================

    async def run(self, agent_task_id: int) -> AgentTask:
        """
        Execute one sub-task to a terminal state.

        Raises:
            KeyError: If the sub-task, its task or its agent do not exist
        """
        if self.start_delay > 0:
            await asyncio.sleep(self.start_delay)

        agent_task = self.storage.get_agent_task(agent_task_id)
        if agent_task is None:
            raise KeyError(f"Agent task not found: {agent_task_id}")
        task = self.storage.get_task(agent_task.task_id)
        if task is None:
            raise KeyError(f"Task not found: {agent_task.task_id}")
        agent = self.storage.get_agent(agent_task.agent_id)
        if agent is None:
            raise KeyError(f"Agent not found: {agent_task.agent_id}")

        # pending -> in_progress
        agent_task = self.storage.update_agent_task(
            agent_task_id,
            status=TaskStatus.IN_PROGRESS,
            started_at=datetime.utcnow(),
        )
        activity = self.storage.create_activity(
            user_id=task.user_id,
            type=ActivityType.AGENT_ACTION,
            title=f"{agent.name} started task",
            description=agent_task.description,
            agent_id=agent.id,
            task_id=task.id,
            metadata={"agentTaskId": agent_task.id, "action": agent_task.type},
        )
        await self._publish(task.user_id, agent_task, agent, activity)
        await self._chat_task(task, agent, agent_task, "started")

        # in_progress -> completed | failed
        handler: Optional[BaseAgent] = None
        try:
            handler = self.registry.get(agent.type)
            result = await handler.run(
                agent_task.type,
                agent_task.parameters,
                context={
                    "task_id": task.id,
                    "agent_task_id": agent_task.id,
                    "description": agent_task.description,
                    "instruction": task.original_instruction,
                },
            )
            status = TaskStatus.COMPLETED
        except (AgentExecutionError, KeyError) as e:
            code = get_error_code(e)
            message = e.args[0] if e.args else str(e)
            logger.warning(f"Sub-task {agent_task_id} failed ({code}): {message}")
            result = {"error": message, "code": code}
            if isinstance(e, AgentExecutionError) and e.details:
                result["details"] = e.details
            status = TaskStatus.FAILED

        if status == TaskStatus.COMPLETED and self.llm_summaries and self.interpreter is not None:
            result["summary"] = await self.interpreter.generate_agent_response(
                agent.type, agent_task.type, {"description": agent_task.description, "result": result}
            )

        agent_task = self.storage.update_agent_task(
            agent_task_id,
            status=status,
            result=result,
            completed_at=datetime.utcnow(),
        )
        logger.info(f"Sub-task {agent_task_id} {status.value} by {agent.name}")

        if status == TaskStatus.COMPLETED and handler is not None:
            agent = self._bump_counters(agent, handler)
        agent = self._release_agent(agent)

        verb = "completed" if status == TaskStatus.COMPLETED else "failed"
        activity = self.storage.create_activity(
            user_id=task.user_id,
            type=ActivityType.AGENT_ACTION,
            title=f"{agent.name} {verb} task",
            description=agent_task.description if status == TaskStatus.COMPLETED else result["error"],
            agent_id=agent.id,
            task_id=task.id,
            metadata={"agentTaskId": agent_task.id, "action": agent_task.type, "status": status.value},
        )
        await self._publish(task.user_id, agent_task, agent, activity)
        await self._chat_task(task, agent, agent_task, verb, result if status == TaskStatus.COMPLETED else None)

        await self._roll_up(task)
        return agent_task

    # =========================================================================
    # Bookkeeping
    # =========================================================================

    def _bump_counters(self, agent: Agent, handler: BaseAgent) -> Agent:
        stats = dict(agent.stats)
        for key in handler.stats_counters:
            stats[key] = int(stats.get(key, 0)) + 1
        agent = self.storage.update_agent_stats(agent.id, stats)

        if handler.integration:
            name, usage_key = handler.integration
            integration = self.storage.get_integration(name)
            if integration is None:
                logger.debug(f"Integration {name} not configured, usage not recorded")
            else:
                usage = dict(integration.usage)
                usage[usage_key] = int(usage.get(usage_key, 0)) + 1
                self.storage.update_integration_usage(name, usage)

        return agent

    def _release_agent(self, agent: Agent) -> Agent:
        """Return the agent to active unless it still has open sub-tasks."""
        open_tasks = [t for t in self.storage.get_agent_tasks(agent.id) if t.status in OPEN_STATUSES]
        if open_tasks:
            logger.debug(f"{agent.name} still has {len(open_tasks)} open sub-task(s)")
            return agent
        return self.storage.update_agent_status(agent.id, AgentStatus.ACTIVE)

    async def _roll_up(self, task: Task) -> Optional[Task]:
        """Complete or fail the parent task once every sub-task is terminal."""
        task = self.storage.get_task(task.id)
        if task is None or task.status.is_terminal:
            return None

        agent_tasks = self.storage.get_task_agent_tasks(task.id)
        if not agent_tasks or any(t.status in OPEN_STATUSES for t in agent_tasks):
            return None

        completed = [t for t in agent_tasks if t.status == TaskStatus.COMPLETED]
        status = TaskStatus.COMPLETED if len(completed) == len(agent_tasks) else TaskStatus.FAILED
        results = {
            "completed": len(completed),
            "failed": len(agent_tasks) - len(completed),
            "subTasks": {
                str(t.id): {"type": t.type, "status": t.status.value, "result": t.result}
                for t in agent_tasks
            },
        }
        task = self.storage.update_task_status(task.id, status, results=results)
        logger.info(f"Task {task.id} {status.value} ({len(completed)}/{len(agent_tasks)} sub-tasks completed)")

        activity = self.storage.create_activity(
            user_id=task.user_id,
            type=ActivityType.TASK_UPDATE,
            title=f"Task {status.value}",
            description=task.original_instruction,
            task_id=task.id,
            metadata={"completed": results["completed"], "failed": results["failed"]},
        )
        if self.hub is not None:
            try:
                await self.hub.broadcast_task_update(task.user_id, _dump(task))
                await self.hub.broadcast_activity(task.user_id, _dump(activity))
            except Exception as e:
                logger.warning(f"Failed to publish task {task.id} update: {e}")
        return task

    # =========================================================================
    # Notifications
    # =========================================================================

    async def _publish(self, user_id: str, agent_task: AgentTask, agent: Agent, activity) -> None:
        if self.hub is None:
            return
        try:
            await self.hub.broadcast_task_update(user_id, {
                "taskId": agent_task.task_id,
                "agentTaskId": agent_task.id,
                "status": agent_task.status.value,
                "result": agent_task.result,
            })
            await self.hub.broadcast_agent_update(user_id, _dump(agent))
            await self.hub.broadcast_activity(user_id, _dump(activity))
        except Exception as e:
            logger.warning(f"Failed to publish sub-task {agent_task.id} update: {e}")

    async def _chat_task(
        self,
        task: Task,
        agent: Agent,
        agent_task: AgentTask,
        status: str,
        results: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self.chat is None:
            return
        try:
            sent = await self.chat.send_task_notification(
                task.id,
                agent_task.description or task.original_instruction,
                agent.type,
                status,
                results,
            )
            if not sent.success:
                logger.warning(f"Chat notification for task {task.id} not delivered: {sent.error}")
        except Exception as e:
            logger.warning(f"Chat notification for task {task.id} failed: {e}")
