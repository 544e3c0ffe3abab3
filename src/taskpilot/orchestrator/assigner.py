"""
Task Assigner — routes a sub-task to the first available agent of its type.
"""

import logging
from typing import Optional

from ..storage import AgentTask, StorageService
from ..storage.models import AVAILABLE_AGENT_STATUSES, AgentStatus, TaskStatus
from .models import SubTask

logger = logging.getLogger(__name__)


class TaskAssigner:
    """
    Picks an agent record for a sub-task and records the assignment.

    An agent is available when its status is idle or active. The chosen
    agent becomes busy with the sub-task description as its current task.
    """

    def __init__(self, storage: StorageService):
        self.storage = storage

    def find_available_agent(self, agent_type: str):
        for agent in self.storage.get_all_agents():
            if agent.type == agent_type and agent.status.value in AVAILABLE_AGENT_STATUSES:
                return agent
        return None

    def assign(self, agent_type: str, task_id: int, sub_task: SubTask) -> Optional[AgentTask]:
        """
        Assign `sub_task` of `task_id` to an available `agent_type` agent.

        Returns:
            The pending sub-task entry, or None when no agent is available
        """
        agent = self.find_available_agent(agent_type)
        if agent is None:
            logger.warning(f"No available {agent_type} agent found")
            return None

        self.storage.update_agent_status(agent.id, AgentStatus.BUSY, current_task=sub_task.description)

        agent_task = self.storage.create_agent_task(
            task_id=task_id,
            agent_id=agent.id,
            type=sub_task.action,
            description=sub_task.description,
            parameters=sub_task.parameters,
            status=TaskStatus.PENDING,
        )
        logger.info(f"Sub-task {agent_task.id} ({sub_task.action}) assigned to {agent.name} [{agent.id}]")
        return agent_task
