"""
Agent Registry — maps agent types to the handlers that execute their work.
"""

import logging
from typing import Dict, List, Optional, Union

from ..services import ServiceBundle
from ..storage.models import AgentType
from .base_agent import BaseAgent
from .booking_agent import BookingAgent
from .communication_agent import CommunicationAgent
from .followup_agent import FollowUpAgent

logger = logging.getLogger(__name__)


# Agent records seeded on first start
DEFAULT_AGENTS = [
    {
        "name": "Communication Agent",
        "type": AgentType.COMMUNICATION,
        "capabilities": ["phone_calls", "voice_interaction", "customer_contact"],
        "stats": {"callsToday": 0, "successRate": 94, "totalCalls": 0},
    },
    {
        "name": "Booking Agent",
        "type": AgentType.BOOKING,
        "capabilities": ["calendar_management", "room_booking", "scheduling"],
        "stats": {"bookingsToday": 0, "availability": 98, "totalBookings": 0},
    },
    {
        "name": "Follow-up Agent",
        "type": AgentType.FOLLOWUP,
        "capabilities": ["email_sending", "follow_up_management", "communication"],
        "stats": {"emailsSent": 0, "responseRate": 87, "totalEmails": 0},
    },
]


class AgentRegistry:
    """One handler per agent type."""

    def __init__(self, agents: Optional[List[BaseAgent]] = None):
        self._agents: Dict[AgentType, BaseAgent] = {}
        for agent in agents or []:
            self.register(agent)

    def register(self, agent: BaseAgent) -> None:
        if agent.agent_type in self._agents:
            logger.warning(f"Replacing handler for {agent.agent_type.value}: {agent.name}")
        self._agents[agent.agent_type] = agent
        logger.debug(f"Registered {agent.name} for {agent.agent_type.value}")

    def get(self, agent_type: Union[AgentType, str]) -> BaseAgent:
        """Raises KeyError for unknown or unregistered types."""
        try:
            key = AgentType(agent_type)
        except ValueError:
            raise KeyError(f"Unknown agent type: {agent_type}")
        if key not in self._agents:
            raise KeyError(f"No handler registered for agent type: {key.value}")
        return self._agents[key]

    def __contains__(self, agent_type) -> bool:
        try:
            return AgentType(agent_type) in self._agents
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._agents)


def build_default_registry(services: ServiceBundle) -> AgentRegistry:
    """Registry with the three built-in agents wired to `services`."""
    return AgentRegistry([
        CommunicationAgent(services.telephony),
        BookingAgent(services.calendar),
        FollowUpAgent(services.email),
    ])
