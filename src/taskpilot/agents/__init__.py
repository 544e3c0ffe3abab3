"""
Agents — handlers that carry out sub-tasks through external capabilities.
"""

from .base_agent import AgentExecutionError, BaseAgent, get_error_code
from .booking_agent import BookingAgent
from .communication_agent import CommunicationAgent
from .followup_agent import FollowUpAgent
from .registry import DEFAULT_AGENTS, AgentRegistry, build_default_registry

__all__ = [
    "AgentExecutionError",
    "BaseAgent",
    "get_error_code",
    "BookingAgent",
    "CommunicationAgent",
    "FollowUpAgent",
    "DEFAULT_AGENTS",
    "AgentRegistry",
    "build_default_registry",
]
