"""
Storage module for TaskPilot.

Components:
- models: status enums, Pydantic read models, SQLAlchemy tables
- storage_service: StorageService (SQLAlchemy sessions per call)
"""

from .models import (
    Activity,
    ActivityType,
    Agent,
    AgentStatus,
    AgentTask,
    AgentType,
    AVAILABLE_AGENT_STATUSES,
    Base,
    CamelModel,
    Integration,
    IntegrationType,
    Task,
    TaskStatus,
    User,
)
from .storage_service import StorageService

__all__ = [
    # Enums
    "ActivityType",
    "AgentStatus",
    "AgentType",
    "IntegrationType",
    "TaskStatus",
    "AVAILABLE_AGENT_STATUSES",
    # Models
    "Activity",
    "Agent",
    "AgentTask",
    "Base",
    "CamelModel",
    "Integration",
    "Task",
    "User",
    # Service
    "StorageService",
]
