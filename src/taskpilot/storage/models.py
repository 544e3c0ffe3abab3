"""
Storage Models — Pydantic and SQLAlchemy models for TaskPilot persistence.

This module provides:
- Status enums shared by every layer
- Read models (Pydantic) — validation and camelCase serialization
- Table models (SQLAlchemy) — flat relational persistence
- to_schema() converters from rows to read models
"""

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base


# =============================================================================
# Enums
# =============================================================================

class AgentType(str, enum.Enum):
    """Kinds of agents a sub-task can be routed to."""
    COMMUNICATION = "communication"  # Phone calls, voice interaction
    BOOKING = "booking"              # Meetings, rooms, calendar events
    FOLLOWUP = "followup"            # Emails, follow-up communication


class AgentStatus(str, enum.Enum):
    """Status of an agent record."""
    IDLE = "idle"
    ACTIVE = "active"
    BUSY = "busy"
    ERROR = "error"


class TaskStatus(str, enum.Enum):
    """Status of a task or sub-task."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class ActivityType(str, enum.Enum):
    """Kinds of activity feed entries."""
    AGENT_ACTION = "agent_action"
    TASK_UPDATE = "task_update"
    SYSTEM = "system"


class IntegrationType(str, enum.Enum):
    """Kinds of external services."""
    COMMUNICATION = "communication"
    CALENDAR = "calendar"
    EMAIL = "email"
    AI = "ai"
    CHAT = "chat"


# Agents that may take new work
AVAILABLE_AGENT_STATUSES = (AgentStatus.IDLE.value, AgentStatus.ACTIVE.value)


# =============================================================================
# Pydantic Models (read models for API and notifications)
# =============================================================================

class CamelModel(BaseModel):
    """Base for models exchanged with the dashboard (camelCase JSON)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(CamelModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Agent(CamelModel):
    id: int
    name: str
    type: str
    status: AgentStatus = AgentStatus.IDLE
    capabilities: List[str] = Field(default_factory=list)
    current_task: Optional[str] = None
    stats: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Task(CamelModel):
    id: int
    user_id: str
    original_instruction: str
    processed_tasks: List[Dict[str, Any]] = Field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    assigned_agents: List[int] = Field(default_factory=list)
    results: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AgentTask(CamelModel):
    """Sub-task entry: one agent working on one part of a task."""
    id: int
    task_id: int
    agent_id: int
    type: str
    description: str
    parameters: Dict[str, Any] = Field(default_factory=dict)
    status: TaskStatus = TaskStatus.PENDING
    result: Optional[Dict[str, Any]] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class Activity(CamelModel):
    id: int
    user_id: str
    agent_id: Optional[int] = None
    task_id: Optional[int] = None
    type: ActivityType
    title: str
    description: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class Integration(CamelModel):
    id: int
    name: str
    type: str
    status: str = "connected"
    config: Dict[str, Any] = Field(default_factory=dict)
    usage: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =============================================================================
# SQLAlchemy Models (for database persistence)
# =============================================================================

Base = declarative_base()


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(100), primary_key=True)
    email = Column(String(255), unique=True, nullable=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    profile_image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    def to_schema(self) -> User:
        return User(
            id=self.id,
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
            profile_image_url=self.profile_image_url,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class AgentModel(Base):
    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    type = Column(String(100), nullable=False, index=True)
    status = Column(String(50), nullable=False, default=AgentStatus.IDLE.value)
    capabilities = Column(JSON, nullable=False, default=list)
    current_task = Column(Text, nullable=True)
    stats = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    def to_schema(self) -> Agent:
        return Agent(
            id=self.id,
            name=self.name,
            type=self.type,
            status=AgentStatus(self.status),
            capabilities=list(self.capabilities or []),
            current_task=self.current_task,
            stats=dict(self.stats or {}),
            is_active=self.is_active,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class TaskModel(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), ForeignKey("users.id"), nullable=False, index=True)
    original_instruction = Column(Text, nullable=False)
    processed_tasks = Column(JSON, nullable=False, default=list)
    status = Column(String(50), nullable=False, default=TaskStatus.PENDING.value)
    assigned_agents = Column(JSON, nullable=False, default=list)
    results = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    def to_schema(self) -> Task:
        return Task(
            id=self.id,
            user_id=self.user_id,
            original_instruction=self.original_instruction,
            processed_tasks=list(self.processed_tasks or []),
            status=TaskStatus(self.status),
            assigned_agents=list(self.assigned_agents or []),
            results=dict(self.results or {}),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class AgentTaskModel(Base):
    __tablename__ = "agent_tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    type = Column(String(100), nullable=False)  # call, booking, email, ...
    description = Column(Text, nullable=False)
    parameters = Column(JSON, nullable=False, default=dict)
    status = Column(String(50), nullable=False, default=TaskStatus.PENDING.value)
    result = Column(JSON, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_schema(self) -> AgentTask:
        return AgentTask(
            id=self.id,
            task_id=self.task_id,
            agent_id=self.agent_id,
            type=self.type,
            description=self.description,
            parameters=dict(self.parameters or {}),
            status=TaskStatus(self.status),
            result=self.result,
            started_at=self.started_at,
            completed_at=self.completed_at,
            created_at=self.created_at,
        )


class ActivityModel(Base):
    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(100), ForeignKey("users.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True)
    type = Column(String(100), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=True, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    def to_schema(self) -> Activity:
        return Activity(
            id=self.id,
            user_id=self.user_id,
            agent_id=self.agent_id,
            task_id=self.task_id,
            type=ActivityType(self.type),
            title=self.title,
            description=self.description,
            metadata=dict(self.metadata_ or {}),
            created_at=self.created_at,
        )


class IntegrationModel(Base):
    __tablename__ = "integrations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    type = Column(String(50), nullable=False)
    status = Column(String(50), nullable=False, default="connected")
    config = Column(JSON, nullable=False, default=dict)
    usage = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow)

    def to_schema(self) -> Integration:
        return Integration(
            id=self.id,
            name=self.name,
            type=self.type,
            status=self.status,
            config=dict(self.config or {}),
            usage=dict(self.usage or {}),
            is_active=self.is_active,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
