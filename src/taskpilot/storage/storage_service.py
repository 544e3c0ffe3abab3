"""
Storage Service — SQLAlchemy persistence for users, agents, tasks,
sub-tasks, the activity feed and integration status.

Every public method opens its own session and returns Pydantic read models,
so callers never hold ORM objects across awaits.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, func
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from .models import (
    Activity,
    ActivityModel,
    Agent,
    AgentModel,
    AgentStatus,
    AgentTask,
    AgentTaskModel,
    Base,
    Integration,
    IntegrationModel,
    Task,
    TaskModel,
    TaskStatus,
    User,
    UserModel,
)

logger = logging.getLogger(__name__)

# Columns update_agent_task() accepts
AGENT_TASK_UPDATABLE = {"status", "result", "started_at", "completed_at", "description", "parameters"}


def _value(v: Any) -> Any:
    """Unwrap enums to their stored string value."""
    return v.value if hasattr(v, "value") else v


class StorageService:
    """
    Relational storage for TaskPilot.

    Tables:
        users, agents, tasks, agent_tasks, activities, integrations
    """

    def __init__(self, database_url: str = "sqlite:///.data/taskpilot.db", echo: bool = False):
        """
        Initialize storage and create tables if needed.

        Args:
            database_url: SQLAlchemy database URL
            echo: Log SQL statements
        """
        self.database_url = database_url
        url = make_url(database_url)

        connect_args = {}
        if url.get_backend_name() == "sqlite":
            connect_args["check_same_thread"] = False
            if url.database and url.database != ":memory:":
                Path(url.database).resolve().parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(database_url, echo=echo, connect_args=connect_args)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

        logger.info(f"StorageService initialized: {url.render_as_string(hide_password=True)}")

    def close(self) -> None:
        """Dispose of the connection pool."""
        self.engine.dispose()

    # =========================================================================
    # Users
    # =========================================================================

    def get_user(self, user_id: str) -> Optional[User]:
        with self.SessionLocal() as session:
            user = session.get(UserModel, user_id)
            return user.to_schema() if user else None

    def upsert_user(self, user_id: str, **fields: Any) -> User:
        """Create the user or update the given profile fields."""
        with self.SessionLocal() as session:
            user = session.get(UserModel, user_id)
            if user is None:
                user = UserModel(id=user_id, **fields)
                session.add(user)
            else:
                for key, value in fields.items():
                    setattr(user, key, value)
                user.updated_at = datetime.utcnow()
            session.commit()
            session.refresh(user)
            return user.to_schema()

    def ensure_user(self, user_id: str) -> User:
        """Return the user, creating a bare record when missing."""
        return self.get_user(user_id) or self.upsert_user(user_id)

    # =========================================================================
    # Agents
    # =========================================================================

    def get_all_agents(self) -> List[Agent]:
        """Get all active agent records in creation order."""
        with self.SessionLocal() as session:
            rows = (
                session.query(AgentModel)
                .filter(AgentModel.is_active.is_(True))
                .order_by(AgentModel.id)
                .all()
            )
            return [row.to_schema() for row in rows]

    def get_agent(self, agent_id: int) -> Optional[Agent]:
        with self.SessionLocal() as session:
            agent = session.get(AgentModel, agent_id)
            return agent.to_schema() if agent else None

    def create_agent(
        self,
        name: str,
        type: str,
        capabilities: List[str],
        stats: Optional[Dict[str, Any]] = None,
        status: str = AgentStatus.IDLE.value,
    ) -> Agent:
        with self.SessionLocal() as session:
            agent = AgentModel(
                name=name,
                type=_value(type),
                capabilities=list(capabilities),
                stats=dict(stats or {}),
                status=_value(status),
            )
            session.add(agent)
            session.commit()
            session.refresh(agent)
            logger.info(f"Created agent: {agent.name} (id={agent.id}, type={agent.type})")
            return agent.to_schema()

    def update_agent_status(self, agent_id: int, status: Any, current_task: Optional[str] = None) -> Agent:
        """Set agent status; current_task is cleared unless given."""
        with self.SessionLocal() as session:
            agent = session.get(AgentModel, agent_id)
            if agent is None:
                raise KeyError(f"Agent not found: {agent_id}")
            agent.status = _value(status)
            agent.current_task = current_task
            agent.updated_at = datetime.utcnow()
            session.commit()
            session.refresh(agent)
            return agent.to_schema()

    def update_agent_stats(self, agent_id: int, stats: Dict[str, Any]) -> Agent:
        with self.SessionLocal() as session:
            agent = session.get(AgentModel, agent_id)
            if agent is None:
                raise KeyError(f"Agent not found: {agent_id}")
            agent.stats = dict(stats)
            agent.updated_at = datetime.utcnow()
            session.commit()
            session.refresh(agent)
            return agent.to_schema()

    # =========================================================================
    # Tasks
    # =========================================================================

    def create_task(
        self,
        user_id: str,
        original_instruction: str,
        processed_tasks: List[Dict[str, Any]],
        status: Any = TaskStatus.PENDING,
        assigned_agents: Optional[List[int]] = None,
    ) -> Task:
        with self.SessionLocal() as session:
            task = TaskModel(
                user_id=user_id,
                original_instruction=original_instruction,
                processed_tasks=list(processed_tasks),
                status=_value(status),
                assigned_agents=list(assigned_agents or []),
                results={},
            )
            session.add(task)
            session.commit()
            session.refresh(task)
            return task.to_schema()

    def get_task(self, task_id: int) -> Optional[Task]:
        with self.SessionLocal() as session:
            task = session.get(TaskModel, task_id)
            return task.to_schema() if task else None

    def get_user_tasks(self, user_id: str, limit: int = 50) -> List[Task]:
        """Get the user's tasks, newest first."""
        with self.SessionLocal() as session:
            rows = (
                session.query(TaskModel)
                .filter(TaskModel.user_id == user_id)
                .order_by(TaskModel.created_at.desc(), TaskModel.id.desc())
                .limit(limit)
                .all()
            )
            return [row.to_schema() for row in rows]

    def update_task_status(
        self,
        task_id: int,
        status: Any,
        results: Optional[Dict[str, Any]] = None,
        assigned_agents: Optional[List[int]] = None,
    ) -> Task:
        """Set task status; results/assigned_agents are only replaced when given."""
        with self.SessionLocal() as session:
            task = session.get(TaskModel, task_id)
            if task is None:
                raise KeyError(f"Task not found: {task_id}")
            task.status = _value(status)
            if results is not None:
                task.results = dict(results)
            if assigned_agents is not None:
                task.assigned_agents = list(assigned_agents)
            task.updated_at = datetime.utcnow()
            session.commit()
            session.refresh(task)
            return task.to_schema()

    # =========================================================================
    # Agent Tasks (sub-tasks)
    # =========================================================================

    def create_agent_task(
        self,
        task_id: int,
        agent_id: int,
        type: str,
        description: str,
        parameters: Optional[Dict[str, Any]] = None,
        status: Any = TaskStatus.PENDING,
    ) -> AgentTask:
        with self.SessionLocal() as session:
            agent_task = AgentTaskModel(
                task_id=task_id,
                agent_id=agent_id,
                type=type,
                description=description,
                parameters=dict(parameters or {}),
                status=_value(status),
            )
            session.add(agent_task)
            session.commit()
            session.refresh(agent_task)
            return agent_task.to_schema()

    def get_agent_task(self, agent_task_id: int) -> Optional[AgentTask]:
        with self.SessionLocal() as session:
            agent_task = session.get(AgentTaskModel, agent_task_id)
            return agent_task.to_schema() if agent_task else None

    def get_agent_tasks(self, agent_id: int) -> List[AgentTask]:
        """Get sub-tasks assigned to an agent, newest first."""
        with self.SessionLocal() as session:
            rows = (
                session.query(AgentTaskModel)
                .filter(AgentTaskModel.agent_id == agent_id)
                .order_by(AgentTaskModel.created_at.desc(), AgentTaskModel.id.desc())
                .all()
            )
            return [row.to_schema() for row in rows]

    def get_task_agent_tasks(self, task_id: int) -> List[AgentTask]:
        """Get the sub-tasks of a task in creation order."""
        with self.SessionLocal() as session:
            rows = (
                session.query(AgentTaskModel)
                .filter(AgentTaskModel.task_id == task_id)
                .order_by(AgentTaskModel.id)
                .all()
            )
            return [row.to_schema() for row in rows]

    def update_agent_task(self, agent_task_id: int, **updates: Any) -> AgentTask:
        """
        Update sub-task columns.

        Raises:
            KeyError: If the sub-task does not exist
            ValueError: If an unknown column is given
        """
        unknown = set(updates) - AGENT_TASK_UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update agent task fields: {sorted(unknown)}")

        with self.SessionLocal() as session:
            agent_task = session.get(AgentTaskModel, agent_task_id)
            if agent_task is None:
                raise KeyError(f"Agent task not found: {agent_task_id}")
            for key, value in updates.items():
                setattr(agent_task, key, _value(value))
            session.commit()
            session.refresh(agent_task)
            return agent_task.to_schema()

    # =========================================================================
    # Activities
    # =========================================================================

    def create_activity(
        self,
        user_id: str,
        type: Any,
        title: str,
        description: str,
        agent_id: Optional[int] = None,
        task_id: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Activity:
        with self.SessionLocal() as session:
            activity = ActivityModel(
                user_id=user_id,
                agent_id=agent_id,
                task_id=task_id,
                type=_value(type),
                title=title[:255],
                description=description,
                metadata_=dict(metadata or {}),
            )
            session.add(activity)
            session.commit()
            session.refresh(activity)
            return activity.to_schema()

    def get_user_activities(self, user_id: str, limit: int = 20) -> List[Activity]:
        """Get the user's activity feed, newest first."""
        with self.SessionLocal() as session:
            rows = (
                session.query(ActivityModel)
                .filter(ActivityModel.user_id == user_id)
                .order_by(ActivityModel.created_at.desc(), ActivityModel.id.desc())
                .limit(limit)
                .all()
            )
            return [row.to_schema() for row in rows]

    # =========================================================================
    # Integrations
    # =========================================================================

    def get_all_integrations(self) -> List[Integration]:
        with self.SessionLocal() as session:
            rows = (
                session.query(IntegrationModel)
                .filter(IntegrationModel.is_active.is_(True))
                .order_by(IntegrationModel.id)
                .all()
            )
            return [row.to_schema() for row in rows]

    def get_integration(self, name: str) -> Optional[Integration]:
        with self.SessionLocal() as session:
            row = session.query(IntegrationModel).filter(IntegrationModel.name == name).first()
            return row.to_schema() if row else None

    def create_integration(
        self,
        name: str,
        type: Any,
        status: str = "connected",
        config: Optional[Dict[str, Any]] = None,
        usage: Optional[Dict[str, Any]] = None,
    ) -> Integration:
        with self.SessionLocal() as session:
            integration = IntegrationModel(
                name=name,
                type=_value(type),
                status=status,
                config=dict(config or {}),
                usage=dict(usage or {}),
            )
            session.add(integration)
            session.commit()
            session.refresh(integration)
            return integration.to_schema()

    def update_integration_usage(self, name: str, usage: Dict[str, Any]) -> Integration:
        with self.SessionLocal() as session:
            row = session.query(IntegrationModel).filter(IntegrationModel.name == name).first()
            if row is None:
                raise KeyError(f"Integration not found: {name}")
            row.usage = dict(usage)
            row.updated_at = datetime.utcnow()
            session.commit()
            session.refresh(row)
            return row.to_schema()

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        """Row counts and task status breakdown."""
        with self.SessionLocal() as session:
            task_counts = dict(
                session.query(TaskModel.status, func.count(TaskModel.id))
                .group_by(TaskModel.status)
                .all()
            )
            return {
                "users": session.query(func.count(UserModel.id)).scalar(),
                "agents": session.query(func.count(AgentModel.id)).scalar(),
                "tasks": {status.value: task_counts.get(status.value, 0) for status in TaskStatus},
                "agent_tasks": session.query(func.count(AgentTaskModel.id)).scalar(),
                "activities": session.query(func.count(ActivityModel.id)).scalar(),
            }
