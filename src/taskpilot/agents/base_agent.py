"""
Base Agent — Abstract base class for all TaskPilot agents.

All agents inherit from this class and implement the `execute` method.
The base class handles:
- Timing and logging of every action
- Mapping exceptions to error codes (google.rpc.Code names)
- Turning failed capability calls into AgentExecutionError
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from ..services import ServiceResult
from ..storage.models import AgentType

logger = logging.getLogger(__name__)


class AgentExecutionError(Exception):
    """
    Raised when an agent cannot complete an action.

    Attributes:
        code: google.rpc.Code name (e.g. "UNAVAILABLE")
        details: extra data recorded with the failed sub-task
    """

    def __init__(self, message: str, code: str = "INTERNAL", details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


def get_error_code(error: Exception) -> str:
    """Map exception to google.rpc.Code."""
    if isinstance(error, AgentExecutionError):
        return error.code

    mapping = {
        "ValueError": "INVALID_ARGUMENT",
        "TypeError": "INVALID_ARGUMENT",
        "KeyError": "NOT_FOUND",
        "FileNotFoundError": "NOT_FOUND",
        "PermissionError": "PERMISSION_DENIED",
        "TimeoutError": "DEADLINE_EXCEEDED",
        "ConnectionError": "UNAVAILABLE",
        "NotImplementedError": "UNIMPLEMENTED",
    }

    return mapping.get(type(error).__name__, "INTERNAL")


def first_param(params: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first non-empty parameter among `keys`."""
    for key in keys:
        value = params.get(key)
        if value not in (None, "", [], {}):
            return value
    return default


def as_list(value: Any) -> List[str]:
    """Normalize a comma separated string or a list into a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, dict):
        value = [value.get("email") or value.get("name")]
    return [str(item).strip() for item in value if item]


class BaseAgent(ABC):
    """
    Abstract base class for TaskPilot agents.

    Subclasses must set `agent_type` and implement:
    - execute(action, params, context) -> dict

    Class attributes used for bookkeeping after each action:
    - stats_counters: (today_key, total_key) in the agent record stats
    - integration: (integration name, usage key) bumped per action
    """

    agent_type: AgentType
    default_name: str = "Agent"
    default_capabilities: List[str] = []
    stats_counters: Tuple[str, str] = ("tasksToday", "totalTasks")
    integration: Optional[Tuple[str, str]] = None

    def __init__(self, name: Optional[str] = None, capabilities: Optional[List[str]] = None):
        self.name = name or self.default_name
        self.capabilities = list(capabilities or self.default_capabilities)
        self._tasks_processed = 0
        self._tasks_failed = 0

    @abstractmethod
    async def execute(
        self,
        action: str,
        params: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Execute the given action with parameters.

        Args:
            action: The action to perform (e.g., "make_call")
            params: Action parameters from the sub-task
            context: Optional execution context (task_id, description, ...)

        Returns:
            Result dictionary stored on the sub-task

        Raises:
            AgentExecutionError: When the action cannot be completed
        """

    async def run(
        self,
        action: str,
        params: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Execute an action with timing and error-code mapping."""
        start_time = time.time()
        logger.info(f"[{self.name}] Executing action: {action}")
        logger.debug(f"[{self.name}]   params: {params}")

        try:
            result = await self.execute(action, params or {}, context or {})
        except AgentExecutionError:
            self._tasks_failed += 1
            raise
        except Exception as e:
            self._tasks_failed += 1
            code = get_error_code(e)
            logger.error(f"[{self.name}] Action {action} failed ({code}): {e}")
            raise AgentExecutionError(str(e), code=code, details={"exception_type": type(e).__name__}) from e

        execution_time_ms = int((time.time() - start_time) * 1000)
        self._tasks_processed += 1
        logger.info(f"[{self.name}] Completed {action} ({execution_time_ms}ms)")

        return {**result, "executionTimeMs": execution_time_ms}

    def require_success(self, result: ServiceResult, operation: str) -> Dict[str, Any]:
        """Return result data or raise AgentExecutionError for a failed call."""
        if not result.success:
            raise AgentExecutionError(
                result.error or f"{operation} failed",
                code="UNAVAILABLE",
                details={"operation": operation, **result.data},
            )
        return result.data

    def get_metrics(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.agent_type.value,
            "tasks_processed": self._tasks_processed,
            "tasks_failed": self._tasks_failed,
        }
