"""
Pydantic models for instruction processing and task orchestration.

An instruction is decomposed by the LLM into a ProcessedInstruction:
    - intent: WHAT the user wants overall
    - tasks: typed sub-tasks, one per agent call
    - executionOrder: the order in which sub-tasks are dispatched
"""

from typing import Any, Dict, List

from pydantic import Field, field_validator

from ..storage.models import (
    ActivityType,
    AgentStatus,
    AgentType,
    CamelModel,
    TaskStatus,
)

__all__ = [
    "ActivityType",
    "AgentStatus",
    "AgentType",
    "CamelModel",
    "TaskStatus",
    "SubTask",
    "ProcessedInstruction",
    "InstructionResult",
    "InterpretationError",
    "OrchestrationError",
]


# =============================================================================
# Processed Instruction (LLM output)
# =============================================================================

class SubTask(CamelModel):
    """
    A single unit of work for one agent.

    `dependencies` are kept as declared by the LLM; they are not enforced.
    """
    type: str = Field(..., min_length=1, description="Agent type (communication, booking, followup)")
    action: str = Field(default="", description="Specific action, e.g. make_call")
    description: str = Field(default="", description="Detailed description")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Action parameters")
    priority: int = Field(default=5, description="Priority 1-10")
    dependencies: List[str] = Field(default_factory=list, description="Declared task references")

    @field_validator("type")
    @classmethod
    def normalize_type(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("priority", mode="before")
    @classmethod
    def clamp_priority(cls, v):
        if v is None:
            return 5
        try:
            v = int(v)
        except (TypeError, ValueError):
            return 5
        return max(1, min(10, v))

    @field_validator("parameters", mode="before")
    @classmethod
    def default_parameters(cls, v):
        return v if isinstance(v, dict) else {}

    @field_validator("dependencies", mode="before")
    @classmethod
    def coerce_dependencies(cls, v):
        if v is None:
            return []
        if isinstance(v, (str, int)):
            return [str(v)]
        return [str(item) for item in v]


class ProcessedInstruction(CamelModel):
    """Normalized LLM decomposition of a natural-language instruction."""
    intent: str = Field(default="Unknown intent")
    tasks: List[SubTask] = Field(default_factory=list)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    execution_order: List[int] = Field(default_factory=list)

    def iter_execution_order(self):
        """
        Yield (index, sub_task) pairs in dispatch order.

        Indices outside the task list and repeated indices are skipped.
        """
        seen = set()
        for index in self.execution_order:
            if index in seen or not 0 <= index < len(self.tasks):
                continue
            seen.add(index)
            yield index, self.tasks[index]


class InstructionResult(CamelModel):
    """Outcome of processing one instruction."""
    task_id: int
    processed: ProcessedInstruction
    agent_task_ids: List[int] = Field(default_factory=list)


# =============================================================================
# Errors
# =============================================================================

class InterpretationError(Exception):
    """Raised when an instruction cannot be turned into sub-tasks."""


class OrchestrationError(Exception):
    """Raised when an instruction cannot be processed end to end."""
