"""
Orchestrator module for TaskPilot.

Components:
- interpreter: InstructionInterpreter (LLM decomposition of instructions)
- assigner: TaskAssigner (sub-task -> available agent)
- executor: TaskExecutor (background execution and status roll-up)
- task_orchestrator: TaskOrchestrator (end-to-end instruction processing)
"""

from .assigner import TaskAssigner
from .executor import TaskExecutor
from .interpreter import InstructionInterpreter, normalize_response
from .models import (
    InstructionResult,
    InterpretationError,
    OrchestrationError,
    ProcessedInstruction,
    SubTask,
)
from .task_orchestrator import (
    DEFAULT_INTEGRATIONS,
    QUICK_EXAMPLES,
    TaskOrchestrator,
    build_orchestrator,
)

__all__ = [
    "TaskAssigner",
    "TaskExecutor",
    "InstructionInterpreter",
    "normalize_response",
    "InstructionResult",
    "InterpretationError",
    "OrchestrationError",
    "ProcessedInstruction",
    "SubTask",
    "DEFAULT_INTEGRATIONS",
    "QUICK_EXAMPLES",
    "TaskOrchestrator",
    "build_orchestrator",
]
