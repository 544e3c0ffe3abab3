"""
Instruction Interpreter — turns a natural-language instruction into typed
sub-tasks using an LLM (OpenAI or Anthropic).

Environment:
    OPENAI_API_KEY - for OpenAI provider
    ANTHROPIC_API_KEY - for Anthropic provider
"""

import json
import logging
import os
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..config import Settings
from .models import InterpretationError, ProcessedInstruction, SubTask

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.8
FALLBACK_AGENT_RESPONSE = "Task completed with unknown status"

SYSTEM_PROMPT = """You are an AI agent orchestrator. Break down natural language instructions into specific tasks for specialized agents.

Available agent types:
- communication: Makes phone calls, handles voice interactions
- booking: Schedules meetings, reserves rooms, manages calendar events
- followup: Sends emails, manages follow-up communications

Respond with JSON in this exact format:
{
  "intent": "brief description of the overall goal",
  "tasks": [
    {
      "type": "agent_type",
      "action": "specific_action",
      "description": "detailed description",
      "parameters": {"key": "value"},
      "priority": 1-10,
      "dependencies": ["optional_task_references"]
    }
  ],
  "confidence": 0.0-1.0,
  "executionOrder": [0, 1, 2]
}

Make tasks specific and actionable. Include all relevant parameters."""

AGENT_RESPONSE_PROMPT = (
    "You are a {agent_type} agent. Generate a realistic response for the action: {action}. "
    "Keep responses concise and professional."
)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


# =============================================================================
# Normalization
# =============================================================================

def extract_json(text: Optional[str]) -> Dict[str, Any]:
    """Parse the model output as a JSON object, tolerating ``` fences."""
    text = (text or "").strip()
    match = _CODE_FENCE.match(text)
    if match:
        text = match.group(1)
    data = json.loads(text or "{}")
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def _confidence(value: Any) -> float:
    if value is None:
        return DEFAULT_CONFIDENCE
    try:
        value = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, value))


def _execution_order(value: Any, task_count: int) -> List[int]:
    if value is None:
        return list(range(task_count))
    order = []
    for item in value:
        try:
            order.append(int(item))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-integer execution order entry: {item!r}")
    return order


def normalize_response(data: Dict[str, Any]) -> ProcessedInstruction:
    """
    Apply the defaults for an LLM decomposition.

    - intent: "Unknown intent" when missing
    - tasks: [] when missing
    - confidence: 0.8 when missing or null, clamped to [0, 1] otherwise
    - executionOrder: every task in listed order when missing

    Raises:
        ValueError: if a sub-task cannot be validated
    """
    raw_tasks = data.get("tasks") or []
    if not isinstance(raw_tasks, list):
        raise ValueError("'tasks' must be a list")

    try:
        tasks = [SubTask.model_validate(task) for task in raw_tasks]
    except ValidationError as e:
        raise ValueError(f"Invalid sub-task: {e.errors()[0]['msg']}") from e

    order = data.get("executionOrder", data.get("execution_order"))

    return ProcessedInstruction(
        intent=data.get("intent") or "Unknown intent",
        tasks=tasks,
        confidence=_confidence(data.get("confidence")),
        execution_order=_execution_order(order, len(tasks)),
    )


# =============================================================================
# Interpreter
# =============================================================================

class InstructionInterpreter:
    """
    LLM-backed instruction decomposition.

    The client is created on first use so that a missing API key only fails
    the request that needs it. Tests pass a fake `client` exposing the same
    call shape as AsyncOpenAI (`chat.completions.create`) or AsyncAnthropic
    (`messages.create`).
    """

    def __init__(
        self,
        provider: str = "openai",
        model: str = "gpt-4o",
        temperature: float = 0.2,
        max_tokens: int = 2000,
        client: Any = None,
    ):
        if provider not in ("openai", "anthropic"):
            raise ValueError(f"Unknown LLM provider: {provider}")
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, client: Any = None) -> "InstructionInterpreter":
        return cls(
            provider=settings.llm_provider,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            client=client,
        )

    def _get_client(self):
        """Initialize the LLM client based on provider."""
        if self._client is not None:
            return self._client

        if self.provider == "openai":
            api_key = os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError("OPENAI_API_KEY environment variable not set")

            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=api_key)
            logger.info("OpenAI client initialized")

        else:
            api_key = os.getenv("ANTHROPIC_API_KEY")
            if not api_key:
                raise ValueError("ANTHROPIC_API_KEY environment variable not set")

            from anthropic import AsyncAnthropic
            self._client = AsyncAnthropic(api_key=api_key)
            logger.info("Anthropic client initialized")

        return self._client

    async def _complete(self, system: str, user: str, json_mode: bool = False) -> str:
        client = self._get_client()

        if self.provider == "openai":
            kwargs = {}
            if json_mode:
                kwargs["response_format"] = {"type": "json_object"}
            response = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=self.temperature,
                **kwargs,
            )
            return response.choices[0].message.content or ""

        response = await client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=system,
            messages=[{"role": "user", "content": user}],
            temperature=self.temperature,
        )
        return "".join(getattr(block, "text", "") for block in response.content)

    async def interpret(self, instruction: str) -> ProcessedInstruction:
        """
        Decompose `instruction` into sub-tasks.

        Raises:
            InterpretationError: on missing credentials, provider errors
                or an unusable response
        """
        logger.info(f"Interpreting instruction with {self.provider}/{self.model}: {instruction[:80]}")
        try:
            text = await self._complete(SYSTEM_PROMPT, instruction, json_mode=True)
            processed = normalize_response(extract_json(text))
        except Exception as e:
            logger.error(f"Failed to process natural language instruction: {e}")
            raise InterpretationError(f"Failed to process instruction: {e}") from e

        logger.info(
            f"Instruction decomposed: intent='{processed.intent}', "
            f"{len(processed.tasks)} task(s), confidence={processed.confidence:.2f}"
        )
        return processed

    async def generate_agent_response(self, agent_type: str, action: str, context: Any) -> str:
        """Short status line for a finished action. Never raises."""
        system = AGENT_RESPONSE_PROMPT.format(agent_type=agent_type, action=action)
        user = f"Context: {json.dumps(context, default=str)}. Provide a brief status update or result."
        try:
            text = await self._complete(system, user)
        except Exception as e:
            logger.warning(f"Failed to generate agent response: {e}")
            return FALLBACK_AGENT_RESPONSE
        return text.strip() or "Task completed"
