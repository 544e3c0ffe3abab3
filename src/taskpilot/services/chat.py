"""
Chat notification capability — task, agent and system messages posted to a
team channel as mrkdwn section blocks.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .base_service import ServiceResult, SimulatedService

logger = logging.getLogger(__name__)

TASK_STATUS_EMOJI = {
    "started": "🚀",
    "completed": "✅",
    "failed": "❌",
}

AGENT_STATUS_EMOJI = {
    "active": "🟢",
    "busy": "🟡",
    "idle": "⚪",
    "error": "🔴",
}

SEVERITY_EMOJI = {
    "info": "ℹ️",
    "warning": "⚠️",
    "error": "🚨",
}


# =============================================================================
# Block builders
# =============================================================================

def section(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": text}}


def fields_section(*texts: str) -> Dict[str, Any]:
    return {"type": "section", "fields": [{"type": "mrkdwn", "text": t} for t in texts]}


def build_task_blocks(
    task_id: int,
    instruction: str,
    agent_type: str,
    status: str,
    results: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    if status not in TASK_STATUS_EMOJI:
        raise ValueError(f"Unknown task notification status: {status}")

    blocks = [
        section(f"{TASK_STATUS_EMOJI[status]} *Agent Task {status.capitalize()}*"),
        fields_section(f"*Task ID:*\n{task_id}", f"*Agent Type:*\n{agent_type.capitalize()}"),
        section(f"*Instruction:*\n{instruction}"),
    ]

    if status == "completed" and results:
        blocks.append(section(f"*Results:*\n```{json.dumps(results, indent=2, default=str)}```"))

    return blocks


def build_agent_blocks(
    agent_name: str,
    status: str,
    current_task: Optional[str] = None,
    stats: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    emoji = AGENT_STATUS_EMOJI.get(status, "⚪")
    blocks = [section(f"{emoji} *{agent_name}* is now *{status}*")]

    if current_task:
        blocks.append(section(f"*Current Task:*\n{current_task}"))

    if stats:
        stats_text = "\n".join(f"*{key}:* {value}" for key, value in stats.items())
        blocks.append(section(f"*Stats:*\n{stats_text}"))

    return blocks


def build_alert_blocks(
    title: str,
    message: str,
    severity: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> List[Dict[str, Any]]:
    if severity not in SEVERITY_EMOJI:
        raise ValueError(f"Unknown severity: {severity}")

    blocks = [section(f"{SEVERITY_EMOJI[severity]} *{title}*\n{message}")]

    if metadata:
        blocks.append(section(f"*Details:*\n```{json.dumps(metadata, indent=2, default=str)}```"))

    return blocks


# =============================================================================
# Capability
# =============================================================================

class ChatNotifier(ABC):
    """
    Posts notifications to a team chat.

    Subclasses implement send_message(); the typed helpers format blocks.
    """

    @abstractmethod
    async def send_message(
        self,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
        channel: Optional[str] = None,
        thread_ts: Optional[str] = None,
    ) -> ServiceResult:
        """data: timestamp of the posted message."""

    async def send_task_notification(
        self,
        task_id: int,
        instruction: str,
        agent_type: str,
        status: str,
        results: Optional[Dict[str, Any]] = None,
    ) -> ServiceResult:
        blocks = build_task_blocks(task_id, instruction, agent_type, status, results)
        return await self.send_message(text=f"Agent task {status}: {instruction}", blocks=blocks)

    async def send_agent_update(
        self,
        agent_name: str,
        status: str,
        current_task: Optional[str] = None,
        stats: Optional[Dict[str, Any]] = None,
    ) -> ServiceResult:
        blocks = build_agent_blocks(agent_name, status, current_task, stats)
        return await self.send_message(text=f"{agent_name} status update: {status}", blocks=blocks)

    async def send_system_alert(
        self,
        title: str,
        message: str,
        severity: str = "info",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ServiceResult:
        blocks = build_alert_blocks(title, message, severity, metadata)
        return await self.send_message(text=f"System {severity}: {title}", blocks=blocks)


class MockChatNotifier(SimulatedService, ChatNotifier):
    """Keeps posted messages in `messages`."""

    def __init__(self, default_channel: str = "#agents", **kwargs):
        super().__init__(**kwargs)
        self.default_channel = default_channel
        self.messages: List[dict] = []

    async def send_message(
        self,
        text: str,
        blocks: Optional[List[Dict[str, Any]]] = None,
        channel: Optional[str] = None,
        thread_ts: Optional[str] = None,
    ) -> ServiceResult:
        channel = channel or self.default_channel
        success = await self._simulate("send_message", channel=channel, text=text)
        if not success:
            logger.error(f"Chat message to {channel} failed (simulated)")
            return ServiceResult.fail("Chat message failed")

        timestamp = f"{time.time():.6f}"
        self.messages.append({
            "channel": channel,
            "text": text,
            "blocks": blocks or [],
            "thread_ts": thread_ts,
            "ts": timestamp,
        })
        return ServiceResult.ok(timestamp=timestamp)
