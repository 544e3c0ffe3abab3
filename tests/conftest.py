"""
Shared fixtures: SQLite storage in tmp_path, zero-delay mock capabilities,
fake LLM clients and an in-memory WebSocket.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from taskpilot.agents import build_default_registry
from taskpilot.config import Settings
from taskpilot.notifier import NotificationHub
from taskpilot.orchestrator import build_orchestrator
from taskpilot.services import create_mock_services
from taskpilot.storage import StorageService


# =============================================================================
# LLM payloads
# =============================================================================

THREE_STEP_PLAN = {
    "intent": "Confirm the project timeline with the client",
    "tasks": [
        {
            "type": "communication",
            "action": "make_call",
            "description": "Call the client to discuss the project timeline",
            "parameters": {"phone": "+15551234567", "message": "Can we review the timeline?"},
            "priority": 8,
        },
        {
            "type": "booking",
            "action": "schedule_meeting",
            "description": "Schedule a follow-up meeting",
            "parameters": {
                "title": "Timeline review",
                "start_time": "2030-01-15T14:00:00",
                "duration_minutes": 30,
                "room": "Conference Room 2",
                "attendees": ["client@example.com"],
            },
            "priority": 6,
        },
        {
            "type": "followup",
            "action": "send_email",
            "description": "Send a recap email",
            "parameters": {"recipients": ["client@example.com"], "subject": "Recap"},
            "priority": 4,
        },
    ],
    "confidence": 0.93,
    "executionOrder": [0, 1, 2],
}


def openai_response(content: str):
    """Shape of an AsyncOpenAI chat completion."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def make_openai_client(payload=None, error: Exception = None):
    """Fake AsyncOpenAI client returning `payload` (dict or raw text)."""
    client = MagicMock()
    if error is not None:
        client.chat.completions.create = AsyncMock(side_effect=error)
    else:
        content = payload if isinstance(payload, str) else json.dumps(payload)
        client.chat.completions.create = AsyncMock(return_value=openai_response(content))
    return client


class FakeWebSocket:
    """Records sent frames; mimics Starlette's send_text/close."""

    def __init__(self, fail_on_send: bool = False):
        self.sent = []
        self.closed = False
        self.fail_on_send = fail_on_send

    async def send_text(self, text: str):
        if self.fail_on_send:
            raise RuntimeError("connection reset")
        self.sent.append(json.loads(text))

    async def close(self):
        self.closed = True

    def of_type(self, message_type: str):
        return [m for m in self.sent if m.get("type") == message_type]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'taskpilot.db'}",
        execution_start_delay_seconds=0.0,
        service_delay_min_seconds=0.0,
        service_delay_max_seconds=0.0,
        service_success_rate=1.0,
    )


@pytest.fixture
def storage(settings):
    service = StorageService(settings.database_url)
    yield service
    service.close()


@pytest.fixture
def services():
    return create_mock_services(seed=7)


@pytest.fixture
def registry(services):
    return build_default_registry(services)


@pytest.fixture
def hub():
    return NotificationHub()


@pytest.fixture
def llm_client():
    return make_openai_client(THREE_STEP_PLAN)


@pytest.fixture
def orchestrator(settings, storage, services, registry, hub, llm_client):
    orch = build_orchestrator(
        settings,
        storage=storage,
        services=services,
        registry=registry,
        hub=hub,
        llm_client=llm_client,
    )
    orch.initialize_default_agents()
    orch.initialize_default_integrations()
    return orch
