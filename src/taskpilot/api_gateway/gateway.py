"""
API Gateway — HTTP and WebSocket interface for TaskPilot.

Provides endpoints for:
- GET /api/auth/user — current user
- GET /api/agents — agent records
- POST /api/tasks — process a natural-language instruction
- GET /api/tasks — the user's tasks
- GET /api/activities — the user's activity feed
- GET /api/integrations — external service records
- GET /api/examples — quick example instructions
- GET /status — system status
- WS /ws — live updates

The user is identified by the X-User-Id header; requests without it act as
the configured default user.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from ..config import Settings, load_settings
from ..notifier import NotificationHub
from ..orchestrator import InstructionResult, OrchestrationError, TaskOrchestrator, build_orchestrator
from ..storage import Activity, Agent, CamelModel, Integration, Task, User

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


# =============================================================================
# Request/Response Models
# =============================================================================

class CreateTaskRequest(CamelModel):
    """Request to process a natural-language instruction."""
    original_instruction: str = Field(..., min_length=1, description="Instruction in plain language")


class StatusResponse(BaseModel):
    """System status response."""
    status: str
    agents: List[str]
    connected_clients: int
    in_flight: int
    storage: Dict[str, Any]


# =============================================================================
# API Gateway Class
# =============================================================================

class APIGateway:
    """
    API Gateway for TaskPilot.

    Owns the orchestrator and the notification hub; seeds default agents
    and integrations on creation.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        orchestrator: Optional[TaskOrchestrator] = None,
        hub: Optional[NotificationHub] = None,
    ):
        self.settings = settings or load_settings()
        self.hub = hub or NotificationHub(
            cleanup_interval=self.settings.ws_cleanup_interval_seconds,
            inactive_timeout=self.settings.ws_inactive_timeout_seconds,
        )
        self.orchestrator = orchestrator or build_orchestrator(self.settings, hub=self.hub)
        self.storage = self.orchestrator.storage

        self.orchestrator.initialize_default_agents()
        self.orchestrator.initialize_default_integrations()
        self.orchestrator.recover_interrupted()

        logger.info("APIGateway initialized")

    def resolve_user(self, user_id: Optional[str]) -> str:
        """Return the effective user id, creating the user on first sight."""
        user_id = (user_id or "").strip() or self.settings.default_user_id
        self.storage.ensure_user(user_id)
        return user_id

    # =========================================================================
    # Operations
    # =========================================================================

    def get_user(self, user_id: str) -> User:
        user = self.storage.get_user(user_id)
        if user is None:
            raise HTTPException(status_code=404, detail=f"User not found: {user_id}")
        return user

    async def create_task(self, user_id: str, request: CreateTaskRequest) -> InstructionResult:
        """Process an instruction and announce the new task to the user."""
        try:
            result = await self.orchestrator.process_instruction(user_id, request.original_instruction)
        except OrchestrationError as e:
            logger.error(f"Error creating task: {e}")
            raise HTTPException(status_code=500, detail="Failed to create task")

        try:
            await self.hub.broadcast_task_update(user_id, {
                "taskId": result.task_id,
                "status": "created",
                "instruction": request.original_instruction,
                "processed": result.processed.model_dump(by_alias=True, mode="json"),
            })
        except Exception as e:
            logger.warning(f"Failed to broadcast task {result.task_id} creation: {e}")

        return result

    def get_status(self) -> StatusResponse:
        return StatusResponse(
            status="healthy",
            agents=[agent.name for agent in self.storage.get_all_agents()],
            connected_clients=len(self.hub.clients),
            in_flight=self.orchestrator.executor.in_flight,
            storage=self.storage.get_stats(),
        )

    # =========================================================================
    # WebSocket
    # =========================================================================

    async def serve_websocket(self, websocket: WebSocket) -> None:
        await websocket.accept()
        await self.hub.connect(websocket)
        try:
            while True:
                raw = await websocket.receive_text()
                await self.hub.handle_message(websocket, raw)
        except WebSocketDisconnect:
            pass
        except RuntimeError as e:
            # receive after the hub closed an idle socket
            logger.debug(f"WebSocket closed: {e}")
        finally:
            self.hub.disconnect(websocket)


# =============================================================================
# FastAPI Application
# =============================================================================

def create_app(gateway: Optional[APIGateway] = None) -> FastAPI:
    """Create FastAPI application."""

    if gateway is None:
        gateway = APIGateway()

    app = FastAPI(
        title="TaskPilot API",
        description="Natural-language task orchestration across specialized agents",
        version=API_VERSION,
    )

    # Store gateway instance
    app.state.gateway = gateway

    @app.on_event("startup")
    async def startup():
        """Start WebSocket housekeeping."""
        gateway.hub.start()

    @app.on_event("shutdown")
    async def shutdown():
        """Stop housekeeping and let running sub-tasks finish."""
        await gateway.hub.stop()
        await gateway.orchestrator.executor.wait_idle()

    # ==========================================================================
    # Routes
    # ==========================================================================

    @app.get("/")
    async def root():
        """API root."""
        return {
            "name": "TaskPilot API",
            "version": API_VERSION,
            "endpoints": {
                "user": "/api/auth/user",
                "agents": "/api/agents",
                "tasks": "/api/tasks",
                "activities": "/api/activities",
                "integrations": "/api/integrations",
                "examples": "/api/examples",
                "status": "/status",
                "websocket": "/ws",
            }
        }

    @app.get("/status", response_model=StatusResponse)
    async def get_status():
        """Get system status."""
        try:
            return gateway.get_status()
        except Exception as e:
            logger.error(f"Error fetching status: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch status")

    @app.get("/api/auth/user", response_model=User)
    async def get_user(x_user_id: Optional[str] = Header(default=None)):
        """Get the current user."""
        try:
            user_id = gateway.resolve_user(x_user_id)
            return gateway.get_user(user_id)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error fetching user: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch user")

    @app.get("/api/agents", response_model=List[Agent])
    async def list_agents():
        """List agent records."""
        try:
            return gateway.storage.get_all_agents()
        except Exception as e:
            logger.error(f"Error fetching agents: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch agents")

    @app.post("/api/tasks", response_model=InstructionResult)
    async def create_task(request: CreateTaskRequest, x_user_id: Optional[str] = Header(default=None)):
        """Process a natural-language instruction."""
        try:
            user_id = gateway.resolve_user(x_user_id)
        except Exception as e:
            logger.error(f"Error creating task: {e}")
            raise HTTPException(status_code=500, detail="Failed to create task")
        return await gateway.create_task(user_id, request)

    @app.get("/api/tasks", response_model=List[Task])
    async def list_tasks(x_user_id: Optional[str] = Header(default=None)):
        """List the user's tasks, newest first."""
        try:
            return gateway.storage.get_user_tasks(gateway.resolve_user(x_user_id))
        except Exception as e:
            logger.error(f"Error fetching tasks: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch tasks")

    @app.get("/api/activities", response_model=List[Activity])
    async def list_activities(x_user_id: Optional[str] = Header(default=None)):
        """List the user's recent activities, newest first."""
        try:
            return gateway.storage.get_user_activities(gateway.resolve_user(x_user_id))
        except Exception as e:
            logger.error(f"Error fetching activities: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch activities")

    @app.get("/api/integrations", response_model=List[Integration])
    async def list_integrations():
        """List external service records."""
        try:
            return gateway.storage.get_all_integrations()
        except Exception as e:
            logger.error(f"Error fetching integrations: {e}")
            raise HTTPException(status_code=500, detail="Failed to fetch integrations")

    @app.get("/api/examples", response_model=List[str])
    async def list_examples():
        """Quick example instructions."""
        return gateway.orchestrator.get_quick_examples()

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """WebSocket endpoint for live updates."""
        await gateway.serve_websocket(websocket)

    return app


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s'
    )

    settings = load_settings()
    app = create_app(APIGateway(settings))
    uvicorn.run(app, host=settings.host, port=settings.port)
