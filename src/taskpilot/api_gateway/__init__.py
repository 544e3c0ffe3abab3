"""
API Gateway module for TaskPilot.

Provides the HTTP/WebSocket interface.
"""

from .gateway import APIGateway, CreateTaskRequest, StatusResponse, create_app

__all__ = ["APIGateway", "CreateTaskRequest", "StatusResponse", "create_app"]
