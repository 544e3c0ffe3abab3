"""
Live notifications for dashboard clients.
"""

from .hub import ClientConnection, NotificationHub

__all__ = ["ClientConnection", "NotificationHub"]
