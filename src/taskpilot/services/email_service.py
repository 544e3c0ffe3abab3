"""
Email capability — outbound follow-up messages.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import List

from .base_service import ServiceResult, SimulatedService

logger = logging.getLogger(__name__)


class EmailService(ABC):
    """Sends email."""

    @abstractmethod
    async def send_email(self, to: List[str], subject: str, body: str) -> ServiceResult:
        """data: emails_sent, tracking_ids (one per recipient)."""


class MockEmailService(SimulatedService, EmailService):
    """Records sent emails in `outbox`."""

    def __init__(self, sender: str = "agents@taskpilot.local", **kwargs):
        super().__init__(**kwargs)
        self.sender = sender
        self.outbox: List[dict] = []

    async def send_email(self, to: List[str], subject: str, body: str) -> ServiceResult:
        if not to:
            return ServiceResult.fail("No recipients", emails_sent=0, tracking_ids=[])

        success = await self._simulate("send_email", to=list(to), subject=subject)
        if not success:
            return ServiceResult.fail("Some emails failed to send", emails_sent=0, tracking_ids=[])

        tracking_ids = [uuid.uuid4().hex for _ in to]
        for recipient, tracking_id in zip(to, tracking_ids):
            self.outbox.append({
                "from": self.sender,
                "to": recipient,
                "subject": subject,
                "body": body,
                "tracking_id": tracking_id,
            })
        logger.info(f"Sent '{subject}' to {len(to)} recipient(s)")
        return ServiceResult.ok(emails_sent=len(to), tracking_ids=tracking_ids)
