"""
Base Service — shared result type and simulation for external capabilities.

Capabilities (telephony, calendar, email, chat) are abstract interfaces.
The mock implementations simulate provider latency and occasional failure:

    mock_delay: (min, max) seconds of simulated work
    success_rate: probability of success (1.0 = always success)

Provider failures are reported through ServiceResult, never raised.
"""

import asyncio
import logging
import random
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ServiceResult(BaseModel):
    """Outcome of a call to an external capability."""
    success: bool
    data: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def ok(cls, **data: Any) -> "ServiceResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, **data: Any) -> "ServiceResult":
        return cls(success=False, data=data, error=error)


class SimulatedService:
    """
    Mixin for mock capabilities: configurable delay and success rate.

    Every simulated call is recorded in `calls` for inspection.
    """

    def __init__(
        self,
        mock_delay: Tuple[float, float] = (0.0, 0.0),
        success_rate: float = 1.0,
        rng: Optional[random.Random] = None,
    ):
        low, high = mock_delay
        if low < 0 or high < low:
            raise ValueError(f"Invalid mock delay range: {mock_delay}")
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError(f"success_rate must be between 0 and 1, got {success_rate}")

        self.mock_delay = (low, high)
        self.success_rate = success_rate
        self._rng = rng or random.Random()
        self.calls: list = []

    async def _simulate(self, operation: str, **details: Any) -> bool:
        """Sleep for the simulated latency and decide success."""
        self.calls.append({"operation": operation, **details})

        delay = self._rng.uniform(*self.mock_delay)
        if delay > 0:
            logger.debug(f"{type(self).__name__}.{operation}: simulating {delay:.2f}s")
            await asyncio.sleep(delay)

        return self._rng.random() < self.success_rate
