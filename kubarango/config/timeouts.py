"""Global timeout policy for outbound calls."""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Optional, TypeVar

from kubarango.config.provider import TimeoutConfig

T = TypeVar("T")


@dataclass(frozen=True)
class Timeout:
    """A bounded deadline for one class of calls."""
    seconds: float

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await with this deadline.

        Raises:
            asyncio.TimeoutError: If the deadline is exceeded
        """
        return await asyncio.wait_for(awaitable, timeout=self.seconds)


class GlobalTimeouts:
    """Deadlines per call class, derived from one TimeoutConfig."""

    def __init__(self, config: Optional[TimeoutConfig] = None):
        self._config = config or TimeoutConfig(
            kubernetes=15.0, arangod=10.0, store=5.0, default_action=600.0, short_action=30.0
        )

    def kubernetes(self) -> Timeout:
        return Timeout(self._config.kubernetes)

    def arangod(self) -> Timeout:
        return Timeout(self._config.arangod)

    def store(self) -> Timeout:
        return Timeout(self._config.store)

    @property
    def default_action(self) -> float:
        return self._config.default_action

    @property
    def short_action(self) -> float:
        """Budget of actions that only touch the status or the cluster's scaling switch."""
        return self._config.short_action
