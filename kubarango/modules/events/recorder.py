import json
import logging
from datetime import UTC, datetime
from typing import List

logger = logging.getLogger("kubarango.events")

EVENT_NORMAL = "Normal"
EVENT_WARNING = "Warning"


class EventRecorder:
    def __init__(self, redis_client, max_events: int = 100, ttl: int = 86400):
        """
        Initialize event recorder.

        Args:
            redis_client: Async Redis client
            max_events: Number of events kept per deployment
            ttl: Seconds before an idle event list expires (1 day)
        """
        self.redis = redis_client
        self.max_events = max_events
        self.ttl = ttl

    @staticmethod
    def _key(deployment: str) -> str:
        return f"events:{deployment}"

    async def record(
        self, deployment: str, event_type: str, reason: str, message: str
    ) -> None:
        """
        Record an operator-visible event for a deployment.

        Failures are logged and never raised to the caller.
        """
        event = {
            "type": event_type,
            "reason": reason,
            "message": message,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        key = self._key(deployment)
        try:
            await self.redis.lpush(key, json.dumps(event))
            await self.redis.ltrim(key, 0, self.max_events - 1)
            await self.redis.expire(key, self.ttl)
        except Exception as e:
            logger.warning(f"Failed to record event {reason} for {deployment}: {e}")
            return

        log = logger.warning if event_type == EVENT_WARNING else logger.info
        log("%s: %s %s", deployment, reason, message)

    async def normal(self, deployment: str, reason: str, message: str) -> None:
        await self.record(deployment, EVENT_NORMAL, reason, message)

    async def warning(self, deployment: str, reason: str, message: str) -> None:
        await self.record(deployment, EVENT_WARNING, reason, message)

    async def list_events(self, deployment: str, limit: int = 100) -> List[dict]:
        """Most recent events first."""
        raw = await self.redis.lrange(self._key(deployment), 0, limit - 1)
        return [json.loads(item) for item in raw]
