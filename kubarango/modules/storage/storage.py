import logging
from typing import Callable, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from kubarango.config.timeouts import GlobalTimeouts
from kubarango.modules.api.models import (
    DeploymentRecord,
    DeploymentSpec,
    DeploymentStatus,
)

from .errors import ConflictError, NotFoundError, StoreError

logger = logging.getLogger("kubarango.storage")

# Bound on optimistic concurrency retries before a conflict surfaces
MAX_UPDATE_ATTEMPTS = 50

RecordMutator = Callable[[DeploymentRecord], bool]


class RedisStatusStore:
    """
    Versioned deployment documents in Redis.

    Each deployment lives under ``deployment:{name}`` as one JSON document
    carrying spec, status and a version counter. Writes are compare-and-swap
    against the version read earlier.
    """

    INDEX_KEY = "deployments:index"

    def __init__(self, redis_client: redis.Redis, timeouts: Optional[GlobalTimeouts] = None):
        """
        Initialize the store.

        Args:
            redis_client: Async Redis client
            timeouts: Deadline policy applied to every call
        """
        self.redis = redis_client
        self.timeouts = timeouts or GlobalTimeouts()

    @staticmethod
    def _key(name: str) -> str:
        return f"deployment:{name}"

    async def read(self, name: str) -> DeploymentRecord:
        """
        Read spec, status and version of a deployment.

        Raises:
            NotFoundError: If the deployment does not exist
        """
        raw = await self.timeouts.store().run(self.redis.get(self._key(name)))
        if raw is None:
            raise NotFoundError(f"Deployment {name} not found")
        return DeploymentRecord.model_validate_json(raw)

    async def create(self, name: str, spec: DeploymentSpec) -> DeploymentRecord:
        """
        Create a new deployment document at version 1.

        Raises:
            ConflictError: If the deployment already exists
        """
        record = DeploymentRecord(name=name, spec=spec, version=1)
        created = await self.timeouts.store().run(
            self.redis.set(self._key(name), record.model_dump_json(), nx=True)
        )
        if not created:
            raise ConflictError(f"Deployment {name} already exists")
        await self.timeouts.store().run(self.redis.sadd(self.INDEX_KEY, name))
        logger.info(f"Created deployment {name}")
        return record

    async def compare_and_swap(
        self,
        name: str,
        version: int,
        *,
        spec: Optional[DeploymentSpec] = None,
        status: Optional[DeploymentStatus] = None,
    ) -> DeploymentRecord:
        """
        Write spec and/or status if the stored version still equals ``version``.

        Returns:
            The written record, carrying the incremented version

        Raises:
            NotFoundError: If the deployment vanished
            ConflictError: If another writer updated it concurrently
        """
        return await self.timeouts.store().run(self._cas(name, version, spec, status))

    async def _cas(
        self,
        name: str,
        version: int,
        spec: Optional[DeploymentSpec],
        status: Optional[DeploymentStatus],
    ) -> DeploymentRecord:
        key = self._key(name)
        async with self.redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                raw = await pipe.get(key)
                if raw is None:
                    raise NotFoundError(f"Deployment {name} not found")

                current = DeploymentRecord.model_validate_json(raw)
                if current.version != version:
                    raise ConflictError(
                        f"Deployment {name} changed: expected version {version}, found {current.version}"
                    )

                updated = DeploymentRecord(
                    name=name,
                    spec=spec if spec is not None else current.spec,
                    status=status if status is not None else current.status,
                    version=current.version + 1,
                )
                pipe.multi()
                pipe.set(key, updated.model_dump_json())
                await pipe.execute()
                return updated
            except WatchError as e:
                raise ConflictError(f"Deployment {name} changed during write") from e
            except RedisError as e:
                raise StoreError(f"Failed to write deployment {name}: {e}") from e

    async def update(
        self, name: str, mutator: RecordMutator, max_attempts: int = MAX_UPDATE_ATTEMPTS
    ) -> bool:
        """
        Read-modify-write a deployment with conflict retries.

        The mutator receives a fresh copy of the record and returns whether it
        changed anything. An unchanged record is not written.

        Returns:
            True if a write happened

        Raises:
            ConflictError: After max_attempts consecutive conflicts
        """
        for attempt in range(1, max_attempts + 1):
            record = await self.read(name)
            working = record.model_copy(deep=True)
            if not mutator(working):
                return False
            try:
                await self.compare_and_swap(
                    name, record.version, spec=working.spec, status=working.status
                )
                return True
            except ConflictError:
                logger.debug(f"Conflict updating {name} (attempt {attempt}/{max_attempts})")
        raise ConflictError(f"Giving up on {name} after {max_attempts} conflicting attempts")

    async def list_names(self) -> List[str]:
        """Names of all deployments in the index."""
        names = await self.timeouts.store().run(self.redis.smembers(self.INDEX_KEY))
        return sorted(names)

    async def delete(self, name: str) -> None:
        """Remove a deployment document and its index entry."""
        await self.timeouts.store().run(self.redis.delete(self._key(name)))
        await self.timeouts.store().run(self.redis.srem(self.INDEX_KEY, name))
        logger.info(f"Deleted deployment {name}")
