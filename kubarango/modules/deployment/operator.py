import asyncio
import logging
from typing import Callable, Dict, List, NamedTuple, Optional, Protocol

from .deployment import Deployment

logger = logging.getLogger("kubarango.operator")

DEFAULT_SYNC_PERIOD = 10.0


class DeploymentIndex(Protocol):
    async def list_names(self) -> List[str]:
        ...


class _Running(NamedTuple):
    deployment: Deployment
    task: asyncio.Task
    stop_event: asyncio.Event


class Operator:
    """
    Supervises one control loop task per deployment in the index.

    Loops are independent: a failing or slow deployment never delays
    another one.
    """

    def __init__(
        self,
        index: DeploymentIndex,
        deployment_factory: Callable[[str], Deployment],
        sync_period: float = DEFAULT_SYNC_PERIOD,
    ):
        self.index = index
        self.deployment_factory = deployment_factory
        self.sync_period = sync_period
        self._running: Dict[str, _Running] = {}
        self._stop = asyncio.Event()
        self._sync_task: Optional[asyncio.Task] = None

    @property
    def deployments(self) -> List[str]:
        return sorted(self._running)

    async def start(self) -> None:
        if self._sync_task is not None:
            return
        self._stop.clear()
        await self.sync()
        self._sync_task = asyncio.create_task(self._sync_loop())
        logger.info("Operator started")

    async def sync(self) -> None:
        """Start loops for new deployments and stop loops of removed ones."""
        for name, running in list(self._running.items()):
            if running.task.done():
                del self._running[name]
                if not running.task.cancelled() and running.task.exception() is not None:
                    logger.error(f"Control loop of {name} crashed: {running.task.exception()}")

        names = set(await self.index.list_names())
        for name in sorted(names - set(self._running)):
            deployment = self.deployment_factory(name)
            stop_event = asyncio.Event()
            task = asyncio.create_task(deployment.run(stop_event), name=f"deployment-{name}")
            self._running[name] = _Running(deployment, task, stop_event)
            logger.info(f"Watching deployment {name}")

        for name in sorted(set(self._running) - names):
            await self._stop_one(name)

    async def _stop_one(self, name: str) -> None:
        running = self._running.pop(name)
        running.stop_event.set()
        await asyncio.gather(running.task, return_exceptions=True)
        logger.info(f"Stopped watching deployment {name}")

    async def _sync_loop(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.sync_period)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await self.sync()
            except Exception as e:
                logger.error(f"Failed to sync deployments: {e}")

    async def stop(self) -> None:
        self._stop.set()
        if self._sync_task is not None:
            await asyncio.gather(self._sync_task, return_exceptions=True)
            self._sync_task = None
        for name in list(self._running):
            await self._stop_one(name)
        logger.info("Operator stopped")
