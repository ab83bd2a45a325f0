"""
Keeps the cluster's own view of its size in sync with the deployment spec.

Counts flow both ways: the operator pushes the member counts it manages,
and counts changed through the database's own interface are pulled back
into the spec after validation.
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Protocol, Tuple

from kubarango.config.provider import ScalingConfig
from kubarango.modules.api.models import (
    DeploymentMode,
    DeploymentPhase,
    DeploymentRecord,
    DeploymentSpec,
    ServerGroup,
    SpecValidationError,
)
from kubarango.modules.arangod import NumberOfServers
from kubarango.modules.events import EVENT_WARNING, EventRecorder

logger = logging.getLogger("kubarango.scaling")


class NumberOfServersAPI(Protocol):
    async def get_number_of_servers(self) -> NumberOfServers:
        ...

    async def set_number_of_servers(self, coordinators: Optional[int], dbservers: Optional[int]) -> None:
        ...


class DeploymentStore(Protocol):
    async def read(self, name: str) -> DeploymentRecord:
        ...

    async def update(self, name: str, mutator: Callable[[DeploymentRecord], bool]) -> bool:
        ...


class ScalingState:
    """
    Shared state of one integration, guarded by a single lock.

    Holds the pending spec update, the last counts known to the cluster and
    whether scaling through the cluster is enabled. Only the accessors below
    touch the fields.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._pending: Optional[DeploymentSpec] = None
        self._last = NumberOfServers()
        self._enabled = True

    async def set_pending(self, spec: DeploymentSpec) -> None:
        async with self._lock:
            self._pending = spec

    async def get_pending(self) -> Optional[DeploymentSpec]:
        async with self._lock:
            return self._pending

    async def clear_pending(self, expected: Optional[DeploymentSpec] = None) -> bool:
        """Clear the slot; with expected, only if it still holds that spec."""
        async with self._lock:
            if expected is not None and self._pending is not expected:
                return False
            self._pending = None
            return True

    async def get_last(self) -> NumberOfServers:
        async with self._lock:
            return self._last.model_copy()

    async def set_last(
        self, coordinators: Optional[int], dbservers: Optional[int], only_missing: bool = False
    ) -> None:
        async with self._lock:
            if only_missing:
                if self._last.coordinators is None and coordinators is not None:
                    self._last.coordinators = coordinators
                if self._last.dbservers is None and dbservers is not None:
                    self._last.dbservers = dbservers
                return
            if coordinators is not None:
                self._last.coordinators = coordinators
            if dbservers is not None:
                self._last.dbservers = dbservers

    async def is_enabled(self) -> bool:
        async with self._lock:
            return self._enabled

    async def set_enabled(self, enabled: bool) -> None:
        async with self._lock:
            self._enabled = enabled


class ClusterScalingIntegration:
    """One per deployment; runs next to the deployment's control loop."""

    def __init__(
        self,
        deployment: str,
        store: DeploymentStore,
        client: NumberOfServersAPI,
        config: Optional[ScalingConfig] = None,
        events: Optional[EventRecorder] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.deployment = deployment
        self.store = store
        self.client = client
        self.config = config or ScalingConfig(enabled=True, period=2.0, bootstrap_grace=120.0)
        self.events = events
        self.state = ScalingState()
        self._clock = clock
        # Cluster counts last refused, so a persisting refusal is reported once
        self._rejected: Optional[Tuple[Optional[int], Optional[int]]] = None
        # Serializes enable, disable and check sequences
        self._scale_lock = asyncio.Lock()

    async def send_update_to_cluster(self, spec: DeploymentSpec) -> None:
        """Queue a spec whose counts should be pushed on the next tick."""
        await self.state.set_pending(spec)

    async def get_last_number_of_servers(self) -> NumberOfServers:
        return await self.state.get_last()

    async def disable_scaling_cluster(self) -> None:
        """Stop the cluster's UI from changing counts while members are scaled."""
        async with self._scale_lock:
            await self.client.set_number_of_servers(None, None)
            await self.state.set_enabled(False)
            logger.info(f"Disabled cluster scaling for {self.deployment}")

    async def enable_scaling_cluster(self) -> None:
        async with self._scale_lock:
            if await self.state.is_enabled():
                return
            await self._set_number_of_servers()
            await self.state.set_enabled(True)
            logger.info(f"Enabled cluster scaling for {self.deployment}")

    async def _get_numbers_of_servers(self) -> Tuple[int, int]:
        record = await self.store.read(self.deployment)
        members = record.status.members
        return (
            len(members.members_of_group(ServerGroup.COORDINATORS)),
            len(members.members_of_group(ServerGroup.DBSERVERS)),
        )

    async def _set_number_of_servers(self) -> None:
        coordinators, dbservers = await self._get_numbers_of_servers()
        await self.client.set_number_of_servers(coordinators, dbservers)

    async def check_scaling_cluster(self, expect_success: bool) -> bool:
        """
        Run one tick: push pending counts, then pull the cluster's counts.

        Returns:
            True if the cluster was inspected successfully
        """
        if not self.config.enabled:
            return False

        log = logger.warning if expect_success else logger.debug
        async with self._scale_lock:
            try:
                record = await self.store.read(self.deployment)
            except Exception as e:
                log(f"Unable to read deployment {self.deployment}: {e}")
                return False

            if record.spec.mode != DeploymentMode.CLUSTER:
                return False

            if not await self.state.is_enabled():
                # Re-enable when nothing operator-driven is pending
                if record.status.plan.is_empty():
                    try:
                        await self._set_number_of_servers()
                        await self.state.set_enabled(True)
                    except Exception as e:
                        log(f"Unable to re-enable cluster scaling: {e}")

            if record.status.phase != DeploymentPhase.RUNNING or not await self.state.is_enabled():
                return False

            try:
                safe_to_ask_cluster = await self._update_cluster_server_count(expect_success)
            except Exception as e:
                log(f"Cluster update failed: {e}")
                return False

            if not safe_to_ask_cluster:
                return False

            try:
                await self._inspect_cluster(expect_success)
            except Exception as e:
                log(f"Cluster inspection failed: {e}")
                return False
            return True

    async def _update_cluster_server_count(self, expect_success: bool) -> bool:
        """Push a pending spec; True when it is safe to ask the cluster afterwards."""
        spec = await self.state.get_pending()
        if spec is None:
            return True

        coordinators, dbservers = await self._get_numbers_of_servers()
        coordinators_arg: Optional[int] = coordinators
        dbservers_arg: Optional[int] = dbservers
        if spec.coordinators.get_min_count() == spec.coordinators.get_max_count():
            coordinators_arg = None
        if spec.dbservers.get_min_count() == spec.dbservers.get_max_count():
            dbservers_arg = None

        # Avoid rewriting values the cluster's UI may have just changed
        last = await self.state.get_last()
        if coordinators != last.get_coordinators() or dbservers != last.get_dbservers():
            await self.client.set_number_of_servers(coordinators_arg, dbservers_arg)
            logger.debug(
                f"Pushed number of servers for {self.deployment}: "
                f"coordinators={coordinators_arg} dbservers={dbservers_arg}"
            )

        safe_to_ask_cluster = await self.state.clear_pending(spec)
        await self.state.set_last(coordinators, dbservers)
        return safe_to_ask_cluster

    async def _inspect_cluster(self, expect_success: bool) -> None:
        """Pull the cluster's counts and write changes back into the spec."""
        reported = await self.client.get_number_of_servers()
        if reported.coordinators is None and reported.dbservers is None:
            return

        last = await self.state.get_last()
        coordinators_changed = (
            reported.coordinators is not None
            and last.coordinators is not None
            and reported.coordinators != last.coordinators
        )
        dbservers_changed = (
            reported.dbservers is not None
            and last.dbservers is not None
            and reported.dbservers != last.dbservers
        )

        if not coordinators_changed and not dbservers_changed:
            self._rejected = None
            # First contact after a restart: adopt what the cluster reports
            await self.state.set_last(reported.coordinators, reported.dbservers, only_missing=True)
            return

        current = await self.store.read(self.deployment)
        new_spec = current.spec.model_copy(deep=True)
        if coordinators_changed:
            new_spec.coordinators.count = reported.coordinators
        if dbservers_changed:
            new_spec.dbservers.count = reported.dbservers

        try:
            new_spec.validate_spec()
        except SpecValidationError as e:
            rejected = (reported.coordinators, reported.dbservers)
            if rejected != self._rejected:
                logger.warning(f"Validation of updated spec of {self.deployment} has failed: {e}")
                if self.events is not None:
                    await self.events.record(self.deployment, EVENT_WARNING, "Validation failed", str(e))
                self._rejected = rejected
            # The cluster holds the refused counts until the known-good spec is pushed back
            await self.state.set_last(
                reported.coordinators if coordinators_changed else None,
                reported.dbservers if dbservers_changed else None,
            )
            await self.send_update_to_cluster(current.spec)
            return

        def apply(record: DeploymentRecord) -> bool:
            changed = False
            if coordinators_changed and record.spec.coordinators.count != reported.coordinators:
                record.spec.coordinators.count = reported.coordinators
                changed = True
            if dbservers_changed and record.spec.dbservers.count != reported.dbservers:
                record.spec.dbservers.count = reported.dbservers
                changed = True
            return changed

        if await self.store.update(self.deployment, apply):
            logger.info(
                f"Updated spec of {self.deployment} from cluster: "
                f"coordinators={new_spec.coordinators.count} dbservers={new_spec.dbservers.count}"
            )
        self._rejected = None
        await self.state.clear_pending()
        await self.state.set_last(
            reported.coordinators if coordinators_changed else None,
            reported.dbservers if dbservers_changed else None,
        )

    async def listen_for_cluster_events(self, stop_event: asyncio.Event) -> None:
        """Tick until stop_event is set. Errors never end the loop."""
        start = self._clock()
        good_inspections = 0
        while not stop_event.is_set():
            expect_success = (
                good_inspections > 0 or self._clock() - start > self.config.bootstrap_grace
            )
            if await self.check_scaling_cluster(expect_success):
                good_inspections += 1

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.config.period)
            except asyncio.TimeoutError:
                pass
        logger.debug(f"Stopped cluster scaling integration of {self.deployment}")
