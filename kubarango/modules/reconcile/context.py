import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from kubarango.modules.api.models import (
    DeploymentRecord,
    DeploymentSpec,
    DeploymentStatus,
    MemberStatus,
    ServerGroup,
)
from kubarango.modules.events import EVENT_NORMAL, EventRecorder
from kubarango.modules.features import FeatureGates
from kubarango.modules.k8s.inspector import ClusterInspector, ClusterSnapshot, PodInterface
from kubarango.modules.storage.errors import is_not_found

logger = logging.getLogger("kubarango.reconcile")

StatusMutator = Callable[[DeploymentStatus], bool]


class StatusStore(Protocol):
    async def read(self, name: str) -> DeploymentRecord:
        ...

    async def update(self, name: str, mutator: Callable[[DeploymentRecord], bool]) -> bool:
        ...


class ScalingSwitch(Protocol):
    async def enable_scaling_cluster(self) -> None:
        ...

    async def disable_scaling_cluster(self) -> None:
        ...


class ActionContext:
    """
    Deployment-scoped view handed to actions.

    Holds the last read record and snapshot. Status writes go through the
    store's compare-and-swap path and refresh the held record.
    """

    def __init__(
        self,
        deployment: str,
        store: StatusStore,
        pods: PodInterface,
        inspector: ClusterInspector,
        record: DeploymentRecord,
        snapshot: ClusterSnapshot,
        features: Optional[FeatureGates] = None,
        events: Optional[EventRecorder] = None,
        scaling: Optional[ScalingSwitch] = None,
        namespace: str = "default",
    ):
        self.deployment = deployment
        self.namespace = namespace
        self.store = store
        self.pods = pods
        self.inspector = inspector
        self.features = features or FeatureGates()
        self.events = events
        self.scaling = scaling
        self._record = record
        self._snapshot = snapshot

    @property
    def record(self) -> DeploymentRecord:
        return self._record

    def get_spec(self) -> DeploymentSpec:
        return self._record.spec

    def get_status(self) -> DeploymentStatus:
        return self._record.status

    def get_member_status_by_id(self, member_id: str) -> Optional[Tuple[MemberStatus, ServerGroup]]:
        return self._record.status.members.element_by_id(member_id)

    def get_cached_status(self) -> ClusterSnapshot:
        return self._snapshot

    async def refresh_cached_status(self) -> ClusterSnapshot:
        self._snapshot = await self.inspector.refresh(self.deployment)
        return self._snapshot

    async def reload(self) -> DeploymentRecord:
        self._record = await self.store.read(self.deployment)
        return self._record

    async def with_status_update(self, mutator: StatusMutator) -> bool:
        """
        Apply mutator to a fresh status copy and write it with CAS retries.

        Returns:
            True if the status changed
        """
        changed = await self.store.update(self.deployment, lambda record: mutator(record.status))
        if changed:
            await self.reload()
        return changed

    async def update_member(self, member_id: str, mutator: Callable[[MemberStatus], bool]) -> bool:
        """Mutate one member in place; False if it does not exist or nothing changed."""

        def update(status: DeploymentStatus) -> bool:
            found = status.members.element_by_id(member_id)
            if found is None:
                return False
            return mutator(found[0])

        return await self.with_status_update(update)

    async def delete_pod(self, name: str) -> None:
        """Delete a pod. A pod that is already gone counts as deleted."""
        try:
            await self.pods.delete(name)
        except Exception as e:
            if is_not_found(e):
                logger.debug(f"Pod {name} already gone")
                return
            raise

    async def patch_pod(
        self,
        name: str,
        annotations: Optional[Dict[str, str]] = None,
        tolerations: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        await self.pods.patch(name, annotations=annotations, tolerations=tolerations)

    async def enable_scaling_cluster(self) -> None:
        if self.scaling is not None:
            await self.scaling.enable_scaling_cluster()

    async def disable_scaling_cluster(self) -> None:
        if self.scaling is not None:
            await self.scaling.disable_scaling_cluster()

    async def record_event(self, reason: str, message: str, event_type: str = EVENT_NORMAL) -> None:
        if self.events is not None:
            await self.events.record(self.deployment, event_type, reason, message)
