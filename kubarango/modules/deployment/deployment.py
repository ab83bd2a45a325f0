import asyncio
import logging
from typing import Optional, Set

from kubarango.modules.api.models import (
    ActionType,
    ConditionType,
    DeploymentPhase,
    DeploymentRecord,
    MemberPhase,
    MemberStatus,
    Plan,
)
from kubarango.modules.arangod import ArangodClient
from kubarango.modules.events import EVENT_NORMAL, EVENT_WARNING, EventRecorder
from kubarango.modules.features import FeatureGates
from kubarango.modules.k8s import (
    ANNOTATION_POD_CHECKSUM,
    FINALIZER_POD_GRACEFUL_SHUTDOWN,
    ClusterInspector,
    ClusterSnapshot,
    PodInterface,
    remove_pod_finalizers,
)
from kubarango.modules.k8s.constants import LABEL_MEMBER_ID
from kubarango.modules.plan import PlanBuilder, PlanBuilderContext
from kubarango.modules.pod import RoleValidationError, render_member_template, role_for_group
from kubarango.modules.reconcile import ActionContext, PlanExecutor
from kubarango.modules.reconcile.context import StatusStore
from kubarango.modules.scaling import ClusterScalingIntegration
from kubarango.modules.storage.errors import ConflictError, NotFoundError

from .interval import Interval

logger = logging.getLogger("kubarango.deployment")

BACKOFF_FACTOR = 1.5

# Actions during which the member's pod may legitimately be missing
_POD_IN_FLIGHT_ACTIONS = (ActionType.KILL_MEMBER_POD, ActionType.ROTATE_MEMBER)


def members_in_flight(plan: Plan) -> Set[str]:
    """Members whose pod is being removed or replaced by the current plan."""
    busy = {a.member_id for a in plan if a.type == ActionType.REMOVE_MEMBER}
    first = plan.first()
    if first is not None and first.type in _POD_IN_FLIGHT_ACTIONS:
        busy.add(first.member_id)
    return busy


def _pod_released(record: DeploymentRecord, member_id: str) -> bool:
    """The operator no longer needs the graceful hold on this member's pod."""
    if record.status.members.element_by_id(member_id) is None:
        return True
    first = record.status.plan.first()
    return (
        first is not None
        and first.member_id == member_id
        and first.type in (ActionType.ROTATE_MEMBER, ActionType.REMOVE_MEMBER)
    )


class Deployment:
    """
    Control loop of one deployment.

    Each pass observes the live objects, records what it saw in the status,
    plans and then executes the plan. The cluster scaling integration of the
    deployment runs next to the loop as its own task.
    """

    def __init__(
        self,
        name: str,
        store: StatusStore,
        pods: PodInterface,
        inspector: ClusterInspector,
        *,
        namespace: str = "default",
        features: Optional[FeatureGates] = None,
        events: Optional[EventRecorder] = None,
        scaling: Optional[ClusterScalingIntegration] = None,
        arangod: Optional[ArangodClient] = None,
        min_interval: float = 1.0,
        max_interval: float = 60.0,
        plan_builder: Optional[PlanBuilder] = None,
        executor: Optional[PlanExecutor] = None,
    ):
        self.name = name
        self.namespace = namespace
        self.store = store
        self.pods = pods
        self.inspector = inspector
        self.features = features or FeatureGates()
        self.events = events
        self.scaling = scaling
        self.arangod = arangod
        self.min_interval = min_interval
        self.max_interval = max_interval
        self.plan_builder = plan_builder or PlanBuilder()
        self.executor = executor or PlanExecutor()

    async def reconcile_once(self) -> bool:
        """
        Run one full pass.

        Returns:
            True if anything changed, so the next pass should come soon

        Raises:
            NotFoundError: If the deployment no longer exists
        """
        record = await self.store.read(self.name)
        snapshot = await self.inspector.refresh(self.name)

        changed = await self._inspect_pods(snapshot)
        changed = await self._release_deleted_pods(record, snapshot) or changed
        changed = await self._update_desired_templates() or changed
        if await self._ensure_pods(snapshot):
            changed = True
            snapshot = await self.inspector.refresh(self.name)

        record = await self.store.read(self.name)
        ctx = PlanBuilderContext(
            deployment=self.name,
            spec=record.spec,
            status=record.status,
            snapshot=snapshot,
            features=self.features,
            namespace=self.namespace,
        )
        plan = self.plan_builder.create_plan(ctx)
        if record.status.plan.is_empty() and not plan.is_empty():
            if await self.store.update(self.name, lambda r: _store_plan(r, plan)):
                changed = True
                record = await self.store.read(self.name)

        action_ctx = ActionContext(
            self.name,
            self.store,
            self.pods,
            self.inspector,
            record,
            snapshot,
            features=self.features,
            events=self.events,
            scaling=self.scaling,
            namespace=self.namespace,
        )
        changed = await self.executor.execute_plan(action_ctx) or changed
        changed = await self.store.update(self.name, _update_phase) or changed
        changed = await self._forward_spec_changes() or changed
        return changed

    async def _inspect_pods(self, snapshot: ClusterSnapshot) -> bool:
        """Record what the snapshot says about each member's pod."""

        def inspect(record: DeploymentRecord) -> bool:
            changed = False
            busy = members_in_flight(record.status.plan)
            for member, _ in record.status.members.all_members():
                pod = snapshot.pod(member.pod_name)
                if pod is None:
                    changed |= member.conditions.remove(ConditionType.TERMINATING)
                    changed |= member.conditions.remove(ConditionType.TERMINATED)
                    if member.phase == MemberPhase.CREATED and member.id not in busy:
                        logger.info(f"Pod of member {member.id} is gone, recreating")
                        member.phase = MemberPhase.PENDING
                        member.pod_uid = ""
                        member.pod_spec_version = ""
                        changed = True
                    continue

                if not member.pod_uid:
                    member.pod_uid = pod.uid
                    changed = True
                if member.pod_uid == pod.uid:
                    if pod.checksum and member.pod_spec_version != pod.checksum:
                        member.pod_spec_version = pod.checksum
                        changed = True
                    if member.phase in (MemberPhase.NONE, MemberPhase.PENDING):
                        member.phase = MemberPhase.CREATED
                        changed = True

                if pod.is_deleted:
                    changed |= member.conditions.update(
                        ConditionType.TERMINATING, True, "Pod marked for deletion"
                    )
                else:
                    changed |= member.conditions.remove(ConditionType.TERMINATING)
                if pod.is_terminated:
                    changed |= member.conditions.update(
                        ConditionType.TERMINATED, True, f"Pod {pod.phase}"
                    )
                else:
                    changed |= member.conditions.remove(ConditionType.TERMINATED)
            return changed

        return await self.store.update(self.name, inspect)

    async def _release_deleted_pods(self, record: DeploymentRecord, snapshot: ClusterSnapshot) -> bool:
        """Drop the graceful-shutdown finalizer once a deleted pod may go."""
        released = False
        for pod in snapshot.pods.values():
            if not pod.is_deleted or not pod.needs_graceful_recreate:
                continue
            if not _pod_released(record, pod.labels.get(LABEL_MEMBER_ID, "")):
                continue
            await remove_pod_finalizers(self.pods, pod.name, [FINALIZER_POD_GRACEFUL_SHUTDOWN])
            logger.info(f"Removed {FINALIZER_POD_GRACEFUL_SHUTDOWN} from pod {pod.name}")
            released = True
        return released

    async def _update_desired_templates(self) -> bool:
        def refresh(record: DeploymentRecord) -> bool:
            changed = False
            in_use = record.spec.groups_in_use()
            for member, group in record.status.members.all_members():
                if group not in in_use:
                    continue
                template = render_member_template(
                    self.name, self.namespace, record.spec, group, member.id
                )
                if not template.equals(member.desired_template):
                    member.desired_template = template
                    changed = True
            return changed

        return await self.store.update(self.name, refresh)

    async def _ensure_pods(self, snapshot: ClusterSnapshot) -> bool:
        """Create pods for pending members that have none."""
        record = await self.store.read(self.name)
        spec = record.spec
        busy = members_in_flight(record.status.plan)
        in_use = spec.groups_in_use()
        graceful = self.features.graceful_shutdown and spec.features.graceful_shutdown

        created = False
        for member, group in record.status.members.all_members():
            if member.phase not in (MemberPhase.NONE, MemberPhase.PENDING):
                continue
            if member.id in busy or group not in in_use or not member.pod_name:
                continue
            if snapshot.pod(member.pod_name) is not None:
                continue

            role = role_for_group(group)
            try:
                role.validate(self.name, spec, snapshot)
            except RoleValidationError as e:
                logger.warning(f"Cannot create pod for member {member.id}: {e}")
                await self._record_event("PodCreationBlocked", str(e), EVENT_WARNING)
                continue

            template = member.desired_template or render_member_template(
                self.name, self.namespace, spec, group, member.id
            )
            annotations = {**role.annotations(), ANNOTATION_POD_CHECKSUM: template.checksum}
            finalizers = [FINALIZER_POD_GRACEFUL_SHUTDOWN] if graceful else []
            try:
                pod = await self.pods.create(
                    member.pod_name,
                    template.pod_spec,
                    role.labels(self.name, member.id),
                    annotations,
                    finalizers,
                )
            except ConflictError:
                logger.debug(f"Pod {member.pod_name} already exists")
                continue

            def mark_created(status_member: MemberStatus) -> bool:
                status_member.phase = MemberPhase.CREATED
                status_member.pod_uid = pod.uid
                status_member.pod_spec_version = template.checksum
                status_member.applied_template = template
                return True

            await self.store.update(
                self.name, lambda r: _update_member(r, member.id, mark_created)
            )
            await self._record_event("PodCreated", f"Created pod {pod.name} for member {member.id}")
            created = True
        return created

    async def _forward_spec_changes(self) -> bool:
        """Hand a changed spec to the scaling integration exactly once."""
        record = await self.store.read(self.name)
        checksum = record.spec.checksum()
        if record.status.accepted_spec_checksum == checksum:
            return False

        if self.scaling is not None:
            await self.scaling.send_update_to_cluster(record.spec)

        def accept(r: DeploymentRecord) -> bool:
            if r.status.accepted_spec_checksum == checksum:
                return False
            r.status.accepted_spec_checksum = checksum
            return True

        return await self.store.update(self.name, accept)

    async def _record_event(self, reason: str, message: str, event_type: str = EVENT_NORMAL) -> None:
        if self.events is not None:
            await self.events.record(self.name, event_type, reason, message)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Reconcile until stop_event is set or the deployment is deleted."""
        logger.info(f"Starting control loop of {self.name}")
        scaling_stop = asyncio.Event()
        scaling_task = None
        if self.scaling is not None:
            scaling_task = asyncio.create_task(self.scaling.listen_for_cluster_events(scaling_stop))

        interval = Interval(self.min_interval)
        try:
            while not stop_event.is_set():
                try:
                    changed = await self.reconcile_once()
                except NotFoundError:
                    logger.info(f"Deployment {self.name} is gone, stopping")
                    return
                except Exception as e:
                    logger.error(f"Reconciliation of {self.name} failed: {e}")
                    changed = False

                if changed:
                    interval = interval.reduce_to(self.min_interval)
                else:
                    interval = interval.backoff(BACKOFF_FACTOR, self.max_interval)

                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval.seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            scaling_stop.set()
            if scaling_task is not None:
                await scaling_task
            if self.arangod is not None:
                await self.arangod.aclose()
            logger.info(f"Stopped control loop of {self.name}")


def _store_plan(record: DeploymentRecord, plan: Plan) -> bool:
    # Another writer may have planned in the meantime
    if not record.status.plan.is_empty():
        return False
    record.status.plan = plan
    return True


def _update_member(record: DeploymentRecord, member_id: str, mutator) -> bool:
    found = record.status.members.element_by_id(member_id)
    if found is None:
        return False
    return mutator(found[0])


def _update_phase(record: DeploymentRecord) -> bool:
    """Mark the deployment running once every member of every group is up."""
    if record.status.phase == DeploymentPhase.RUNNING:
        return False
    spec = record.spec
    for group in spec.groups_in_use():
        members = record.status.members.members_of_group(group)
        if len(members) < spec.get_group_count(group):
            return False
        if any(member.phase != MemberPhase.CREATED for member in members):
            return False
    record.status.phase = DeploymentPhase.RUNNING
    return True
