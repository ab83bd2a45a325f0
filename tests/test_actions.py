"""Tests for individual plan actions."""

from unittest.mock import AsyncMock

import pytest

from kubarango.modules.api.models import (
    Action,
    ActionType,
    ConditionType,
    DeploymentMode,
    DeploymentRecord,
    DeploymentSpec,
    MemberPhase,
    ServerGroup,
)
from kubarango.modules.features import FeatureGates
from kubarango.modules.k8s.constants import (
    ANNOTATION_POD_CHECKSUM,
    FINALIZER_DELAY_POD_TERMINATION,
    FINALIZER_POD_GRACEFUL_SHUTDOWN,
)
from kubarango.modules.k8s.inspector import Secret
from kubarango.modules.pod import encryption_secret_name
from kubarango.modules.reconcile import create_action

from conftest import FakeInspector, make_context, make_member, make_template, pod_for


def record_with(*members, group=ServerGroup.SINGLE, spec=None):
    record = DeploymentRecord(name="db", spec=spec or DeploymentSpec(mode=DeploymentMode.SINGLE))
    for member in members:
        record.status.members.add(member, group)
    return record


def member_in(store, member_id):
    found = store.get("db").status.members.element_by_id(member_id)
    return found[0] if found else None


class TestAddMember:
    @pytest.mark.asyncio
    async def test_adds_pending_member(self, store, pods, inspector):
        events = AsyncMock()
        ctx = await make_context(store, pods, inspector, record_with(), events=events)
        action = Action.new(ActionType.ADD_MEMBER, ServerGroup.SINGLE, "SNGL-ABC")

        assert await create_action(action, ctx).start()

        member = member_in(store, "SNGL-ABC")
        assert member.phase == MemberPhase.PENDING
        assert member.pod_name == "db-single-sngl-abc"
        assert member.persistent_volume_claim_name == "db-single-sngl-abc"
        assert events.record.await_args.args[2] == "MemberAdded"

    @pytest.mark.asyncio
    async def test_coordinators_have_no_volume(self, store, pods, inspector):
        ctx = await make_context(store, pods, inspector, record_with(spec=DeploymentSpec()))
        action = Action.new(ActionType.ADD_MEMBER, ServerGroup.COORDINATORS, "CRDN-1")

        await create_action(action, ctx).start()

        assert member_in(store, "CRDN-1").persistent_volume_claim_name == ""

    @pytest.mark.asyncio
    async def test_short_and_random_pod_names(self, store, pods, inspector):
        features = FeatureGates(enabled=["short-pod-names", "random-pod-names"])
        ctx = await make_context(store, pods, inspector, record_with(), features=features)
        action = Action.new(ActionType.ADD_MEMBER, ServerGroup.SINGLE, "SNGL-ABC")

        await create_action(action, ctx).start()

        member = member_in(store, "SNGL-ABC")
        assert member.pod_name.startswith("db-sngl-sngl-abc-")
        assert len(member.pod_name) == len("db-sngl-sngl-abc-") + 5
        assert member.persistent_volume_claim_name == "db-sngl-sngl-abc"

    @pytest.mark.asyncio
    async def test_existing_member_is_left_alone(self, store, pods, inspector):
        ctx = await make_context(store, pods, inspector, record_with(make_member("SNGL-1")))
        action = Action.new(ActionType.ADD_MEMBER, ServerGroup.SINGLE, "SNGL-1")

        assert await create_action(action, ctx).start()
        assert store.writes == 0


class TestRemoveMember:
    @pytest.mark.asyncio
    async def test_deletes_pod_then_member(self, store, pods, inspector):
        member = make_member("AGNT-1")
        pods.add(pod_for(member))
        ctx = await make_context(store, pods, inspector, record_with(member, group=ServerGroup.AGENTS))
        impl = create_action(Action.new(ActionType.REMOVE_MEMBER, ServerGroup.AGENTS, "AGNT-1"), ctx)

        assert not await impl.start()
        assert pods.deleted == ["pod-agnt-1"]

        assert await impl.check_progress() == (True, False)
        assert member_in(store, "AGNT-1") is None

    @pytest.mark.asyncio
    async def test_waits_for_terminating_pod(self, store, pods, inspector):
        member = make_member("AGNT-1")
        pods.add(pod_for(member, finalizers=[FINALIZER_DELAY_POD_TERMINATION]))
        ctx = await make_context(store, pods, inspector, record_with(member, group=ServerGroup.AGENTS))
        impl = create_action(Action.new(ActionType.REMOVE_MEMBER, ServerGroup.AGENTS, "AGNT-1"), ctx)

        await impl.start()

        assert await impl.check_progress() == (False, False)
        assert member_in(store, "AGNT-1") is not None


class TestKillMemberPod:
    @pytest.mark.asyncio
    async def test_waits_while_delay_finalizer_holds_pod(self, store, pods, inspector):
        member = make_member("SNGL-1")
        pods.add(
            pod_for(
                member,
                finalizers=[FINALIZER_POD_GRACEFUL_SHUTDOWN, FINALIZER_DELAY_POD_TERMINATION],
            )
        )
        ctx = await make_context(store, pods, inspector, record_with(member))
        impl = create_action(Action.new(ActionType.KILL_MEMBER_POD, ServerGroup.SINGLE, "SNGL-1"), ctx)

        assert not await impl.start()
        assert pods.pods["pod-sngl-1"].is_deleted
        assert await impl.check_progress() == (False, False)

        pods.pods["pod-sngl-1"].finalizers = [FINALIZER_POD_GRACEFUL_SHUTDOWN]
        assert await impl.check_progress() == (True, False)

    @pytest.mark.asyncio
    async def test_noop_without_graceful_shutdown(self, store, pods, inspector):
        member = make_member("SNGL-1")
        pods.add(pod_for(member))
        ctx = await make_context(
            store, pods, inspector, record_with(member),
            features=FeatureGates(disabled=["graceful-shutdown"]),
        )
        impl = create_action(Action.new(ActionType.KILL_MEMBER_POD, ServerGroup.SINGLE, "SNGL-1"), ctx)

        assert await impl.start()
        assert pods.deleted == []


class TestRotateMember:
    @pytest.mark.asyncio
    async def test_recreation_resets_member(self, store, pods, inspector):
        member = make_member("SNGL-1")
        member.conditions.update(ConditionType.PENDING_RESTART, True)
        pods.add(pod_for(member))
        ctx = await make_context(store, pods, inspector, record_with(member))
        impl = create_action(Action.new(ActionType.ROTATE_MEMBER, ServerGroup.SINGLE, "SNGL-1"), ctx)

        assert not await impl.start()
        assert "pod-sngl-1" not in pods.pods

        assert await impl.check_progress() == (True, False)
        stored = member_in(store, "SNGL-1")
        assert stored.phase == MemberPhase.PENDING
        assert stored.pod_uid == ""
        assert stored.pod_spec_version == ""
        assert not stored.conditions.is_true(ConditionType.PENDING_RESTART)

    @pytest.mark.asyncio
    async def test_missing_pod_completes_immediately(self, store, pods, inspector):
        ctx = await make_context(store, pods, inspector, record_with(make_member("SNGL-1")))
        impl = create_action(Action.new(ActionType.ROTATE_MEMBER, ServerGroup.SINGLE, "SNGL-1"), ctx)

        assert await impl.start()
        assert member_in(store, "SNGL-1").phase == MemberPhase.PENDING


class TestWaitForMemberUp:
    @pytest.mark.asyncio
    async def test_ready_pod_of_created_member(self, store, pods, inspector):
        member = make_member("SNGL-1")
        pods.add(pod_for(member, ready=False))
        ctx = await make_context(store, pods, inspector, record_with(member))
        impl = create_action(Action.new(ActionType.WAIT_FOR_MEMBER_UP, ServerGroup.SINGLE, "SNGL-1"), ctx)

        assert not await impl.start()
        assert await impl.check_progress() == (False, False)

        pods.pods["pod-sngl-1"].ready = True
        await ctx.refresh_cached_status()
        assert await impl.check_progress() == (True, False)


class TestUpdatePodStatus:
    def action(self, checksum, silent=False):
        action = Action.new(ActionType.UPDATE_POD_STATUS, ServerGroup.SINGLE, "SNGL-1")
        action = action.set_param("checksum", checksum)
        if silent:
            action = action.set_param("silent", "true")
        return action

    @pytest.mark.asyncio
    async def test_commits_when_pod_carries_checksum(self, store, pods, inspector):
        desired = make_template(image="arangodb/arangodb:3.12")
        member = make_member("SNGL-1", template=desired, applied=make_template(), pod_spec_version="")
        pods.add(pod_for(member))
        ctx = await make_context(store, pods, inspector, record_with(member))

        assert await create_action(self.action(desired.checksum), ctx).start()

        stored = member_in(store, "SNGL-1")
        assert stored.applied_template.checksum == desired.checksum
        assert stored.pod_spec_version == desired.checksum

    @pytest.mark.asyncio
    async def test_stale_checksum_finishes_without_write(self, store, pods, inspector):
        member = make_member("SNGL-1", template=make_template(image="x"), applied=make_template())
        pods.add(pod_for(member))
        ctx = await make_context(store, pods, inspector, record_with(member))

        assert await create_action(self.action("outdated"), ctx).start()
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_waits_for_pod_checksum(self, store, pods, inspector):
        desired = make_template(image="x")
        member = make_member("SNGL-1", template=desired, applied=make_template())
        pod = pod_for(member)
        pod.annotations.clear()
        pods.add(pod)
        ctx = await make_context(store, pods, inspector, record_with(member))
        impl = create_action(self.action(desired.checksum), ctx)

        assert not await impl.start()
        assert await impl.check_progress() == (False, False)

    @pytest.mark.asyncio
    async def test_silent_commit_keeps_pod_spec_version(self, store, pods, inspector):
        desired = make_template(scheduler_name="custom")
        applied = make_template()
        member = make_member("SNGL-1", template=desired, applied=applied, pod_spec_version=applied.checksum)
        pod = pod_for(member)
        pod.annotations[ANNOTATION_POD_CHECKSUM] = applied.checksum
        pods.add(pod)
        ctx = await make_context(store, pods, inspector, record_with(member))

        assert await create_action(self.action(desired.checksum, silent=True), ctx).start()

        stored = member_in(store, "SNGL-1")
        assert stored.applied_template.checksum == desired.checksum
        assert stored.pod_spec_version == applied.checksum


class TestUpdatePodInPlace:
    @pytest.mark.asyncio
    async def test_patches_tolerations_and_checksum(self, store, pods, inspector):
        tolerations = [{"key": "dedicated", "operator": "Exists"}]
        desired = make_template(tolerations=tolerations)
        member = make_member("SNGL-1", template=desired, applied=make_template())
        pod = pod_for(member)
        pod.annotations.clear()
        pods.add(pod)
        ctx = await make_context(store, pods, inspector, record_with(member))
        action = Action.new(ActionType.UPDATE_POD_IN_PLACE, ServerGroup.SINGLE, "SNGL-1")
        impl = create_action(action.set_param("checksum", desired.checksum), ctx)

        assert not await impl.start()
        assert pods.patches == [
            {
                "name": "pod-sngl-1",
                "annotations": {ANNOTATION_POD_CHECKSUM: desired.checksum},
                "tolerations": tolerations,
            }
        ]
        assert await impl.check_progress() == (True, False)

    @pytest.mark.asyncio
    async def test_vanished_pod_aborts(self, store, pods, inspector):
        member = make_member("SNGL-1", template=make_template(tolerations=[{"key": "a"}]))
        pods.add(pod_for(member))
        ctx = await make_context(store, pods, inspector, record_with(member))
        impl = create_action(Action.new(ActionType.UPDATE_POD_IN_PLACE, ServerGroup.SINGLE, "SNGL-1"), ctx)
        pods.pods.clear()

        assert await impl.check_progress() == (False, True)


class TestEncryptionKeyStatusUpdate:
    @pytest.mark.asyncio
    async def test_records_sorted_key_hashes(self, store, pods):
        name = encryption_secret_name("db")
        inspector = FakeInspector(pods, {name: Secret(name=name, data={"b": "1", "a": "2"})})
        ctx = await make_context(store, pods, inspector, record_with())

        assert await create_action(Action.new(ActionType.ENCRYPTION_KEY_STATUS_UPDATE), ctx).start()

        assert store.get("db").status.hashes.encryption_keys == ["sha256:a", "sha256:b"]

    @pytest.mark.asyncio
    async def test_empty_secret_clears_hashes(self, store, pods):
        name = encryption_secret_name("db")
        inspector = FakeInspector(pods, {name: Secret(name=name)})
        record = record_with()
        record.status.hashes.encryption_keys = ["sha256:a"]
        ctx = await make_context(store, pods, inspector, record)

        await create_action(Action.new(ActionType.ENCRYPTION_KEY_STATUS_UPDATE), ctx).start()

        assert store.get("db").status.hashes.encryption_keys is None


class TestClusterScalingSwitches:
    @pytest.mark.asyncio
    async def test_disable_and_enable(self, store, pods, inspector):
        scaling = AsyncMock()
        ctx = await make_context(store, pods, inspector, record_with(), scaling=scaling)

        assert await create_action(Action.new(ActionType.DISABLE_CLUSTER_SCALING), ctx).start()
        assert await create_action(Action.new(ActionType.ENABLE_CLUSTER_SCALING), ctx).start()

        scaling.disable_scaling_cluster.assert_awaited_once()
        scaling.enable_scaling_cluster.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_without_integration_is_noop(self, store, pods, inspector):
        ctx = await make_context(store, pods, inspector, record_with())
        assert await create_action(Action.new(ActionType.DISABLE_CLUSTER_SCALING), ctx).start()
