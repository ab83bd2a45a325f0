"""Tests for rotation decisions and template comparison."""

from datetime import UTC, datetime

from kubarango.modules.api.models import (
    ActionType,
    ConditionType,
    DeploymentSpec,
    MemberPropagationMode,
    ServerGroup,
)
from kubarango.modules.k8s.constants import (
    ANNOTATION_ROTATE,
    FINALIZER_DELAY_POD_TERMINATION,
    FINALIZER_POD_GRACEFUL_SHUTDOWN,
)
from kubarango.modules.k8s.inspector import PersistentVolumeClaim
from kubarango.modules.rotation import RotationMode, compare, is_rotation_required

from conftest import make_member, make_template, pod_for, snapshot_of


def decide(member, pod=None, spec=None, snapshot=None, desired=None, applied=None):
    return is_rotation_required(
        member,
        spec or DeploymentSpec(),
        ServerGroup.DBSERVERS,
        pod,
        snapshot or snapshot_of(*([pod] if pod else [])),
        desired if desired is not None else member.desired_template,
        applied if applied is not None else member.applied_template,
    )


class TestRotationMode:
    def test_combine_keeps_most_disruptive(self):
        assert RotationMode.SILENT.combine(RotationMode.GRACEFUL) == RotationMode.GRACEFUL
        assert RotationMode.ENFORCED.combine(RotationMode.SKIPPED) == RotationMode.ENFORCED
        assert RotationMode.SKIPPED.combine(RotationMode.SKIPPED) == RotationMode.SKIPPED


class TestCompare:
    def compare(self, desired, applied):
        member = make_member("PRMR-1", template=desired, applied=applied)
        return compare(DeploymentSpec(), member, ServerGroup.DBSERVERS, desired, applied)

    def test_identical_templates_are_skipped(self):
        mode, plan = self.compare(make_template(), make_template())
        assert mode == RotationMode.SKIPPED
        assert plan.is_empty()

    def test_scheduler_change_is_silent(self):
        mode, plan = self.compare(make_template(scheduler_name="custom"), make_template())
        assert mode == RotationMode.SILENT
        assert plan.is_empty()

    def test_node_selector_and_priority_are_silent(self):
        desired = make_template(node_selector={"zone": "a"}, priority_class_name="high")
        mode, _ = self.compare(desired, make_template())
        assert mode == RotationMode.SILENT

    def test_toleration_change_is_in_place(self):
        desired = make_template(tolerations=[{"key": "dedicated", "operator": "Exists"}])
        mode, plan = self.compare(desired, make_template())

        assert mode == RotationMode.IN_PLACE
        assert len(plan) == 1
        action = plan.first()
        assert action.type == ActionType.UPDATE_POD_IN_PLACE
        assert action.member_id == "PRMR-1"
        assert action.get_param("checksum") == desired.checksum

    def test_image_change_requires_recreation(self):
        mode, _ = self.compare(make_template(image="arangodb/arangodb:3.12"), make_template())
        assert mode == RotationMode.GRACEFUL

    def test_mixed_change_keeps_in_place_actions(self):
        desired = make_template(image="arangodb/arangodb:3.12", tolerations=[{"key": "a"}])
        mode, plan = self.compare(desired, make_template())

        assert mode == RotationMode.GRACEFUL
        assert [a.type for a in plan] == [ActionType.UPDATE_POD_IN_PLACE]

    def test_applied_template_is_not_modified(self):
        applied = make_template()
        self.compare(make_template(scheduler_name="custom"), applied)
        assert applied.pod_spec.scheduler_name == ""


class TestIsRotationRequired:
    def test_matching_member_is_skipped(self):
        member = make_member("PRMR-1")
        decision = decide(member, pod_for(member))
        assert decision.mode == RotationMode.SKIPPED
        assert decision.error is None

    def test_deleted_pod_held_by_graceful_finalizer_is_enforced(self):
        member = make_member("PRMR-1")
        pod = pod_for(
            member,
            finalizers=[FINALIZER_POD_GRACEFUL_SHUTDOWN],
            deletion_timestamp=datetime.now(UTC),
        )
        decision = decide(member, pod)
        assert decision.mode == RotationMode.ENFORCED
        assert "deleted" in decision.reason

    def test_deleted_pod_with_delay_finalizer_is_left_alone(self):
        member = make_member("PRMR-1")
        pod = pod_for(
            member,
            finalizers=[FINALIZER_POD_GRACEFUL_SHUTDOWN, FINALIZER_DELAY_POD_TERMINATION],
            deletion_timestamp=datetime.now(UTC),
        )
        assert decide(member, pod).mode == RotationMode.SKIPPED

    def test_terminating_member_wins_over_uid_mismatch(self):
        member = make_member("PRMR-1")
        member.conditions.update(ConditionType.TERMINATING, True)
        pod = pod_for(member, uid="someone-else")
        assert decide(member, pod).mode == RotationMode.SKIPPED

    def test_terminated_member_is_skipped(self):
        member = make_member("PRMR-1", pod_spec_version="")
        member.conditions.update(ConditionType.TERMINATED, True)
        assert decide(member).mode == RotationMode.SKIPPED

    def test_pending_restart_with_always_propagation(self):
        member = make_member("PRMR-1")
        member.conditions.update(ConditionType.PENDING_RESTART, True)
        decision = decide(member, pod_for(member))
        assert decision.mode == RotationMode.ENFORCED
        assert decision.reason == "Restart is pending"

    def test_pending_restart_waits_for_restart_propagation(self):
        member = make_member("PRMR-1")
        member.conditions.update(ConditionType.PENDING_RESTART, True)
        spec = DeploymentSpec(member_propagation_mode=MemberPropagationMode.ON_RESTART)
        assert decide(member, pod_for(member), spec=spec).mode == RotationMode.SKIPPED

    def test_foreign_pod_uid_is_enforced(self):
        member = make_member("PRMR-1")
        decision = decide(member, pod_for(member, uid="other"))
        assert decision.mode == RotationMode.ENFORCED
        assert "not managed by Operator" in decision.reason

    def test_rotate_annotation_is_enforced(self):
        member = make_member("PRMR-1")
        pod = pod_for(member, annotations={ANNOTATION_ROTATE: "true"})
        decision = decide(member, pod)
        assert decision.reason == "Recreation enforced by annotation"

    def test_missing_pod_spec_version_is_enforced(self):
        member = make_member("PRMR-1", pod_spec_version="")
        decision = decide(member)
        assert decision.mode == RotationMode.ENFORCED
        assert "nil" in decision.reason

    def test_missing_templates_are_skipped(self):
        member = make_member("PRMR-1")
        member.applied_template = None
        decision = is_rotation_required(
            member, DeploymentSpec(), ServerGroup.DBSERVERS, None, snapshot_of(),
            member.desired_template, None,
        )
        assert decision.mode == RotationMode.SKIPPED

    def test_pending_tls_rotation_is_enforced(self):
        member = make_member("PRMR-1")
        member.conditions.update(ConditionType.PENDING_TLS_ROTATION, True)
        assert decide(member).reason == "TLS Rotation pending"

    def test_pending_volume_resize_is_enforced(self):
        member = make_member("PRMR-1", persistent_volume_claim_name="data-prmr-1")
        snapshot = snapshot_of()
        snapshot.persistent_volume_claims["data-prmr-1"] = PersistentVolumeClaim(
            name="data-prmr-1", file_system_resize_pending=True
        )
        decision = decide(member, snapshot=snapshot)
        assert decision.reason == "PVC Resize pending"

    def test_template_difference_goes_through_comparison(self):
        member = make_member(
            "PRMR-1",
            template=make_template(tolerations=[{"key": "a"}]),
            applied=make_template(),
        )
        decision = decide(member)
        assert decision.mode == RotationMode.IN_PLACE
        assert decision.reason == "Pod needs rotation"
        assert len(decision.plan) == 1

    def test_comparison_error_is_reported_without_plan(self, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr("kubarango.modules.rotation.check.compare", broken)
        member = make_member("PRMR-1", template=make_template(image="x"), applied=make_template())

        decision = decide(member)

        assert decision.mode == RotationMode.SKIPPED
        assert decision.plan.is_empty()
        assert isinstance(decision.error, RuntimeError)
