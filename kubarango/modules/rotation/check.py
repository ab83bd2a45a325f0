import logging
from dataclasses import dataclass, field
from typing import Optional

from kubarango.modules.api.models import (
    ConditionType,
    DeploymentSpec,
    MemberPodTemplate,
    MemberPropagationMode,
    MemberStatus,
    Plan,
    ServerGroup,
)
from kubarango.modules.k8s.inspector import ClusterSnapshot, Pod

from .compare import compare
from .mode import RotationMode

logger = logging.getLogger("kubarango.rotation")


@dataclass
class RotationDecision:
    mode: RotationMode = RotationMode.SKIPPED
    reason: str = ""
    plan: Plan = field(default_factory=Plan)
    error: Optional[Exception] = None


def check_possible(member: MemberStatus) -> bool:
    """Rotation is only inspected for members not already terminated."""
    return not member.conditions.is_true(ConditionType.TERMINATED)


def is_rotation_required(
    member: MemberStatus,
    spec: DeploymentSpec,
    group: ServerGroup,
    pod: Optional[Pod],
    snapshot: ClusterSnapshot,
    spec_template: Optional[MemberPodTemplate],
    status_template: Optional[MemberPodTemplate],
) -> RotationDecision:
    """
    Decide how a member's pod must be changed to match its desired template.

    Rules are evaluated in a fixed order and the first one that matches
    decides; only the final comparison accumulates several results.
    """
    if pod is not None:
        if member.conditions.is_true(ConditionType.TERMINATING) or pod.is_deleted:
            if pod.needs_graceful_recreate:
                return RotationDecision(RotationMode.ENFORCED, "Recreation enforced by deleted state")
            return RotationDecision()

    if not check_possible(member):
        return RotationDecision()

    if (
        spec.member_propagation_mode == MemberPropagationMode.ALWAYS
        and member.conditions.is_true(ConditionType.PENDING_RESTART)
    ):
        return RotationDecision(RotationMode.ENFORCED, "Restart is pending")

    if pod is not None:
        if member.pod_uid != pod.uid:
            return RotationDecision(
                RotationMode.ENFORCED,
                "Pod UID does not match, this pod is not managed by Operator. Recreating",
            )
        if pod.has_rotate_annotation:
            return RotationDecision(RotationMode.ENFORCED, "Recreation enforced by annotation")

    if not member.pod_spec_version:
        return RotationDecision(RotationMode.ENFORCED, "Pod Spec Version is nil - recreating pod")

    if spec_template is None or status_template is None:
        return RotationDecision()

    if member.conditions.is_true(ConditionType.PENDING_TLS_ROTATION):
        return RotationDecision(RotationMode.ENFORCED, "TLS Rotation pending")

    pvc = snapshot.persistent_volume_claim(member.persistent_volume_claim_name)
    if pvc is not None and pvc.file_system_resize_pending:
        return RotationDecision(RotationMode.ENFORCED, "PVC Resize pending")

    try:
        mode, plan = compare(spec, member, group, spec_template, status_template)
    except Exception as e:
        logger.warning(f"Unable to compare templates of member {member.id}: {e}")
        return RotationDecision(error=e)

    return RotationDecision(mode, "Pod needs rotation", plan)
