"""Plan-producing steps, each a function of a PlanBuilderContext."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from kubarango.modules.api.models import (
    Action,
    ActionType,
    DeploymentSpec,
    DeploymentStatus,
    MemberPhase,
    MemberStatus,
    Plan,
    ServerGroup,
)
from kubarango.modules.features import FeatureGates
from kubarango.modules.k8s.inspector import ClusterSnapshot
from kubarango.modules.k8s.names import create_member_id
from kubarango.modules.pod import encryption_secret_name
from kubarango.modules.rotation import RotationDecision, RotationMode, is_rotation_required

logger = logging.getLogger("kubarango.plan")

PARAM_CHECKSUM = "checksum"
PARAM_SILENT = "silent"


@dataclass
class PlanBuilderContext:
    """Everything a step may look at. Steps never write through it."""

    deployment: str
    spec: DeploymentSpec
    status: DeploymentStatus
    snapshot: ClusterSnapshot
    features: FeatureGates = field(default_factory=FeatureGates)
    namespace: str = "default"


def _member_action(
    action_type: ActionType, group: ServerGroup, member: MemberStatus, reason: str
) -> Action:
    return Action.new(action_type, group, member.id, reason)


def rotation_plan_for_member(
    member: MemberStatus, group: ServerGroup, decision: RotationDecision
) -> Plan:
    """Turn a rotation decision into the actions that carry it out."""
    checksum = member.desired_template.checksum if member.desired_template else ""

    def update_status(silent: bool = False) -> Action:
        action = _member_action(ActionType.UPDATE_POD_STATUS, group, member, decision.reason)
        action = action.set_param(PARAM_CHECKSUM, checksum)
        if silent:
            action = action.set_param(PARAM_SILENT, "true")
        return action

    def recreate() -> List[Action]:
        return [
            _member_action(ActionType.ROTATE_MEMBER, group, member, decision.reason),
            _member_action(ActionType.WAIT_FOR_MEMBER_UP, group, member, decision.reason),
            update_status(),
        ]

    if decision.mode == RotationMode.ENFORCED:
        return Plan(recreate())
    if decision.mode == RotationMode.GRACEFUL:
        return Plan([_member_action(ActionType.KILL_MEMBER_POD, group, member, decision.reason)] + recreate())
    if decision.mode == RotationMode.IN_PLACE:
        in_place = decision.plan
        if in_place.is_empty():
            in_place = Plan([
                _member_action(ActionType.UPDATE_POD_IN_PLACE, group, member, decision.reason)
                .set_param(PARAM_CHECKSUM, checksum)
            ])
        return in_place.concat(Plan([update_status()]))
    if decision.mode == RotationMode.SILENT:
        return decision.plan.concat(Plan([update_status(silent=True)]))
    return Plan()


def create_rotation_plan(ctx: PlanBuilderContext) -> Plan:
    """Rotate the single member that needs the most disruptive change."""
    selected: Optional[Tuple[MemberStatus, ServerGroup, RotationDecision]] = None
    for member, group in ctx.status.members.all_members():
        if member.phase != MemberPhase.CREATED:
            continue
        pod = ctx.snapshot.pod(member.pod_name)
        if pod is None:
            continue

        decision = is_rotation_required(
            member,
            ctx.spec,
            group,
            pod,
            ctx.snapshot,
            member.desired_template,
            member.applied_template,
        )
        if decision.error is not None:
            logger.warning(f"Skipping rotation check of {member.id}: {decision.error}")
            continue
        if decision.mode == RotationMode.SKIPPED:
            continue
        if selected is None or decision.mode > selected[2].mode:
            selected = (member, group, decision)

    if selected is None:
        return Plan()

    member, group, decision = selected
    logger.info(
        f"Rotating member {member.id} of {ctx.deployment} ({decision.mode.name}): {decision.reason}"
    )
    return rotation_plan_for_member(member, group, decision)


def _removal_candidates(members: List[MemberStatus], excess: int) -> List[MemberStatus]:
    # Failed members go first, then the most recently created
    ordered = sorted(
        members,
        key=lambda m: (m.phase != MemberPhase.FAILED, -m.created_at.timestamp()),
    )
    return ordered[:excess]


def create_scale_plan(ctx: PlanBuilderContext) -> Plan:
    """Add or remove members until every group matches its declared count."""
    in_use = set(ctx.spec.groups_in_use())
    actions: List[Action] = []
    for group, members in ctx.status.members.foreach_server_group():
        desired = ctx.spec.get_group_count(group) if group in in_use else 0
        current = len(members)
        if current < desired:
            for _ in range(desired - current):
                actions.append(
                    Action.new(
                        ActionType.ADD_MEMBER,
                        group,
                        create_member_id(group),
                        f"Scaling {group.value} up to {desired}",
                    )
                )
        elif current > desired:
            for member in _removal_candidates(members, current - desired):
                actions.append(
                    Action.new(
                        ActionType.REMOVE_MEMBER,
                        group,
                        member.id,
                        f"Scaling {group.value} down to {desired}",
                    )
                )

    if not actions:
        return Plan()

    return Plan(
        [Action.new(ActionType.DISABLE_CLUSTER_SCALING, reason="Scaling members")]
        + actions
        + [Action.new(ActionType.ENABLE_CLUSTER_SCALING, reason="Scaling members done")]
    )


def encryption_rotation_enabled(ctx: PlanBuilderContext) -> bool:
    return ctx.features.encryption_rotation and ctx.spec.features.encryption_rotation


def encryption_key_hashes(ctx: PlanBuilderContext) -> Optional[List[str]]:
    """Sorted, prefixed key names of the encryption secret; None if it is missing."""
    secret = ctx.snapshot.secret(encryption_secret_name(ctx.deployment))
    if secret is None:
        return None
    return sorted(f"sha256:{key}" for key in secret.data.keys())


def create_encryption_key_status_plan(ctx: PlanBuilderContext) -> Plan:
    keys = encryption_key_hashes(ctx)
    if keys is None:
        return Plan()
    if ctx.status.hashes.encryption_keys == keys:
        return Plan()
    return Plan([
        Action.new(ActionType.ENCRYPTION_KEY_STATUS_UPDATE, reason="Encryption keys changed")
    ])


def create_member_template_plan(ctx: PlanBuilderContext) -> Plan:
    """Commit the applied template of members whose pod already runs the desired one."""
    actions: List[Action] = []
    for member, group in ctx.status.members.all_members():
        if member.applied_template is not None or member.desired_template is None:
            continue
        pod = ctx.snapshot.pod(member.pod_name)
        if pod is None or pod.checksum != member.desired_template.checksum:
            continue
        actions.append(
            Action.new(
                ActionType.UPDATE_POD_STATUS, group, member.id, "Recording applied template"
            ).set_param(PARAM_CHECKSUM, member.desired_template.checksum)
        )
    return Plan(actions)
