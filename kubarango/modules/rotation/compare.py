"""
Field-by-field comparison of a member's desired and applied pod spec.

Comparators work on a private copy of the applied spec. Each one that finds
a difference copies the desired value into the copy and reports how the
difference can be applied. Whatever still differs afterwards needs the pod
to be recreated.
"""

import copy
import logging
from typing import Callable, Sequence, Tuple

from kubarango.modules.api.models import (
    Action,
    ActionType,
    DeploymentSpec,
    MemberPodTemplate,
    MemberStatus,
    Plan,
    PodSpec,
    ServerGroup,
    sha256_from_json,
)

from .mode import RotationMode

logger = logging.getLogger("kubarango.rotation")

ActionBuilder = Callable[[ActionType], Action]
CompareFunc = Callable[[ActionBuilder], Tuple[RotationMode, Plan]]
Comparator = Callable[[DeploymentSpec, ServerGroup, PodSpec, PodSpec], CompareFunc]


def pod_compare(_spec: DeploymentSpec, _group: ServerGroup, desired: PodSpec, status: PodSpec) -> CompareFunc:
    def run(builder: ActionBuilder) -> Tuple[RotationMode, Plan]:
        mode = RotationMode.SKIPPED
        if desired.scheduler_name != status.scheduler_name:
            status.scheduler_name = desired.scheduler_name
            mode = mode.combine(RotationMode.SILENT)
        return mode, Plan()

    return run


def affinity_compare(_spec: DeploymentSpec, _group: ServerGroup, desired: PodSpec, status: PodSpec) -> CompareFunc:
    def run(builder: ActionBuilder) -> Tuple[RotationMode, Plan]:
        if sha256_from_json(desired.affinity) != sha256_from_json(status.affinity):
            status.affinity = copy.deepcopy(desired.affinity)
            return RotationMode.SILENT, Plan()
        return RotationMode.SKIPPED, Plan()

    return run


def node_selector_compare(_spec: DeploymentSpec, _group: ServerGroup, desired: PodSpec, status: PodSpec) -> CompareFunc:
    def run(builder: ActionBuilder) -> Tuple[RotationMode, Plan]:
        if desired.node_selector != status.node_selector:
            status.node_selector = dict(desired.node_selector)
            return RotationMode.SILENT, Plan()
        return RotationMode.SKIPPED, Plan()

    return run


def tolerations_compare(_spec: DeploymentSpec, _group: ServerGroup, desired: PodSpec, status: PodSpec) -> CompareFunc:
    # Tolerations are the only pod spec field the cluster lets us patch live
    def run(builder: ActionBuilder) -> Tuple[RotationMode, Plan]:
        if sha256_from_json(desired.tolerations) != sha256_from_json(status.tolerations):
            status.tolerations = copy.deepcopy(desired.tolerations)
            return RotationMode.IN_PLACE, Plan([builder(ActionType.UPDATE_POD_IN_PLACE)])
        return RotationMode.SKIPPED, Plan()

    return run


def priority_compare(_spec: DeploymentSpec, _group: ServerGroup, desired: PodSpec, status: PodSpec) -> CompareFunc:
    def run(builder: ActionBuilder) -> Tuple[RotationMode, Plan]:
        if desired.priority_class_name != status.priority_class_name:
            status.priority_class_name = desired.priority_class_name
            return RotationMode.SILENT, Plan()
        return RotationMode.SKIPPED, Plan()

    return run


COMPARATORS: Tuple[Comparator, ...] = (
    pod_compare,
    affinity_compare,
    node_selector_compare,
    tolerations_compare,
    priority_compare,
)


def compare(
    spec: DeploymentSpec,
    member: MemberStatus,
    group: ServerGroup,
    spec_template: MemberPodTemplate,
    status_template: MemberPodTemplate,
    comparators: Sequence[Comparator] = COMPARATORS,
) -> Tuple[RotationMode, Plan]:
    """
    Compare desired and applied templates of a member.

    Returns:
        The combined mode and the actions comparators asked for

    Raises:
        Exception: Whatever a comparator raised; no partial result is kept
    """
    if spec_template.checksum == status_template.checksum:
        return RotationMode.SKIPPED, Plan()

    def builder(action_type: ActionType) -> Action:
        return Action.new(action_type, group, member.id, "Pod needs rotation").set_param(
            "checksum", spec_template.checksum
        )

    desired = spec_template.pod_spec
    status = status_template.pod_spec.model_copy(deep=True)

    mode = RotationMode.SKIPPED
    plan = Plan()
    for comparator in comparators:
        result_mode, result_plan = comparator(spec, group, desired, status)(builder)
        mode = mode.combine(result_mode)
        plan = plan.concat(result_plan)

    if status.checksum() != desired.checksum():
        logger.debug(f"Member {member.id} differs in fields that require recreation")
        mode = mode.combine(RotationMode.GRACEFUL)

    return mode, plan
