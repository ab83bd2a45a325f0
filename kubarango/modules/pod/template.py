import copy
from typing import Any, Dict, Optional

from kubarango.modules.api.models import (
    DeploymentSpec,
    MemberPodTemplate,
    PodSpec,
    ServerGroup,
)

from .roles import create_pod_tolerations, role_for_group


def merge_affinity(
    defaults: Dict[str, Any], user: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    """Deep-merge user affinity into the defaults; lists are concatenated."""
    merged = copy.deepcopy(defaults)
    if not user:
        return merged

    def merge(target: Dict[str, Any], source: Dict[str, Any]) -> None:
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                merge(target[key], value)
            elif isinstance(value, list) and isinstance(target.get(key), list):
                target[key] = target[key] + copy.deepcopy(value)
            else:
                target[key] = copy.deepcopy(value)

    merge(merged, user)
    return merged


def render_pod_spec(
    deployment: str,
    namespace: str,
    spec: DeploymentSpec,
    group: ServerGroup,
    member_id: str,
) -> PodSpec:
    role = role_for_group(group)
    group_spec = spec.get_server_group_spec(group)
    return PodSpec(
        scheduler_name=group_spec.scheduler_name,
        affinity=merge_affinity(role.affinity(deployment), group_spec.affinity),
        tolerations=create_pod_tolerations(spec, group, group_spec),
        node_selector=dict(group_spec.node_selector),
        priority_class_name=group_spec.priority_class_name,
        service_account_name=group_spec.service_account_name,
        image=spec.image,
        args=role.args(deployment, namespace, spec, member_id) + list(group_spec.args),
    )


def render_member_template(
    deployment: str,
    namespace: str,
    spec: DeploymentSpec,
    group: ServerGroup,
    member_id: str,
) -> MemberPodTemplate:
    """Desired pod template of a member together with its checksum."""
    return MemberPodTemplate.from_pod_spec(
        render_pod_spec(deployment, namespace, spec, group, member_id)
    )
