"""
Pod roles: the two kinds of processes a member can run.

Each role answers the same questions (validation, labels, annotations,
affinity, tolerations, arguments). A member's role is picked once from
ROLES by its server group and never re-dispatched.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

from kubarango.modules.api.models import (
    DeploymentMode,
    DeploymentSpec,
    ServerGroup,
    ServerGroupSpec,
)
from kubarango.modules.k8s.constants import (
    ARANGO_PORT,
    ARANGO_SYNC_MASTER_PORT,
    ARANGO_SYNC_WORKER_PORT,
    LABEL_APP,
    LABEL_APP_VALUE,
    LABEL_DEPLOYMENT,
    LABEL_MEMBER_ID,
    LABEL_ROLE,
    NODE_ARCH_AFFINITY_LABEL,
    TOPOLOGY_KEY_HOSTNAME,
)
from kubarango.modules.k8s.inspector import ClusterSnapshot
from kubarango.modules.k8s.names import create_pod_dns_name

TOLERATION_KEY_NODE_NOT_READY = "node.kubernetes.io/not-ready"
TOLERATION_KEY_NODE_UNREACHABLE = "node.kubernetes.io/unreachable"
TOLERATION_KEY_NODE_ALPHA_UNREACHABLE = "node.alpha.kubernetes.io/unreachable"

# Seconds a member stays bound to an unhealthy node; None tolerates forever
_NODE_FAILURE_TOLERATION = {
    ServerGroup.AGENTS: None,
    ServerGroup.COORDINATORS: 15,
    ServerGroup.DBSERVERS: 300,
    ServerGroup.SINGLE: 300,
    ServerGroup.SYNCMASTERS: 15,
    ServerGroup.SYNCWORKERS: 60,
}

_ARANGOD_CLUSTER_ROLES = {
    ServerGroup.AGENTS: "AGENT",
    ServerGroup.DBSERVERS: "PRIMARY",
    ServerGroup.COORDINATORS: "COORDINATOR",
    ServerGroup.SINGLE: "SINGLE",
}


class RoleValidationError(ValueError):
    """The deployment cannot run pods of this role."""


def encryption_secret_name(deployment: str) -> str:
    return f"{deployment}-encryption-folder"


def _label_selector(deployment: str, role: str) -> Dict[str, Any]:
    return {
        "matchLabels": {
            LABEL_APP: LABEL_APP_VALUE,
            LABEL_DEPLOYMENT: deployment,
            LABEL_ROLE: role,
        }
    }


def create_affinity(
    deployment: str, role: str, required: bool, affinity_with_role: str = ""
) -> Dict[str, Any]:
    """
    Default scheduling constraints for a member.

    Members of one role avoid sharing a node; with affinity_with_role they
    are drawn to nodes running that role. Nodes must be amd64.
    """

    def term(selector_role: str) -> Dict[str, Any]:
        return {
            "labelSelector": _label_selector(deployment, selector_role),
            "topologyKey": TOPOLOGY_KEY_HOSTNAME,
        }

    def placement(selector_role: str) -> Dict[str, Any]:
        if required:
            return {"requiredDuringSchedulingIgnoredDuringExecution": [term(selector_role)]}
        return {
            "preferredDuringSchedulingIgnoredDuringExecution": [
                {"weight": 1, "podAffinityTerm": term(selector_role)}
            ]
        }

    affinity: Dict[str, Any] = {
        "nodeAffinity": {
            "requiredDuringSchedulingIgnoredDuringExecution": {
                "nodeSelectorTerms": [
                    {
                        "matchExpressions": [
                            {
                                "key": NODE_ARCH_AFFINITY_LABEL,
                                "operator": "In",
                                "values": ["amd64"],
                            }
                        ]
                    }
                ]
            }
        },
        "podAntiAffinity": placement(role),
    }
    if affinity_with_role:
        affinity["podAffinity"] = placement(affinity_with_role)
    return affinity


def _toleration(key: str, seconds: Optional[int]) -> Dict[str, Any]:
    toleration: Dict[str, Any] = {"key": key, "operator": "Exists", "effect": "NoExecute"}
    if seconds is not None:
        toleration["tolerationSeconds"] = seconds
    return toleration


def create_pod_tolerations(
    spec: DeploymentSpec, group: ServerGroup, group_spec: ServerGroupSpec
) -> List[Dict[str, Any]]:
    """User tolerations plus node failure tolerations not already declared."""
    seconds = _NODE_FAILURE_TOLERATION[group]
    if group == ServerGroup.SINGLE and spec.mode == DeploymentMode.SINGLE:
        seconds = None

    tolerations = [dict(t) for t in group_spec.tolerations]
    known = {t.get("key") for t in tolerations}
    for key in (
        TOLERATION_KEY_NODE_NOT_READY,
        TOLERATION_KEY_NODE_UNREACHABLE,
        TOLERATION_KEY_NODE_ALPHA_UNREACHABLE,
    ):
        if key not in known:
            tolerations.append(_toleration(key, seconds))
    return tolerations


@dataclass(frozen=True)
class ArangodPodRole:
    group: ServerGroup

    kind = "arangod"

    def validate(self, deployment: str, spec: DeploymentSpec, snapshot: ClusterSnapshot) -> None:
        if spec.features.encryption_rotation and snapshot.secret(
            encryption_secret_name(deployment)
        ) is None:
            raise RoleValidationError(
                f"Encryption secret {encryption_secret_name(deployment)} is missing"
            )

    def labels(self, deployment: str, member_id: str) -> Dict[str, str]:
        return {
            LABEL_APP: LABEL_APP_VALUE,
            LABEL_DEPLOYMENT: deployment,
            LABEL_ROLE: self.group.as_role(),
            LABEL_MEMBER_ID: member_id,
        }

    def annotations(self) -> Dict[str, str]:
        return {}

    def affinity(self, deployment: str) -> Dict[str, Any]:
        return create_affinity(deployment, self.group.as_role(), required=True)

    def port(self) -> int:
        return ARANGO_PORT

    def args(
        self,
        deployment: str,
        namespace: str,
        spec: DeploymentSpec,
        member_id: str,
    ) -> List[str]:
        args = [
            f"--server.endpoint=ssl://[::]:{ARANGO_PORT}",
            "--server.authentication=true",
            "--database.directory=/data",
            "--foxx.queues=true",
        ]
        if spec.mode == DeploymentMode.SINGLE:
            return args

        address = create_pod_dns_name(
            deployment, namespace, self.group.as_role(), member_id, spec.cluster_domain
        )
        if self.group == ServerGroup.AGENTS:
            args.extend([
                "--agency.activate=true",
                f"--agency.my-address=ssl://{address}:{ARANGO_PORT}",
                f"--agency.size={spec.get_group_count(ServerGroup.AGENTS)}",
                "--agency.supervision=true",
            ])
        else:
            args.extend([
                f"--cluster.my-address=ssl://{address}:{ARANGO_PORT}",
                f"--cluster.my-role={_ARANGOD_CLUSTER_ROLES[self.group]}",
            ])
            if spec.mode == DeploymentMode.ACTIVE_FAILOVER:
                args.append("--replication.automatic-failover=true")
        return args


@dataclass(frozen=True)
class SyncPodRole:
    group: ServerGroup

    kind = "arangosync"

    def validate(self, deployment: str, spec: DeploymentSpec, snapshot: ClusterSnapshot) -> None:
        if not spec.sync_enabled:
            raise RoleValidationError(f"{self.group.value} requires sync to be enabled")

    def labels(self, deployment: str, member_id: str) -> Dict[str, str]:
        return {
            LABEL_APP: LABEL_APP_VALUE,
            LABEL_DEPLOYMENT: deployment,
            LABEL_ROLE: self.group.as_role(),
            LABEL_MEMBER_ID: member_id,
        }

    def annotations(self) -> Dict[str, str]:
        return {"arangodb.com/sync": "true"}

    def affinity(self, deployment: str) -> Dict[str, Any]:
        # Workers sit next to the db-servers whose data they ship
        with_role = (
            ServerGroup.DBSERVERS.as_role() if self.group == ServerGroup.SYNCWORKERS else ""
        )
        return create_affinity(deployment, self.group.as_role(), required=False,
                               affinity_with_role=with_role)

    def port(self) -> int:
        if self.group == ServerGroup.SYNCMASTERS:
            return ARANGO_SYNC_MASTER_PORT
        return ARANGO_SYNC_WORKER_PORT

    def args(
        self,
        deployment: str,
        namespace: str,
        spec: DeploymentSpec,
        member_id: str,
    ) -> List[str]:
        command = "master" if self.group == ServerGroup.SYNCMASTERS else "worker"
        address = create_pod_dns_name(
            deployment, namespace, self.group.as_role(), member_id, spec.cluster_domain
        )
        return [
            "run",
            command,
            f"--server.endpoint=https://{address}:{self.port()}",
            f"--server.port={self.port()}",
        ]


PodRole = Union[ArangodPodRole, SyncPodRole]

ROLES: Mapping[ServerGroup, PodRole] = MappingProxyType({
    ServerGroup.SINGLE: ArangodPodRole(ServerGroup.SINGLE),
    ServerGroup.AGENTS: ArangodPodRole(ServerGroup.AGENTS),
    ServerGroup.DBSERVERS: ArangodPodRole(ServerGroup.DBSERVERS),
    ServerGroup.COORDINATORS: ArangodPodRole(ServerGroup.COORDINATORS),
    ServerGroup.SYNCMASTERS: SyncPodRole(ServerGroup.SYNCMASTERS),
    ServerGroup.SYNCWORKERS: SyncPodRole(ServerGroup.SYNCWORKERS),
})


def role_for_group(group: ServerGroup) -> PodRole:
    return ROLES[group]
