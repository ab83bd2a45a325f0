"""
Kubarango shared data models.

These models define the structure of the deployment document kept in the
Status Store: the declared spec, the observed status with its members and
the plan of pending actions. Everything here serializes field-for-field to
JSON and must round-trip losslessly across operator restarts.
"""

import hashlib
import json
import secrets
import string
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field, RootModel


class SpecValidationError(ValueError):
    """Raised when a deployment spec violates its declared bounds."""


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_id(length: int = 8) -> str:
    """Random lowercase alphanumeric identifier."""
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def sha256_from_json(value: Any) -> str:
    """SHA-256 of the canonical JSON form of a value."""
    data = json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


# Enums


class ServerGroup(str, Enum):
    """Server groups of a deployment, named after their spec fields."""

    SINGLE = "single"
    AGENTS = "agents"
    DBSERVERS = "dbservers"
    COORDINATORS = "coordinators"
    SYNCMASTERS = "syncmasters"
    SYNCWORKERS = "syncworkers"

    def as_role(self) -> str:
        """Short role name used in pod names and labels."""
        return _GROUP_ROLES[self]

    def as_role_abbreviated(self) -> str:
        """Four letter role name used in short pod names."""
        return _GROUP_ROLE_ABBREVIATIONS[self]

    def is_arangod(self) -> bool:
        return self in (
            ServerGroup.SINGLE,
            ServerGroup.AGENTS,
            ServerGroup.DBSERVERS,
            ServerGroup.COORDINATORS,
        )

    def is_sync(self) -> bool:
        return self in (ServerGroup.SYNCMASTERS, ServerGroup.SYNCWORKERS)


_GROUP_ROLES = {
    ServerGroup.SINGLE: "single",
    ServerGroup.AGENTS: "agent",
    ServerGroup.DBSERVERS: "dbserver",
    ServerGroup.COORDINATORS: "coordinator",
    ServerGroup.SYNCMASTERS: "syncmaster",
    ServerGroup.SYNCWORKERS: "syncworker",
}

_GROUP_ROLE_ABBREVIATIONS = {
    ServerGroup.SINGLE: "sngl",
    ServerGroup.AGENTS: "agnt",
    ServerGroup.DBSERVERS: "prmr",
    ServerGroup.COORDINATORS: "crdn",
    ServerGroup.SYNCMASTERS: "syma",
    ServerGroup.SYNCWORKERS: "sywo",
}

# Default execution order of server groups
ALL_SERVER_GROUPS: List[ServerGroup] = [
    ServerGroup.SINGLE,
    ServerGroup.AGENTS,
    ServerGroup.DBSERVERS,
    ServerGroup.COORDINATORS,
    ServerGroup.SYNCMASTERS,
    ServerGroup.SYNCWORKERS,
]


class DeploymentMode(str, Enum):
    SINGLE = "Single"
    ACTIVE_FAILOVER = "ActiveFailover"
    CLUSTER = "Cluster"


class MemberPropagationMode(str, Enum):
    """How changes that need a restart are propagated to members."""

    ALWAYS = "Always"
    ON_RESTART = "OnRestart"


class DeploymentPhase(str, Enum):
    NONE = ""
    RUNNING = "Running"
    FAILED = "Failed"


class MemberPhase(str, Enum):
    NONE = ""
    PENDING = "Pending"
    CREATED = "Created"
    UPGRADING = "Upgrading"
    FAILED = "Failed"


class ConditionType(str, Enum):
    READY = "Ready"
    TERMINATING = "Terminating"
    TERMINATED = "Terminated"
    PENDING_RESTART = "PendingRestart"
    PENDING_TLS_ROTATION = "PendingTLSRotation"
    AUTO_UPGRADE = "AutoUpgrade"
    ACTION_FAILED = "ActionFailed"


class ActionType(str, Enum):
    """Closed set of plan action types."""

    ADD_MEMBER = "AddMember"
    REMOVE_MEMBER = "RemoveMember"
    KILL_MEMBER_POD = "KillMemberPod"
    ROTATE_MEMBER = "RotateMember"
    WAIT_FOR_MEMBER_UP = "WaitForMemberUp"
    UPDATE_POD_STATUS = "UpdatePodStatus"
    UPDATE_POD_IN_PLACE = "UpdatePodInPlace"
    ENCRYPTION_KEY_STATUS_UPDATE = "EncryptionKeyStatusUpdate"
    DISABLE_CLUSTER_SCALING = "DisableClusterScaling"
    ENABLE_CLUSTER_SCALING = "EnableClusterScaling"


# Conditions


class Condition(BaseModel):
    """A named boolean flag with reason and message attached."""

    type: ConditionType
    status: bool = False
    reason: str = ""
    message: str = ""
    last_update_time: datetime = Field(default_factory=utc_now)
    last_transition_time: datetime = Field(default_factory=utc_now)


class ConditionList(RootModel[List[Condition]]):
    root: List[Condition] = Field(default_factory=list)

    def __iter__(self) -> Iterator[Condition]:
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def get(self, condition_type: ConditionType) -> Optional[Condition]:
        for condition in self.root:
            if condition.type == condition_type:
                return condition
        return None

    def is_true(self, condition_type: ConditionType) -> bool:
        condition = self.get(condition_type)
        return condition is not None and condition.status

    def update(
        self,
        condition_type: ConditionType,
        status: bool,
        reason: str = "",
        message: str = "",
    ) -> bool:
        """
        Set a condition.

        Returns:
            True if anything changed
        """
        now = utc_now()
        existing = self.get(condition_type)
        if existing is None:
            self.root.append(
                Condition(
                    type=condition_type,
                    status=status,
                    reason=reason,
                    message=message,
                    last_update_time=now,
                    last_transition_time=now,
                )
            )
            return True

        if existing.status == status and existing.reason == reason and existing.message == message:
            return False

        if existing.status != status:
            existing.last_transition_time = now
        existing.status = status
        existing.reason = reason
        existing.message = message
        existing.last_update_time = now
        return True

    def remove(self, condition_type: ConditionType) -> bool:
        before = len(self.root)
        self.root = [c for c in self.root if c.type != condition_type]
        return len(self.root) != before


# Pod templates


class PodSpec(BaseModel):
    """The subset of a pod specification the operator compares and rotates."""

    scheduler_name: str = ""
    affinity: Optional[Dict[str, Any]] = None
    tolerations: List[Dict[str, Any]] = Field(default_factory=list)
    node_selector: Dict[str, str] = Field(default_factory=dict)
    priority_class_name: str = ""
    service_account_name: str = ""
    image: str = ""
    args: List[str] = Field(default_factory=list)

    def checksum(self) -> str:
        return sha256_from_json(self.model_dump(mode="json"))


class MemberPodTemplate(BaseModel):
    """Snapshot of a member's pod spec together with its checksum."""

    pod_spec: PodSpec
    checksum: str = ""

    @classmethod
    def from_pod_spec(cls, pod_spec: PodSpec) -> "MemberPodTemplate":
        return cls(pod_spec=pod_spec, checksum=pod_spec.checksum())

    def equals(self, other: Optional["MemberPodTemplate"]) -> bool:
        return other is not None and self.checksum == other.checksum


# Spec


_DEFAULT_GROUP_COUNTS = {
    ServerGroup.SINGLE: 1,
    ServerGroup.AGENTS: 3,
    ServerGroup.DBSERVERS: 3,
    ServerGroup.COORDINATORS: 3,
    ServerGroup.SYNCMASTERS: 3,
    ServerGroup.SYNCWORKERS: 3,
}

_MAX_COUNT = 2**31 - 1


class ServerGroupSpec(BaseModel):
    """Desired configuration of one server group."""

    count: Optional[int] = Field(None, description="Desired number of members")
    min_count: Optional[int] = Field(None, description="Lower bound for count")
    max_count: Optional[int] = Field(None, description="Upper bound for count")
    scheduler_name: str = ""
    affinity: Optional[Dict[str, Any]] = None
    tolerations: List[Dict[str, Any]] = Field(default_factory=list)
    node_selector: Dict[str, str] = Field(default_factory=dict)
    priority_class_name: str = ""
    service_account_name: str = ""
    args: List[str] = Field(default_factory=list)

    def get_min_count(self) -> int:
        return self.min_count if self.min_count is not None else 1

    def get_max_count(self) -> int:
        return self.max_count if self.max_count is not None else _MAX_COUNT

    def validate_group(self, group: ServerGroup, count: int) -> None:
        """
        Check the bounds of this group.

        Raises:
            SpecValidationError: If min <= count <= max does not hold
        """
        if count < 0:
            raise SpecValidationError(f"{group.value}: count must be >= 0, got {count}")
        if self.min_count is not None and self.min_count < 0:
            raise SpecValidationError(f"{group.value}: minCount must be >= 0, got {self.min_count}")
        if self.get_min_count() > self.get_max_count():
            raise SpecValidationError(
                f"{group.value}: minCount {self.get_min_count()} exceeds maxCount {self.get_max_count()}"
            )
        if count < self.get_min_count():
            raise SpecValidationError(
                f"{group.value}: count {count} is below minCount {self.get_min_count()}"
            )
        if count > self.get_max_count():
            raise SpecValidationError(
                f"{group.value}: count {count} is above maxCount {self.get_max_count()}"
            )


class DeploymentFeatures(BaseModel):
    graceful_shutdown: bool = True
    encryption_rotation: bool = False


class DeploymentSpec(BaseModel):
    """Desired state of a deployment, as declared by the user."""

    mode: DeploymentMode = DeploymentMode.CLUSTER
    image: str = "arangodb/arangodb:latest"
    member_propagation_mode: MemberPropagationMode = MemberPropagationMode.ALWAYS
    sync_enabled: bool = False
    cluster_domain: Optional[str] = None
    features: DeploymentFeatures = Field(default_factory=DeploymentFeatures)

    single: ServerGroupSpec = Field(default_factory=ServerGroupSpec)
    agents: ServerGroupSpec = Field(default_factory=ServerGroupSpec)
    dbservers: ServerGroupSpec = Field(default_factory=ServerGroupSpec)
    coordinators: ServerGroupSpec = Field(default_factory=ServerGroupSpec)
    syncmasters: ServerGroupSpec = Field(default_factory=ServerGroupSpec)
    syncworkers: ServerGroupSpec = Field(default_factory=ServerGroupSpec)

    def get_server_group_spec(self, group: ServerGroup) -> ServerGroupSpec:
        return getattr(self, group.value)

    def get_group_count(self, group: ServerGroup) -> int:
        count = self.get_server_group_spec(group).count
        if count is None:
            count = _DEFAULT_GROUP_COUNTS[group]
        return count

    def groups_in_use(self) -> List[ServerGroup]:
        """Server groups that have members in the current mode."""
        if self.mode == DeploymentMode.SINGLE:
            return [ServerGroup.SINGLE]
        if self.mode == DeploymentMode.ACTIVE_FAILOVER:
            return [ServerGroup.AGENTS, ServerGroup.SINGLE]
        groups = [ServerGroup.AGENTS, ServerGroup.DBSERVERS, ServerGroup.COORDINATORS]
        if self.sync_enabled:
            groups.extend([ServerGroup.SYNCMASTERS, ServerGroup.SYNCWORKERS])
        return groups

    def validate_spec(self) -> None:
        """
        Validate every server group in use.

        Raises:
            SpecValidationError: On the first violated bound
        """
        if not self.image:
            raise SpecValidationError("image must be set")
        for group in self.groups_in_use():
            self.get_server_group_spec(group).validate_group(group, self.get_group_count(group))

    def checksum(self) -> str:
        return sha256_from_json(self.model_dump(mode="json"))


# Status


class MemberStatus(BaseModel):
    """Observed state of one cluster member."""

    id: str
    phase: MemberPhase = MemberPhase.NONE
    created_at: datetime = Field(default_factory=utc_now)
    pod_name: str = ""
    pod_uid: str = ""
    pod_spec_version: str = Field("", description="Checksum of the pod that actually exists")
    persistent_volume_claim_name: str = ""
    desired_template: Optional[MemberPodTemplate] = None
    applied_template: Optional[MemberPodTemplate] = None
    conditions: ConditionList = Field(default_factory=ConditionList)


class DeploymentStatusMembers(BaseModel):
    """Members per server group, in creation order."""

    single: List[MemberStatus] = Field(default_factory=list)
    agents: List[MemberStatus] = Field(default_factory=list)
    dbservers: List[MemberStatus] = Field(default_factory=list)
    coordinators: List[MemberStatus] = Field(default_factory=list)
    syncmasters: List[MemberStatus] = Field(default_factory=list)
    syncworkers: List[MemberStatus] = Field(default_factory=list)

    def members_of_group(self, group: ServerGroup) -> List[MemberStatus]:
        return getattr(self, group.value)

    def foreach_server_group(self) -> Iterator[Tuple[ServerGroup, List[MemberStatus]]]:
        """Yield every group in the default execution order."""
        return self.foreach_server_in_groups(*ALL_SERVER_GROUPS)

    def foreach_server_in_groups(
        self, *groups: ServerGroup
    ) -> Iterator[Tuple[ServerGroup, List[MemberStatus]]]:
        for group in groups:
            yield group, self.members_of_group(group)

    def all_members(self) -> Iterator[Tuple[MemberStatus, ServerGroup]]:
        for group, members in self.foreach_server_group():
            for member in members:
                yield member, group

    def element_by_id(self, member_id: str) -> Optional[Tuple[MemberStatus, ServerGroup]]:
        for member, group in self.all_members():
            if member.id == member_id:
                return member, group
        return None

    def add(self, member: MemberStatus, group: ServerGroup) -> None:
        if self.element_by_id(member.id) is not None:
            raise ValueError(f"Member {member.id} already exists")
        self.members_of_group(group).append(member)

    def update(self, member: MemberStatus, group: ServerGroup) -> bool:
        members = self.members_of_group(group)
        for index, existing in enumerate(members):
            if existing.id == member.id:
                members[index] = member
                return True
        return False

    def remove_by_id(self, member_id: str) -> bool:
        for group, members in self.foreach_server_group():
            for index, existing in enumerate(members):
                if existing.id == member_id:
                    del members[index]
                    return True
        return False


# Plan


class Action(BaseModel):
    """
    One planned step.

    Only the start markers change after creation: start_attempted_at is set
    by the first start that raised, started_at once start has returned.
    """

    id: str = Field(default_factory=new_id)
    type: ActionType
    member_id: str = ""
    group: Optional[ServerGroup] = None
    reason: str = ""
    params: Dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    start_attempted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None

    @classmethod
    def new(
        cls,
        action_type: ActionType,
        group: Optional[ServerGroup] = None,
        member_id: str = "",
        reason: str = "",
    ) -> "Action":
        return cls(type=action_type, group=group, member_id=member_id, reason=reason)

    def set_param(self, key: str, value: str) -> "Action":
        return self.model_copy(update={"params": {**self.params, key: value}})

    def get_param(self, key: str) -> Optional[str]:
        return self.params.get(key)


class Plan(RootModel[List[Action]]):
    """Ordered queue of pending actions."""

    root: List[Action] = Field(default_factory=list)

    def __iter__(self) -> Iterator[Action]:
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, index: int) -> Action:
        return self.root[index]

    def is_empty(self) -> bool:
        return len(self.root) == 0

    def first(self) -> Optional[Action]:
        return self.root[0] if self.root else None

    def without_first(self) -> "Plan":
        return Plan(self.root[1:])

    def concat(self, other: "Plan") -> "Plan":
        return Plan(self.root + other.root)


def new_plan(*actions: Action) -> Plan:
    return Plan(list(actions))


class DeploymentHashes(BaseModel):
    encryption_keys: Optional[List[str]] = None


class DeploymentStatus(BaseModel):
    """Observed state of a deployment. Owned by the reconciler."""

    phase: DeploymentPhase = DeploymentPhase.NONE
    members: DeploymentStatusMembers = Field(default_factory=DeploymentStatusMembers)
    plan: Plan = Field(default_factory=Plan)
    hashes: DeploymentHashes = Field(default_factory=DeploymentHashes)
    conditions: ConditionList = Field(default_factory=ConditionList)
    accepted_spec_checksum: str = ""


class DeploymentRecord(BaseModel):
    """Versioned Status Store document."""

    name: str
    spec: DeploymentSpec = Field(default_factory=DeploymentSpec)
    status: DeploymentStatus = Field(default_factory=DeploymentStatus)
    version: int = 0


# API Models


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Health status", pattern="^(healthy|unhealthy|degraded)$")
    redis: str = Field(..., description="Redis connection status")
    version: str = Field(default="1.0.0", description="Operator version")
    deployments: Optional[int] = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error details")
    timestamp: datetime = Field(default_factory=utc_now)
