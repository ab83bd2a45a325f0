"""
API Module - Black Box Interface

Purpose: The data model shared by every other module and the HTTP surface
Interface: DeploymentSpec, DeploymentStatus, MemberStatus, Action, Plan,
           DeploymentRecord, HealthResponse
Hidden: Serialization details, checksums

The models carry no I/O. Everything is persisted through the Status Store.
"""

from .models import (
    ALL_SERVER_GROUPS,
    Action,
    ActionType,
    Condition,
    ConditionList,
    ConditionType,
    DeploymentFeatures,
    DeploymentHashes,
    DeploymentMode,
    DeploymentPhase,
    DeploymentRecord,
    DeploymentSpec,
    DeploymentStatus,
    DeploymentStatusMembers,
    ErrorResponse,
    HealthResponse,
    MemberPhase,
    MemberPodTemplate,
    MemberPropagationMode,
    MemberStatus,
    Plan,
    PodSpec,
    ServerGroup,
    ServerGroupSpec,
    SpecValidationError,
    new_plan,
)

__all__ = [
    "ALL_SERVER_GROUPS",
    "Action",
    "ActionType",
    "Condition",
    "ConditionList",
    "ConditionType",
    "DeploymentFeatures",
    "DeploymentHashes",
    "DeploymentMode",
    "DeploymentPhase",
    "DeploymentRecord",
    "DeploymentSpec",
    "DeploymentStatus",
    "DeploymentStatusMembers",
    "ErrorResponse",
    "HealthResponse",
    "MemberPhase",
    "MemberPodTemplate",
    "MemberPropagationMode",
    "MemberStatus",
    "Plan",
    "PodSpec",
    "ServerGroup",
    "ServerGroupSpec",
    "SpecValidationError",
    "new_plan",
]
