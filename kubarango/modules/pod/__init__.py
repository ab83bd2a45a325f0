"""
Pod Module - Black Box Interface

Purpose: Decide what a member's pod should look like
Interface: role_for_group(), render_member_template(), create_affinity()
Hidden: Per-role arguments, default affinity and tolerations

Only the parts of the pod the operator compares and rotates are rendered.
"""

from .roles import (
    ROLES,
    ArangodPodRole,
    PodRole,
    RoleValidationError,
    SyncPodRole,
    create_affinity,
    create_pod_tolerations,
    encryption_secret_name,
    role_for_group,
)
from .template import merge_affinity, render_member_template, render_pod_spec

__all__ = [
    "ROLES",
    "ArangodPodRole",
    "PodRole",
    "RoleValidationError",
    "SyncPodRole",
    "create_affinity",
    "create_pod_tolerations",
    "encryption_secret_name",
    "merge_affinity",
    "render_member_template",
    "render_pod_spec",
    "role_for_group",
]
