"""
K8s Module - Black Box Interface

Purpose: The operator's boundary with live cluster objects
Interface: ClusterSnapshot, PodInterface, ClusterInspector, remove_finalizers(),
           remove_pod_finalizers(), name helpers
Hidden: kubernetes_asyncio models, JSON patches, label selectors

Everything above this module sees plain dataclasses and our own errors.
"""

from .client import KubernetesInspector, KubernetesPodClient
from .constants import (
    ANNOTATION_POD_CHECKSUM,
    ANNOTATION_ROTATE,
    FINALIZER_DELAY_POD_TERMINATION,
    FINALIZER_POD_GRACEFUL_SHUTDOWN,
)
from .finalizers import MAX_REMOVE_FINALIZERS_ATTEMPTS, remove_finalizers, remove_pod_finalizers
from .inspector import (
    ClusterInspector,
    ClusterSnapshot,
    PersistentVolumeClaim,
    Pod,
    PodInterface,
    Secret,
)
from .names import (
    create_database_client_service_dns_name,
    create_member_id,
    create_pod_dns_name,
    create_pod_name,
    validate_resource_name,
)

__all__ = [
    "ANNOTATION_POD_CHECKSUM",
    "ANNOTATION_ROTATE",
    "FINALIZER_DELAY_POD_TERMINATION",
    "FINALIZER_POD_GRACEFUL_SHUTDOWN",
    "MAX_REMOVE_FINALIZERS_ATTEMPTS",
    "ClusterInspector",
    "ClusterSnapshot",
    "KubernetesInspector",
    "KubernetesPodClient",
    "PersistentVolumeClaim",
    "Pod",
    "PodInterface",
    "Secret",
    "create_database_client_service_dns_name",
    "create_member_id",
    "create_pod_dns_name",
    "create_pod_name",
    "remove_finalizers",
    "remove_pod_finalizers",
    "validate_resource_name",
]
