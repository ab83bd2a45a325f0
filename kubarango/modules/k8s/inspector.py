"""
Point-in-time view of the live objects of one deployment, plus the
protocols the reconciler uses to read and change them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from kubarango.modules.api.models import PodSpec

from .constants import (
    ANNOTATION_POD_CHECKSUM,
    ANNOTATION_ROTATE,
    FINALIZER_DELAY_POD_TERMINATION,
    FINALIZER_POD_GRACEFUL_SHUTDOWN,
)


@dataclass
class Pod:
    name: str
    uid: str = ""
    annotations: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    finalizers: List[str] = field(default_factory=list)
    deletion_timestamp: Optional[datetime] = None
    ready: bool = False
    phase: str = "Pending"
    resource_version: str = ""
    tolerations: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_deleted(self) -> bool:
        return self.deletion_timestamp is not None

    @property
    def has_rotate_annotation(self) -> bool:
        return ANNOTATION_ROTATE in self.annotations

    @property
    def checksum(self) -> str:
        return self.annotations.get(ANNOTATION_POD_CHECKSUM, "")

    def has_finalizer(self, name: str) -> bool:
        return name in self.finalizers

    @property
    def is_terminated(self) -> bool:
        return self.phase in ("Succeeded", "Failed")

    @property
    def needs_graceful_recreate(self) -> bool:
        """Deleted but still held by our shutdown finalizer alone."""
        return (
            self.has_finalizer(FINALIZER_POD_GRACEFUL_SHUTDOWN)
            and not self.has_finalizer(FINALIZER_DELAY_POD_TERMINATION)
        )


@dataclass
class PersistentVolumeClaim:
    name: str
    file_system_resize_pending: bool = False
    finalizers: List[str] = field(default_factory=list)
    resource_version: str = ""


@dataclass
class Secret:
    name: str
    data: Dict[str, str] = field(default_factory=dict)


@dataclass
class ClusterSnapshot:
    """Read-only point-in-time view of live objects. Never mutated after creation."""

    pods: Dict[str, Pod] = field(default_factory=dict)
    persistent_volume_claims: Dict[str, PersistentVolumeClaim] = field(default_factory=dict)
    secrets: Dict[str, Secret] = field(default_factory=dict)

    def pod(self, name: str) -> Optional[Pod]:
        if not name:
            return None
        return self.pods.get(name)

    def persistent_volume_claim(self, name: str) -> Optional[PersistentVolumeClaim]:
        if not name:
            return None
        return self.persistent_volume_claims.get(name)

    def secret(self, name: str) -> Optional[Secret]:
        return self.secrets.get(name)


class PodInterface(Protocol):
    """Pod reads and writes used by actions and finalizer removal."""

    async def get(self, name: str) -> Pod:
        """Raises NotFoundError if the pod does not exist."""
        ...

    async def create(
        self,
        name: str,
        pod_spec: PodSpec,
        labels: Dict[str, str],
        annotations: Dict[str, str],
        finalizers: List[str],
    ) -> Pod:
        """Raises ConflictError if a pod of that name already exists."""
        ...

    async def delete(self, name: str) -> None:
        ...

    async def update_finalizers(self, pod: Pod) -> Pod:
        """Write pod.finalizers guarded by pod.resource_version. Raises ConflictError."""
        ...

    async def patch(
        self,
        name: str,
        annotations: Optional[Dict[str, str]] = None,
        tolerations: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        ...


class ClusterInspector(Protocol):
    """Produces snapshots of the objects belonging to a deployment."""

    async def refresh(self, deployment: str) -> ClusterSnapshot:
        ...
