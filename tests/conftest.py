"""
Shared pytest fixtures for Kubarango tests.

This module provides common fixtures including:
- InMemoryStatusStore: a versioned Status Store double with CAS semantics
- FakePodInterface / FakeInspector: live pods without a cluster
- Builders for members, pods and pod templates
- Redis mocks for storage and event tests
"""

import copy
import os
import sys
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kubarango.modules.api.models import (
    DeploymentRecord,
    DeploymentSpec,
    DeploymentStatus,
    MemberPhase,
    MemberPodTemplate,
    MemberStatus,
    PodSpec,
)
from kubarango.modules.k8s.constants import ANNOTATION_POD_CHECKSUM
from kubarango.modules.k8s.inspector import ClusterSnapshot, Pod, Secret
from kubarango.modules.reconcile.context import ActionContext
from kubarango.modules.storage.errors import ConflictError, NotFoundError
from kubarango.modules.storage.storage import MAX_UPDATE_ATTEMPTS


# =============================================================================
# Status Store Double
# =============================================================================

class InMemoryStatusStore:
    """
    Status Store with the same contract as RedisStatusStore.

    Records are copied on every read and write so tests observe exactly
    what a real store would hand out.
    """

    def __init__(self):
        self.records: Dict[str, DeploymentRecord] = {}
        self.writes = 0
        self.conflicts_to_inject = 0

    def put(self, record: DeploymentRecord) -> DeploymentRecord:
        """Seed a record directly, bypassing CAS."""
        self.records[record.name] = record.model_copy(deep=True)
        return record

    def get(self, name: str) -> DeploymentRecord:
        """Synchronous peek for assertions."""
        return self.records[name]

    async def read(self, name: str) -> DeploymentRecord:
        if name not in self.records:
            raise NotFoundError(f"Deployment {name} not found")
        return self.records[name].model_copy(deep=True)

    async def create(self, name: str, spec: DeploymentSpec) -> DeploymentRecord:
        if name in self.records:
            raise ConflictError(f"Deployment {name} already exists")
        record = DeploymentRecord(name=name, spec=spec, version=1)
        self.records[name] = record
        return record.model_copy(deep=True)

    async def compare_and_swap(
        self,
        name: str,
        version: int,
        *,
        spec: Optional[DeploymentSpec] = None,
        status: Optional[DeploymentStatus] = None,
    ) -> DeploymentRecord:
        if name not in self.records:
            raise NotFoundError(f"Deployment {name} not found")
        if self.conflicts_to_inject > 0:
            self.conflicts_to_inject -= 1
            raise ConflictError("injected conflict")
        current = self.records[name]
        if current.version != version:
            raise ConflictError(f"expected version {version}, found {current.version}")
        updated = DeploymentRecord(
            name=name,
            spec=(spec if spec is not None else current.spec).model_copy(deep=True),
            status=(status if status is not None else current.status).model_copy(deep=True),
            version=current.version + 1,
        )
        self.records[name] = updated
        self.writes += 1
        return updated.model_copy(deep=True)

    async def update(self, name: str, mutator, max_attempts: int = MAX_UPDATE_ATTEMPTS) -> bool:
        for _ in range(max_attempts):
            record = await self.read(name)
            if not mutator(record):
                return False
            try:
                await self.compare_and_swap(
                    name, record.version, spec=record.spec, status=record.status
                )
                return True
            except ConflictError:
                continue
        raise ConflictError(f"Giving up on {name}")

    async def list_names(self) -> List[str]:
        return sorted(self.records)

    async def delete(self, name: str) -> None:
        self.records.pop(name, None)


# =============================================================================
# Kubernetes Doubles
# =============================================================================

class FakePodInterface:
    """Pods in memory; deleting a pod that has finalizers only marks it."""

    def __init__(self, ready_on_create: bool = True):
        self.pods: Dict[str, Pod] = {}
        self.ready_on_create = ready_on_create
        self.created: List[str] = []
        self.deleted: List[str] = []
        self.patches: List[Dict[str, Any]] = []
        self.finalizer_updates = 0
        self._uid_counter = 0
        self._version_counter = 0

    def _next_version(self) -> str:
        self._version_counter += 1
        return str(self._version_counter)

    def add(self, pod: Pod) -> Pod:
        if not pod.resource_version:
            pod.resource_version = self._next_version()
        self.pods[pod.name] = pod
        return pod

    async def get(self, name: str) -> Pod:
        if name not in self.pods:
            raise NotFoundError(f"Pod {name} not found")
        return copy.deepcopy(self.pods[name])

    async def create(
        self,
        name: str,
        pod_spec: PodSpec,
        labels: Dict[str, str],
        annotations: Dict[str, str],
        finalizers: List[str],
    ) -> Pod:
        if name in self.pods:
            raise ConflictError(f"Pod {name} already exists")
        self._uid_counter += 1
        pod = Pod(
            name=name,
            uid=f"uid-{self._uid_counter}",
            annotations=dict(annotations),
            labels=dict(labels),
            finalizers=list(finalizers),
            ready=self.ready_on_create,
            phase="Running",
            tolerations=list(pod_spec.tolerations),
        )
        self.add(pod)
        self.created.append(name)
        return copy.deepcopy(pod)

    async def delete(self, name: str) -> None:
        if name not in self.pods:
            raise NotFoundError(f"Pod {name} not found")
        self.deleted.append(name)
        pod = self.pods[name]
        if pod.finalizers:
            if pod.deletion_timestamp is None:
                pod.deletion_timestamp = datetime.now(UTC)
        else:
            del self.pods[name]

    async def update_finalizers(self, pod: Pod) -> Pod:
        if pod.name not in self.pods:
            raise NotFoundError(f"Pod {pod.name} not found")
        current = self.pods[pod.name]
        if current.resource_version != pod.resource_version:
            raise ConflictError(f"Pod {pod.name} was modified concurrently")
        self.finalizer_updates += 1
        current.finalizers = list(pod.finalizers)
        current.resource_version = self._next_version()
        if current.deletion_timestamp is not None and not current.finalizers:
            del self.pods[pod.name]
        return copy.deepcopy(current)

    async def patch(
        self,
        name: str,
        annotations: Optional[Dict[str, str]] = None,
        tolerations: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        if name not in self.pods:
            raise NotFoundError(f"Pod {name} not found")
        self.patches.append({"name": name, "annotations": annotations, "tolerations": tolerations})
        pod = self.pods[name]
        pod.annotations.update(annotations or {})
        if tolerations is not None:
            pod.tolerations = list(tolerations)


class FakeInspector:
    """Snapshots of a FakePodInterface plus a fixed set of secrets."""

    def __init__(self, pods: FakePodInterface, secrets: Optional[Dict[str, Secret]] = None):
        self.pods = pods
        self.secrets = secrets if secrets is not None else {}
        self.refreshes = 0

    async def refresh(self, deployment: str) -> ClusterSnapshot:
        self.refreshes += 1
        return ClusterSnapshot(
            pods=copy.deepcopy(self.pods.pods),
            secrets=copy.deepcopy(self.secrets),
        )


# =============================================================================
# Builders
# =============================================================================

def make_template(image: str = "arangodb/arangodb:3.11", **pod_spec_fields) -> MemberPodTemplate:
    return MemberPodTemplate.from_pod_spec(PodSpec(image=image, **pod_spec_fields))


def make_member(
    member_id: str,
    phase: MemberPhase = MemberPhase.CREATED,
    pod_name: Optional[str] = None,
    pod_uid: Optional[str] = None,
    template: Optional[MemberPodTemplate] = None,
    applied: Optional[MemberPodTemplate] = None,
    **fields,
) -> MemberStatus:
    """Member whose pod is named after its id; desired and applied default to template."""
    if template is None:
        template = make_template()
    fields.setdefault("pod_spec_version", template.checksum)
    return MemberStatus(
        id=member_id,
        phase=phase,
        pod_name=pod_name if pod_name is not None else f"pod-{member_id.lower()}",
        pod_uid=pod_uid if pod_uid is not None else f"uid-{member_id.lower()}",
        desired_template=template,
        applied_template=applied if applied is not None else template,
        **fields,
    )


def make_pod(
    name: str,
    uid: str,
    checksum: str = "",
    ready: bool = True,
    **fields,
) -> Pod:
    annotations = dict(fields.pop("annotations", {}))
    if checksum:
        annotations[ANNOTATION_POD_CHECKSUM] = checksum
    return Pod(name=name, uid=uid, annotations=annotations, ready=ready, phase="Running", **fields)


def pod_for(member: MemberStatus, **fields) -> Pod:
    """The pod a member expects to run, carrying its desired checksum."""
    checksum = member.desired_template.checksum if member.desired_template else ""
    uid = fields.pop("uid", member.pod_uid)
    return make_pod(member.pod_name, uid, checksum=checksum, **fields)


def snapshot_of(*pods: Pod, secrets: Optional[Dict[str, Secret]] = None) -> ClusterSnapshot:
    return ClusterSnapshot(pods={pod.name: pod for pod in pods}, secrets=secrets or {})


async def make_context(store, pods, inspector, record: DeploymentRecord, **kwargs):
    """Seed the store with record and wrap it in an ActionContext with a fresh snapshot."""
    store.put(record)
    return ActionContext(
        record.name,
        store,
        pods,
        inspector,
        await store.read(record.name),
        await inspector.refresh(record.name),
        **kwargs,
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def store():
    """Empty in-memory Status Store."""
    return InMemoryStatusStore()


@pytest.fixture
def pods():
    return FakePodInterface()


@pytest.fixture
def inspector(pods):
    return FakeInspector(pods)


@pytest.fixture
def mock_redis():
    """Create a mock Redis client for async operations."""
    redis = AsyncMock()

    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.expire = AsyncMock()
    redis.ping = AsyncMock(return_value=True)

    # Set operations
    redis.sadd = AsyncMock()
    redis.srem = AsyncMock()
    redis.smembers = AsyncMock(return_value=set())

    # List operations
    redis.lpush = AsyncMock()
    redis.lrange = AsyncMock(return_value=[])
    redis.ltrim = AsyncMock()

    # Pipeline support
    pipeline = AsyncMock()
    pipeline.execute = AsyncMock(return_value=[])
    pipeline.multi = MagicMock()
    pipeline.set = MagicMock()
    pipeline.__aenter__.return_value = pipeline
    pipeline.__aexit__.return_value = False
    redis.pipeline = MagicMock(return_value=pipeline)

    return redis


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: Tests driving several modules through a full pass"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
