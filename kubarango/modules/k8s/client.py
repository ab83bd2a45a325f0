"""kubernetes_asyncio adapter for the pod and snapshot boundary."""

import logging
from typing import Any, Dict, List, Optional

from kubernetes_asyncio import client
from kubernetes_asyncio.client import ApiException

from kubarango.config.timeouts import GlobalTimeouts
from kubarango.modules.api.models import PodSpec
from kubarango.modules.storage.errors import ConflictError, NotFoundError

from .constants import LABEL_DEPLOYMENT
from .inspector import ClusterSnapshot, PersistentVolumeClaim, Pod, Secret

logger = logging.getLogger("kubarango.k8s")


def _translate(err: ApiException, what: str) -> Exception:
    if err.status == 404:
        return NotFoundError(f"{what} not found")
    if err.status == 409:
        return ConflictError(f"{what} was modified concurrently")
    return err


def _is_ready(status) -> bool:
    if status is None or not status.conditions:
        return False
    return any(c.type == "Ready" and c.status == "True" for c in status.conditions)


class KubernetesPodClient:
    """Pod reads and writes in one namespace."""

    def __init__(
        self,
        api_client: client.ApiClient,
        namespace: str,
        timeouts: Optional[GlobalTimeouts] = None,
    ):
        self.api_client = api_client
        self.core = client.CoreV1Api(api_client)
        self.namespace = namespace
        self.timeouts = timeouts or GlobalTimeouts()

    def to_pod(self, obj) -> Pod:
        meta = obj.metadata
        spec_tolerations = obj.spec.tolerations if obj.spec else None
        return Pod(
            name=meta.name,
            uid=meta.uid or "",
            annotations=dict(meta.annotations or {}),
            labels=dict(meta.labels or {}),
            finalizers=list(meta.finalizers or []),
            deletion_timestamp=meta.deletion_timestamp,
            ready=_is_ready(obj.status),
            phase=(obj.status.phase if obj.status else None) or "Pending",
            resource_version=meta.resource_version or "",
            tolerations=[
                self.api_client.sanitize_for_serialization(t) for t in spec_tolerations or []
            ],
        )

    async def get(self, name: str) -> Pod:
        try:
            obj = await self.timeouts.kubernetes().run(
                self.core.read_namespaced_pod(name=name, namespace=self.namespace)
            )
        except ApiException as e:
            raise _translate(e, f"Pod {name}") from e
        return self.to_pod(obj)

    async def create(
        self,
        name: str,
        pod_spec: PodSpec,
        labels: Dict[str, str],
        annotations: Dict[str, str],
        finalizers: List[str],
    ) -> Pod:
        """Create the pod of one member with a single server container."""
        spec: Dict[str, Any] = {
            "containers": [{"name": "server", "image": pod_spec.image, "args": list(pod_spec.args)}],
            "tolerations": pod_spec.tolerations,
            "affinity": pod_spec.affinity,
            "nodeSelector": pod_spec.node_selector,
            "restartPolicy": "Never",
        }
        if pod_spec.scheduler_name:
            spec["schedulerName"] = pod_spec.scheduler_name
        if pod_spec.priority_class_name:
            spec["priorityClassName"] = pod_spec.priority_class_name
        if pod_spec.service_account_name:
            spec["serviceAccountName"] = pod_spec.service_account_name

        body = {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {
                "name": name,
                "labels": labels,
                "annotations": annotations,
                "finalizers": finalizers,
            },
            "spec": spec,
        }
        try:
            obj = await self.timeouts.kubernetes().run(
                self.core.create_namespaced_pod(namespace=self.namespace, body=body)
            )
        except ApiException as e:
            raise _translate(e, f"Pod {name}") from e
        logger.info(f"Created pod {name}")
        return self.to_pod(obj)

    async def delete(self, name: str) -> None:
        try:
            await self.timeouts.kubernetes().run(
                self.core.delete_namespaced_pod(name=name, namespace=self.namespace)
            )
            logger.info(f"Deleted pod {name}")
        except ApiException as e:
            raise _translate(e, f"Pod {name}") from e

    async def update_finalizers(self, pod: Pod) -> Pod:
        # resourceVersion in the patch makes the write conditional
        body = [
            {"op": "replace", "path": "/metadata/resourceVersion", "value": pod.resource_version},
            {"op": "replace", "path": "/metadata/finalizers", "value": list(pod.finalizers)},
        ]
        try:
            obj = await self.timeouts.kubernetes().run(
                self.core.patch_namespaced_pod(name=pod.name, namespace=self.namespace, body=body)
            )
        except ApiException as e:
            raise _translate(e, f"Pod {pod.name}") from e
        return self.to_pod(obj)

    async def patch(
        self,
        name: str,
        annotations: Optional[Dict[str, str]] = None,
        tolerations: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        body: List[Dict[str, Any]] = []
        for key, value in (annotations or {}).items():
            path = "/metadata/annotations/" + key.replace("~", "~0").replace("/", "~1")
            body.append({"op": "add", "path": path, "value": value})
        if tolerations is not None:
            body.append({"op": "replace", "path": "/spec/tolerations", "value": tolerations})
        if not body:
            return
        try:
            await self.timeouts.kubernetes().run(
                self.core.patch_namespaced_pod(name=name, namespace=self.namespace, body=body)
            )
        except ApiException as e:
            raise _translate(e, f"Pod {name}") from e


class KubernetesInspector:
    """Builds snapshots from label-selected pods, claims and secrets."""

    def __init__(
        self,
        pods: KubernetesPodClient,
        timeouts: Optional[GlobalTimeouts] = None,
    ):
        self.pods = pods
        self.core = pods.core
        self.namespace = pods.namespace
        self.timeouts = timeouts or pods.timeouts

    async def refresh(self, deployment: str) -> ClusterSnapshot:
        selector = f"{LABEL_DEPLOYMENT}={deployment}"
        timeout = self.timeouts.kubernetes()

        pod_list = await timeout.run(
            self.core.list_namespaced_pod(namespace=self.namespace, label_selector=selector)
        )
        pvc_list = await timeout.run(
            self.core.list_namespaced_persistent_volume_claim(
                namespace=self.namespace, label_selector=selector
            )
        )
        secret_list = await timeout.run(
            self.core.list_namespaced_secret(namespace=self.namespace, label_selector=selector)
        )

        snapshot = ClusterSnapshot()
        for obj in pod_list.items:
            pod = self.pods.to_pod(obj)
            snapshot.pods[pod.name] = pod
        for obj in pvc_list.items:
            conditions = (obj.status.conditions if obj.status else None) or []
            snapshot.persistent_volume_claims[obj.metadata.name] = PersistentVolumeClaim(
                name=obj.metadata.name,
                file_system_resize_pending=any(
                    c.type == "FileSystemResizePending" and c.status == "True" for c in conditions
                ),
                finalizers=list(obj.metadata.finalizers or []),
                resource_version=obj.metadata.resource_version or "",
            )
        for obj in secret_list.items:
            snapshot.secrets[obj.metadata.name] = Secret(
                name=obj.metadata.name, data=dict(obj.data or {})
            )
        logger.debug(
            f"Snapshot of {deployment}: {len(snapshot.pods)} pods, "
            f"{len(snapshot.persistent_volume_claims)} claims, {len(snapshot.secrets)} secrets"
        )
        return snapshot
