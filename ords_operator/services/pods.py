"""
Pod discovery shared by the converger, the readiness prober and teardown.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ords_operator.config.logging import get_logger
from ords_operator.utils.naming import pod_labels

logger = get_logger(__name__)


@dataclass
class PodSet:
    """
    Live pods of one workload, partitioned.

    ``ready`` is at most one pod; ``available`` holds every other live pod;
    ``terminating`` holds pods already marked for deletion.
    """

    ready: Optional[Dict[str, Any]] = None
    available: List[Dict[str, Any]] = field(default_factory=list)
    terminating: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def replicas_found(self) -> int:
        return len(self.available) + (1 if self.ready else 0)

    @property
    def ready_name(self) -> str:
        return pod_name(self.ready) if self.ready else ""

    def live(self) -> List[Dict[str, Any]]:
        """Available pods followed by the ready pod, if any."""
        return self.available + ([self.ready] if self.ready else [])


def pod_name(pod: Dict[str, Any]) -> str:
    return (pod.get("metadata") or {}).get("name", "")


def is_terminating(pod: Dict[str, Any]) -> bool:
    return (pod.get("metadata") or {}).get("deletionTimestamp") is not None


def is_pod_ready(pod: Dict[str, Any]) -> bool:
    """Running and reporting the Ready condition."""
    status = pod.get("status") or {}
    if status.get("phase") != "Running":
        return False
    for condition in status.get("conditions") or []:
        if condition.get("type") == "Ready":
            return condition.get("status") == "True"
    return False


def _runs_image(pod: Dict[str, Any], image: str) -> bool:
    if not image:
        return True
    containers = (pod.get("spec") or {}).get("containers") or []
    return bool(containers) and containers[0].get("image") == image


async def find_pods(store, namespace: str, app: str, image: str, version: str) -> PodSet:
    """
    Discover the pods of ``app`` running ``image`` at ``version``.

    Raises:
        KubernetesError: If the pods cannot be listed
    """
    pods = await store.list_pods(namespace, pod_labels(app, version))
    found = PodSet()
    for pod in pods:
        if not _runs_image(pod, image):
            continue
        if is_terminating(pod):
            found.terminating.append(pod)
        elif found.ready is None and is_pod_ready(pod):
            found.ready = pod
        else:
            found.available.append(pod)

    logger.debug(
        "pods_discovered",
        app=app,
        namespace=namespace,
        ready=found.ready_name,
        available=[pod_name(p) for p in found.available],
        terminating=[pod_name(p) for p in found.terminating],
    )
    return found


async def get_node_address(store) -> str:
    """
    Address of a cluster node for node-routed endpoints.

    Prefers an ExternalIP, falls back to the first InternalIP, "" when none.
    """
    internal = ""
    for node in await store.list_nodes():
        for address in (node.get("status") or {}).get("addresses") or []:
            if address.get("type") == "ExternalIP" and address.get("address"):
                return address["address"]
            if address.get("type") == "InternalIP" and not internal:
                internal = address.get("address", "")
    return internal


async def find_database_pod(store, database) -> Optional[Dict[str, Any]]:
    """Ready pod of the primary database regardless of its reported status."""
    image = database.spec.image
    pods = await find_pods(store, database.namespace, database.name, image.pull_from, image.version)
    return pods.ready
