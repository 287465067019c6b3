"""
Kubernetes object store - the narrow client the reconcile phases talk to.

Every read returns a plain camelCase dict (or None when the object does not
exist); every failure other than not-found is raised as KubernetesError.
Reads retry transient API failures; writes never retry, so optimistic
concurrency conflicts surface to the caller.
"""
from typing import Any, Callable, Dict, List, Optional

from kubernetes_asyncio import client, config
from kubernetes_asyncio.client import ApiException

from ords_operator.config.logging import get_logger
from ords_operator.core.constants import (
    CRD_GROUP,
    CRD_VERSION,
    DATABASE_PLURAL,
    SERVICE_PLURAL,
)
from ords_operator.exceptions import KubernetesError
from ords_operator.utils.naming import label_selector
from ords_operator.utils.retry import k8s_retrying

logger = get_logger(__name__)


class KubernetesClientSet:
    """Container for Kubernetes API clients."""

    def __init__(self, api_client: client.ApiClient, configuration: client.Configuration):
        self.api_client = api_client
        self.configuration = configuration
        self.custom_api = client.CustomObjectsApi(api_client)
        self.core_api = client.CoreV1Api(api_client)

    async def close(self):
        """Close all API clients."""
        if self.api_client:
            await self.api_client.close()


async def load_client_set(
    kubeconfig_path: Optional[str] = None,
    in_cluster: bool = False,
) -> KubernetesClientSet:
    """
    Build a client set from the in-cluster service account or a kubeconfig file.

    Raises:
        KubernetesError: If the configuration cannot be loaded
    """
    configuration = client.Configuration()
    try:
        if in_cluster:
            config.load_incluster_config(client_configuration=configuration)
        else:
            await config.load_kube_config(
                config_file=kubeconfig_path,
                client_configuration=configuration,
            )
    except Exception as e:
        logger.error("failed_to_load_kubernetes_configuration", in_cluster=in_cluster, error=str(e))
        raise KubernetesError(f"Failed to load Kubernetes configuration: {str(e)}")

    logger.info(
        "kubernetes_configuration_loaded",
        host=configuration.host,
        in_cluster=in_cluster,
        verify_ssl=configuration.verify_ssl,
    )
    api_client = client.ApiClient(configuration=configuration)
    return KubernetesClientSet(api_client=api_client, configuration=configuration)


class KubeStore:
    """Object-store operations used by the reconciler, worker and watcher."""

    def __init__(self, client_set: KubernetesClientSet):
        self.client_set = client_set

    async def close(self) -> None:
        await self.client_set.close()

    def _to_dict(self, obj: Any) -> Any:
        if obj is None or isinstance(obj, dict):
            return obj
        return self.client_set.api_client.sanitize_for_serialization(obj)

    async def _read(self, operation: str, call: Callable, **kwargs) -> Optional[Dict[str, Any]]:
        try:
            async for attempt in k8s_retrying():
                with attempt:
                    return self._to_dict(await call(**kwargs))
        except ApiException as e:
            if e.status == 404:
                return None
            logger.error("k8s_read_failed", operation=operation, status=e.status, error=e.reason, **_ids(kwargs))
            raise KubernetesError(f"{operation} failed: {e.reason}", status=e.status)
        return None

    async def _write(self, operation: str, call: Callable, missing_ok: bool = False, **kwargs) -> Optional[Dict[str, Any]]:
        try:
            return self._to_dict(await call(**kwargs))
        except ApiException as e:
            if e.status == 404 and missing_ok:
                logger.debug("k8s_object_already_absent", operation=operation, **_ids(kwargs))
                return None
            logger.error("k8s_write_failed", operation=operation, status=e.status, error=e.reason, **_ids(kwargs))
            raise KubernetesError(f"{operation} failed: {e.reason}", status=e.status)

    # ------------------------------------------------------------------
    # OracleRestDataService
    # ------------------------------------------------------------------

    async def get_instance(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        return await self._read(
            "get_instance",
            self.client_set.custom_api.get_namespaced_custom_object,
            group=CRD_GROUP, version=CRD_VERSION, plural=SERVICE_PLURAL,
            namespace=namespace, name=name,
        )

    async def list_instances(self, namespace: Optional[str] = None) -> List[Dict[str, Any]]:
        if namespace:
            result = await self._read(
                "list_instances",
                self.client_set.custom_api.list_namespaced_custom_object,
                group=CRD_GROUP, version=CRD_VERSION, plural=SERVICE_PLURAL, namespace=namespace,
            )
        else:
            result = await self._read(
                "list_instances",
                self.client_set.custom_api.list_cluster_custom_object,
                group=CRD_GROUP, version=CRD_VERSION, plural=SERVICE_PLURAL,
            )
        return (result or {}).get("items", [])

    async def update_instance(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the object (metadata/spec); carries resourceVersion for conflict detection."""
        metadata = body["metadata"]
        return await self._write(
            "update_instance",
            self.client_set.custom_api.replace_namespaced_custom_object,
            group=CRD_GROUP, version=CRD_VERSION, plural=SERVICE_PLURAL,
            namespace=metadata["namespace"], name=metadata["name"], body=body,
        )

    async def update_instance_status(self, body: Dict[str, Any]) -> Dict[str, Any]:
        metadata = body["metadata"]
        return await self._write(
            "update_instance_status",
            self.client_set.custom_api.replace_namespaced_custom_object_status,
            group=CRD_GROUP, version=CRD_VERSION, plural=SERVICE_PLURAL,
            namespace=metadata["namespace"], name=metadata["name"], body=body,
        )

    # ------------------------------------------------------------------
    # SingleInstanceDatabase
    # ------------------------------------------------------------------

    async def get_database(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        return await self._read(
            "get_database",
            self.client_set.custom_api.get_namespaced_custom_object,
            group=CRD_GROUP, version=CRD_VERSION, plural=DATABASE_PLURAL,
            namespace=namespace, name=name,
        )

    async def patch_database_status(self, namespace: str, name: str, status: Dict[str, Any]) -> Dict[str, Any]:
        """Merge-patch only the given status fields of the primary database."""
        return await self._write(
            "patch_database_status",
            self.client_set.custom_api.patch_namespaced_custom_object_status,
            group=CRD_GROUP, version=CRD_VERSION, plural=DATABASE_PLURAL,
            namespace=namespace, name=name, body={"status": status},
        )

    # ------------------------------------------------------------------
    # Core objects
    # ------------------------------------------------------------------

    async def get_secret(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        return await self._read(
            "get_secret", self.client_set.core_api.read_namespaced_secret,
            namespace=namespace, name=name,
        )

    async def create_secret(self, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._write(
            "create_secret", self.client_set.core_api.create_namespaced_secret,
            namespace=namespace, body=body,
        )

    async def delete_secret(self, namespace: str, name: str) -> None:
        await self._write(
            "delete_secret", self.client_set.core_api.delete_namespaced_secret,
            missing_ok=True, namespace=namespace, name=name,
        )

    async def get_svc(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        return await self._read(
            "get_svc", self.client_set.core_api.read_namespaced_service,
            namespace=namespace, name=name,
        )

    async def create_svc(self, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._write(
            "create_svc", self.client_set.core_api.create_namespaced_service,
            namespace=namespace, body=body,
        )

    async def get_pvc(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        return await self._read(
            "get_pvc", self.client_set.core_api.read_namespaced_persistent_volume_claim,
            namespace=namespace, name=name,
        )

    async def create_pvc(self, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._write(
            "create_pvc", self.client_set.core_api.create_namespaced_persistent_volume_claim,
            namespace=namespace, body=body,
        )

    async def list_pods(self, namespace: str, labels: Dict[str, str]) -> List[Dict[str, Any]]:
        result = await self._read(
            "list_pods", self.client_set.core_api.list_namespaced_pod,
            namespace=namespace, label_selector=label_selector(labels),
        )
        return (result or {}).get("items", [])

    async def create_pod(self, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._write(
            "create_pod", self.client_set.core_api.create_namespaced_pod,
            namespace=namespace, body=body,
        )

    async def delete_pod(self, namespace: str, name: str, force: bool = False) -> None:
        """Delete a pod; ``force`` means zero grace period with foreground propagation."""
        body = None
        if force:
            body = client.V1DeleteOptions(grace_period_seconds=0, propagation_policy="Foreground")
        await self._write(
            "delete_pod", self.client_set.core_api.delete_namespaced_pod,
            missing_ok=True, namespace=namespace, name=name, body=body,
        )

    async def list_nodes(self) -> List[Dict[str, Any]]:
        result = await self._read("list_nodes", self.client_set.core_api.list_node)
        return (result or {}).get("items", [])

    async def create_event(self, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return await self._write(
            "create_event", self.client_set.core_api.create_namespaced_event,
            namespace=namespace, body=body,
        )


def _ids(kwargs: Dict[str, Any]) -> Dict[str, Any]:
    """Identifying call arguments for log context."""
    return {k: kwargs[k] for k in ("namespace", "name", "plural") if k in kwargs}
