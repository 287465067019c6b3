"""
Kubernetes event watcher feeding the reconciliation worker.

Watches OracleRestDataService objects and the pods they own; every event
enqueues the owning instance. Streams reconnect after errors and after the
server closes them.
"""
import asyncio
from typing import Any, Callable, Dict, Optional

from kubernetes_asyncio import watch
from kubernetes_asyncio.client import ApiException

from ords_operator.config.logging import get_logger
from ords_operator.config.settings import Settings
from ords_operator.core.constants import CRD_GROUP, CRD_VERSION, SERVICE_KIND, SERVICE_PLURAL

logger = get_logger(__name__)

RECONNECT_DELAY_SECONDS = 5


def instance_key(obj: Dict[str, Any]) -> Optional[str]:
    metadata = obj.get("metadata") or {}
    if not metadata.get("name"):
        return None
    return f"{metadata.get('namespace', 'default')}/{metadata['name']}"


def owner_key(obj: Dict[str, Any]) -> Optional[str]:
    """Key of the OracleRestDataService controlling ``obj``, if any."""
    metadata = obj.get("metadata") or {}
    for ref in metadata.get("ownerReferences") or []:
        if ref.get("kind") == SERVICE_KIND and ref.get("apiVersion", "").startswith(CRD_GROUP):
            return f"{metadata.get('namespace', 'default')}/{ref.get('name')}"
    return None


class EventWatcher:
    """Watches instances and owned pods, enqueueing keys into the worker."""

    def __init__(self, store, worker, settings: Settings):
        self.store = store
        self.worker = worker
        self.settings = settings
        self.running = False
        self._connected: Dict[str, bool] = {"instances": False, "pods": False}
        self._tasks = []
        logger.info("event_watcher_initialized", namespace=settings.watch_namespace or "*")

    @property
    def connected(self) -> bool:
        return self.running and all(self._connected.values())

    def _instance_list_call(self):
        custom_api = self.store.client_set.custom_api
        if self.settings.watch_namespace:
            return custom_api.list_namespaced_custom_object, {
                "group": CRD_GROUP, "version": CRD_VERSION, "plural": SERVICE_PLURAL,
                "namespace": self.settings.watch_namespace,
            }
        return custom_api.list_cluster_custom_object, {
            "group": CRD_GROUP, "version": CRD_VERSION, "plural": SERVICE_PLURAL,
        }

    def _pod_list_call(self):
        core_api = self.store.client_set.core_api
        if self.settings.watch_namespace:
            return core_api.list_namespaced_pod, {"namespace": self.settings.watch_namespace}
        return core_api.list_pod_for_all_namespaces, {}

    async def _watch(self, stream: str, list_call, kwargs, key_of: Callable[[Dict[str, Any]], Optional[str]]):
        sanitize = self.store.client_set.api_client.sanitize_for_serialization
        while self.running:
            try:
                async with watch.Watch() as w:
                    self._connected[stream] = True
                    logger.info("watch_stream_opened", stream=stream)
                    async for event in w.stream(list_call, **kwargs):
                        obj = event.get("object")
                        if not isinstance(obj, dict):
                            obj = sanitize(obj)
                        key = key_of(obj or {})
                        if key:
                            logger.debug("watch_event", stream=stream, type=event.get("type"), instance=key)
                            self.worker.enqueue(key)
            except asyncio.CancelledError:
                raise
            except ApiException as e:
                logger.warning("watch_stream_failed", stream=stream, status=e.status, error=e.reason)
            except Exception as e:
                logger.error("watch_stream_failed", stream=stream, error=str(e), exc_info=True)
            finally:
                self._connected[stream] = False

            if self.running:
                await asyncio.sleep(RECONNECT_DELAY_SECONDS)

    async def start(self):
        """Run both watch streams until stopped."""
        self.running = True
        logger.info("event_watcher_started")
        list_call, kwargs = self._instance_list_call()
        pod_call, pod_kwargs = self._pod_list_call()
        self._tasks = [
            asyncio.create_task(self._watch("instances", list_call, kwargs, instance_key)),
            asyncio.create_task(self._watch("pods", pod_call, pod_kwargs, owner_key)),
        ]
        try:
            await asyncio.gather(*self._tasks)
        finally:
            logger.info("event_watcher_stopped")

    async def stop(self):
        """Stop watching events."""
        logger.info("event_watcher_stopping")
        self.running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
