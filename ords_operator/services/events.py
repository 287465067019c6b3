"""
Event recording service.
Emits Kubernetes Events against an OracleRestDataService and mirrors them to the log.
"""
from datetime import datetime, timezone
from typing import Any, Dict

from ords_operator.config.logging import get_logger
from ords_operator.core.constants import (
    CRD_GROUP,
    CRD_VERSION,
    EVENT_NORMAL,
    EVENT_WARNING,
    SERVICE_KIND,
)
from ords_operator.exceptions import KubernetesError
from ords_operator.models import ServiceInstance

logger = get_logger(__name__)

COMPONENT = "oraclerestdataservice-controller"


class EventRecorder:
    """Records events; failures to record are logged and never raised."""

    def __init__(self, store):
        self.store = store

    def _event_body(self, instance: ServiceInstance, event_type: str, reason: str, message: str) -> Dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        return {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {
                "generateName": f"{instance.name}.",
                "namespace": instance.namespace,
            },
            "involvedObject": {
                "apiVersion": f"{CRD_GROUP}/{CRD_VERSION}",
                "kind": SERVICE_KIND,
                "name": instance.name,
                "namespace": instance.namespace,
                "uid": instance.metadata.uid,
                "resourceVersion": instance.metadata.resource_version,
            },
            "type": event_type,
            "reason": reason,
            "message": message,
            "source": {"component": COMPONENT},
            "reportingComponent": COMPONENT,
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }

    async def record(self, instance: ServiceInstance, event_type: str, reason: str, message: str) -> None:
        """
        Record one event.

        Args:
            instance: Object the event is about
            event_type: "Normal" or "Warning"
            reason: Short machine-readable reason
            message: Human-readable message
        """
        log = logger.warning if event_type == EVENT_WARNING else logger.info
        log("event_recorded", instance=instance.key, event_type=event_type, reason=reason, message=message)
        try:
            await self.store.create_event(
                instance.namespace,
                self._event_body(instance, event_type, reason, message),
            )
        except KubernetesError as e:
            logger.warning("event_record_failed", instance=instance.key, reason=reason, error=str(e))

    async def normal(self, instance: ServiceInstance, reason: str, message: str) -> None:
        await self.record(instance, EVENT_NORMAL, reason, message)

    async def warning(self, instance: ServiceInstance, reason: str, message: str) -> None:
        await self.record(instance, EVENT_WARNING, reason, message)
