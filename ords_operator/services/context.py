"""
Per-pass reconcile context shared by all phases.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from ords_operator.config.logging import get_logger
from ords_operator.config.settings import Settings
from ords_operator.core.state_machine import ServiceState, ServiceStateMachine
from ords_operator.exceptions import KubernetesError
from ords_operator.models import PasswordSpec, PrimaryDatabase, ServiceInstance
from ords_operator.services.events import EventRecorder
from ords_operator.utils.naming import decode_secret_value

logger = get_logger(__name__)


@dataclass
class ReconcileContext:
    """
    Everything one reconcile pass works on.

    ``database_pod`` and ``ready_pod`` are filled in by the phases that
    locate them and read by the phases that run after.
    """

    instance: ServiceInstance
    database: PrimaryDatabase
    store: Any
    executor: Any
    recorder: EventRecorder
    settings: Settings
    database_pod: Optional[Dict[str, Any]] = None
    ready_pod: Optional[Dict[str, Any]] = None

    @property
    def log(self) -> structlog.stdlib.BoundLogger:
        return logger.bind(instance=self.instance.key)

    @property
    def namespace(self) -> str:
        return self.instance.namespace

    @property
    def state(self) -> ServiceState:
        return ServiceStateMachine.parse(self.instance.status.status) or ServiceState.PENDING

    def set_state(self, state: ServiceState) -> None:
        """Move the status state machine; invalid transitions raise ValueError."""
        ServiceStateMachine.validate_transition(self.state, state, instance=self.instance.key)
        self.instance.status.status = state.value

    async def read_secret(self, name: str, key: str) -> Optional[str]:
        """
        Value of ``key`` in Secret ``name``; None when the secret is absent.

        Raises:
            KubernetesError: On API failures other than not-found
        """
        secret = await self.store.get_secret(self.namespace, name)
        if secret is None:
            return None
        return decode_secret_value(secret, key)

    async def read_password(self, ref: PasswordSpec) -> Optional[str]:
        return await self.read_secret(ref.secret_name, ref.secret_key)

    async def persist_instance_status(self) -> bool:
        """Best-effort status write of the instance; failures are logged only."""
        try:
            written = await self.store.update_instance_status(self.instance.to_object())
        except KubernetesError as e:
            self.log.warning("instance_status_update_failed", error=str(e), status=e.status)
            return False
        self.instance.observe_write(written)
        return True

    async def persist_database_status(self) -> bool:
        """Best-effort merge patch of the database status fields owned here."""
        try:
            await self.store.patch_database_status(
                self.database.namespace,
                self.database.name,
                self.database.owned_status_body(),
            )
        except KubernetesError as e:
            self.log.warning("database_status_update_failed", database=self.database.name, error=str(e))
            return False
        return True
