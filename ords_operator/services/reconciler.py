"""
Reconcile Orchestrator.

One pass for one OracleRestDataService identity: fetch the instance and its
primary database, route to teardown when deletion is requested, otherwise
run the phases in their fixed order and persist both statuses on the way
out. The dispatcher guarantees no two passes for the same identity overlap.
"""
import time
from typing import Awaitable, Callable, List, Tuple

import structlog

from ords_operator.config.logging import get_logger
from ords_operator.config.settings import Settings
from ords_operator.core.constants import REASON_WAITING
from ords_operator.core.outcome import PhaseOutcome
from ords_operator.exceptions import KubernetesError
from ords_operator.models import PrimaryDatabase, ServiceInstance
from ords_operator.services import metrics
from ords_operator.services.apex import configure_apex
from ords_operator.services.bootstrap import bootstrap
from ords_operator.services.context import ReconcileContext
from ords_operator.services.converger import converge
from ords_operator.services.events import EventRecorder
from ords_operator.services.readiness import probe
from ords_operator.services.teardown import finalize, release_credentials
from ords_operator.services.validation import validate

logger = get_logger(__name__)

Phase = Callable[[ReconcileContext], Awaitable[PhaseOutcome]]

PHASES: List[Tuple[str, Phase]] = [
    ("validation", validate),
    ("converge", converge),
    ("readiness", probe),
    ("bootstrap", bootstrap),
    ("apex", configure_apex),
]


class ServiceReconciler:
    """Drives one OracleRestDataService towards its declared state per call."""

    def __init__(self, store, executor, recorder: EventRecorder, settings: Settings):
        self.store = store
        self.executor = executor
        self.recorder = recorder
        self.settings = settings

    async def reconcile(self, namespace: str, name: str) -> PhaseOutcome:
        """
        Run one pass.

        Returns:
            REQUEUE when the dispatcher should call back after the fixed
            delay, otherwise STOP (or CONTINUE for a fully converged pass)

        Raises:
            KubernetesError: If the instance or database cannot be fetched
        """
        started = time.monotonic()
        structlog.contextvars.bind_contextvars(instance=f"{namespace}/{name}")
        try:
            outcome = await self._reconcile(namespace, name)
        finally:
            metrics.reconcile_duration_seconds.observe(time.monotonic() - started)
            structlog.contextvars.unbind_contextvars("instance")
        metrics.reconcile_total.labels(outcome=outcome.value).inc()
        return outcome

    async def _reconcile(self, namespace: str, name: str) -> PhaseOutcome:
        obj = await self.store.get_instance(namespace, name)
        if obj is None:
            logger.info("instance_not_found", namespace=namespace, name=name)
            return PhaseOutcome.STOP
        instance = ServiceInstance.from_object(obj)

        db_obj = await self.store.get_database(namespace, instance.spec.database_ref)
        if db_obj is None:
            if instance.deletion_requested:
                return await self._drop_finalizer(instance)
            await self.recorder.normal(
                instance, REASON_WAITING, f"waiting for database {instance.spec.database_ref}",
            )
            return PhaseOutcome.REQUEUE
        database = PrimaryDatabase.from_object(db_obj)

        ctx = ReconcileContext(
            instance=instance,
            database=database,
            store=self.store,
            executor=self.executor,
            recorder=self.recorder,
            settings=self.settings,
        )

        if instance.deletion_requested:
            outcome = await finalize(ctx)
            if instance.has_finalizer:
                await ctx.persist_instance_status()
            return outcome

        if not instance.has_finalizer:
            instance.add_finalizer()
            try:
                instance.observe_write(await self.store.update_instance(instance.to_object()))
            except KubernetesError as e:
                ctx.log.warning("finalizer_add_failed", error=str(e), status=e.status)
                return PhaseOutcome.REQUEUE
            ctx.log.info("finalizer_added")

        try:
            outcome = await self._run_phases(ctx)
        finally:
            await ctx.persist_instance_status()
            await ctx.persist_database_status()
        return outcome

    async def _drop_finalizer(self, instance: ServiceInstance) -> PhaseOutcome:
        """Release an instance whose primary database is already gone; nothing remote is left to clean."""
        if not instance.has_finalizer:
            return PhaseOutcome.STOP
        instance.remove_finalizer()
        try:
            await self.store.update_instance(instance.to_object())
        except KubernetesError as e:
            logger.warning("finalizer_removal_failed", instance=instance.key, error=str(e))
            return PhaseOutcome.REQUEUE
        logger.info("finalizer_removed_without_database", instance=instance.key)
        return PhaseOutcome.STOP

    async def _run_phases(self, ctx: ReconcileContext) -> PhaseOutcome:
        for phase_name, phase in PHASES:
            outcome = await phase(ctx)
            if outcome.stops:
                ctx.log.info("phase_stopped", phase=phase_name, outcome=outcome.value)
                return outcome

        await release_credentials(ctx)

        if not ctx.instance.status.service_ip:
            ctx.log.info("service_address_pending")
            return PhaseOutcome.REQUEUE
        ctx.log.info("reconcile_converged", status=ctx.instance.status.status)
        return PhaseOutcome.CONTINUE
