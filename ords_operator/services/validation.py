"""
Validation phase.

Initialises unset status fields, checks the image pull secret, checks that
the persistence request is compatible with the primary database volume,
and enforces that databaseRef, loadBalancer and image never change once
recorded in status.
"""
from typing import List

from ords_operator.core.constants import REASON_SPEC_ERROR, VALUE_UNAVAILABLE
from ords_operator.core.outcome import PhaseOutcome
from ords_operator.core.state_machine import ServiceState
from ords_operator.exceptions import KubernetesError, SpecValidationError
from ords_operator.services.context import ReconcileContext

SINGLE_WRITER_ACCESS_MODE = "ReadWriteOnce"


def initialize_status(ctx: ReconcileContext) -> None:
    """Fill unset status fields with their sentinel values."""
    status = ctx.instance.status
    if not status.status:
        status.status = ServiceState.PENDING.value
    if not status.apex_url:
        status.apex_url = VALUE_UNAVAILABLE
    if not status.database_api_url:
        status.database_api_url = VALUE_UNAVAILABLE
    if not status.database_actions_url:
        status.database_actions_url = VALUE_UNAVAILABLE


def collect_violations(ctx: ReconcileContext) -> List[str]:
    """Spec rules only a spec change can satisfy."""
    spec = ctx.instance.spec
    status = ctx.instance.status
    violations = []

    # Sharing a single-writer volume needs a dedicated claim for the service
    if ctx.database.spec.persistence.access_mode == SINGLE_WRITER_ACCESS_MODE and not spec.persistence.size:
        violations.append(
            f"ords can be installed only on ReadWriteMany Access Mode of : {spec.database_ref}"
        )
    if status.database_ref and status.database_ref != spec.database_ref:
        violations.append("databaseRef cannot be updated")
    if status.load_balancer and status.load_balancer != _bool_str(spec.load_balancer):
        violations.append("service patching is not available currently")
    if status.image.pull_from and status.image != spec.image:
        violations.append("image patching is not available currently")
    return violations


async def validate(ctx: ReconcileContext) -> PhaseOutcome:
    """
    Run the validation phase.

    Returns:
        CONTINUE when the spec is acceptable, REQUEUE when the pull secret is
        missing or unreadable, STOP on spec violations (a spec fix re-triggers
        the pass through the watch).
    """
    instance = ctx.instance
    spec = instance.spec
    log = ctx.log.bind(phase="validation")

    initialize_status(ctx)

    if spec.image.pull_secrets:
        try:
            secret = await ctx.store.get_secret(ctx.namespace, spec.image.pull_secrets)
        except KubernetesError as e:
            log.error("pull_secret_lookup_failed", secret=spec.image.pull_secrets, error=str(e))
            return PhaseOutcome.REQUEUE
        if secret is None:
            ctx.set_state(ServiceState.ERROR)
            await ctx.recorder.warning(
                instance, REASON_SPEC_ERROR,
                f"image pull secret {spec.image.pull_secrets} not found",
            )
            return PhaseOutcome.REQUEUE

    violations = collect_violations(ctx)
    if violations:
        error = SpecValidationError(violations)
        ctx.set_state(ServiceState.ERROR)
        await ctx.recorder.warning(instance, REASON_SPEC_ERROR, error.message)
        log.info("spec_validation_failed", violations=violations)
        return PhaseOutcome.STOP

    instance.status.database_ref = spec.database_ref
    instance.status.load_balancer = _bool_str(spec.load_balancer)
    instance.status.image = spec.image.model_copy()
    return PhaseOutcome.CONTINUE


def _bool_str(value: bool) -> str:
    return "true" if value else "false"
