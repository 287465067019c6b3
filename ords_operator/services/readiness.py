"""
Readiness Prober.

Selects the ready workload pod and probes the REST endpoint inside it.
"""
from ords_operator.core.constants import HEALTHY_MARKER
from ords_operator.core.outcome import PhaseOutcome
from ords_operator.core.scripts import GET_ORDS_STATUS_CMD
from ords_operator.core.state_machine import ServiceState
from ords_operator.exceptions import KubernetesError, RemoteCommandError
from ords_operator.services.context import ReconcileContext
from ords_operator.services.executor import has_error_marker
from ords_operator.services.pods import find_pods, pod_name


def classify_health(output: str) -> ServiceState:
    """
    Map probe output to a state.

    An error marker wins over the success line; anything without the
    success line is not ready.
    """
    if has_error_marker(output):
        return ServiceState.NOT_READY
    if HEALTHY_MARKER in output:
        return ServiceState.READY
    return ServiceState.NOT_READY


async def probe(ctx: ReconcileContext) -> PhaseOutcome:
    """Run the health check; sets the installed latch on success."""
    instance = ctx.instance
    image = instance.spec.image
    log = ctx.log.bind(phase="readiness")

    try:
        pods = await find_pods(ctx.store, ctx.namespace, instance.name, image.pull_from, image.version)
    except KubernetesError as e:
        log.error("pod_discovery_failed", error=str(e))
        return PhaseOutcome.REQUEUE
    if pods.ready is None:
        log.info("no_ready_pod")
        return PhaseOutcome.REQUEUE
    ctx.ready_pod = pods.ready

    pod = pod_name(pods.ready)
    try:
        output = await ctx.executor.run(pod, ctx.namespace, GET_ORDS_STATUS_CMD)
    except RemoteCommandError as e:
        # curl reports through stderr, so a failed exec may still carry the answer
        output = f"{e.output}\n{e.message}"

    state = classify_health(output)
    ctx.set_state(state)
    if state is not ServiceState.READY:
        log.info("health_check_failed", pod=pod)
        return PhaseOutcome.REQUEUE

    if not instance.status.ords_installed:
        log.info("ords_installed", pod=pod)
    instance.status.ords_installed = True
    return PhaseOutcome.CONTINUE
