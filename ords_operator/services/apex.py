"""
APEX Installation phase.

Installs APEX into the primary database from the workload pod, applies the
APEX user credentials to the ORDS configuration and restarts the pod so the
new configuration is read at process start.
"""
from ords_operator.core.constants import (
    APEX_VERSION_MARKER,
    REASON_INSTALLED_APEX,
    REASON_INSTALLING_APEX,
    REASON_WAITING,
)
from ords_operator.core.outcome import PhaseOutcome
from ords_operator.core.scripts import INSTALL_APEX_CMD, IS_APEX_INSTALLED_CMD, SET_APEX_USERS_CMD
from ords_operator.core.state_machine import ServiceState
from ords_operator.exceptions import KubernetesError, RemoteCommandError
from ords_operator.services.context import ReconcileContext
from ords_operator.services.executor import has_error_marker
from ords_operator.services.pods import pod_name


async def install_apex(ctx: ReconcileContext, pod: str, apex_password: str) -> PhaseOutcome:
    """Install APEX into the pluggable database and verify the registry entry."""
    instance = ctx.instance
    log = ctx.log.bind(phase="apex", pod=pod)

    ref = instance.spec.admin_password
    admin_password = await ctx.read_password(ref)
    if admin_password is None:
        ctx.set_state(ServiceState.ERROR)
        await ctx.recorder.normal(instance, REASON_WAITING, f"waiting for secret : {ref.secret_name} to get created")
        return PhaseOutcome.REQUEUE

    ctx.set_state(ServiceState.UPDATING)
    await ctx.persist_instance_status()
    await ctx.recorder.normal(instance, REASON_INSTALLING_APEX, "Installing APEX in the database")

    pdb = ctx.database.status.pdb_name
    try:
        output = await ctx.executor.run(
            pod, ctx.namespace,
            INSTALL_APEX_CMD.format(apex_password=apex_password, admin_password=admin_password, pdb=pdb),
            redact=True,
        )
        log.info("apex_install_finished", output_length=len(output))
    except RemoteCommandError as e:
        log.error("apex_install_failed", error=e.message)

    try:
        output = await ctx.executor.run(
            pod, ctx.namespace,
            IS_APEX_INSTALLED_CMD.format(admin_password=admin_password, pdb=pdb),
            redact=True,
        )
    except RemoteCommandError as e:
        log.warning("apex_verification_failed", error=e.message)
        return PhaseOutcome.REQUEUE
    if APEX_VERSION_MARKER not in output:
        log.info("apex_not_installed", output=output)
        return PhaseOutcome.REQUEUE

    ctx.set_state(ServiceState.READY)
    await ctx.recorder.normal(instance, REASON_INSTALLED_APEX, "APEX installed in the database")
    ctx.database.status.apex_installed = True
    return PhaseOutcome.CONTINUE


async def configure_apex(ctx: ReconcileContext) -> PhaseOutcome:
    """Run the APEX phase; a no-op once configured or when no APEX secret is named."""
    instance = ctx.instance
    status = instance.status
    ref = instance.spec.apex_password
    log = ctx.log.bind(phase="apex")

    if not ref.secret_name:
        status.apex_configured = False
        return PhaseOutcome.CONTINUE
    if status.apex_configured:
        return PhaseOutcome.CONTINUE
    if ctx.ready_pod is None:
        return PhaseOutcome.REQUEUE
    pod = pod_name(ctx.ready_pod)

    try:
        apex_password = await ctx.read_password(ref)
        if apex_password is None:
            ctx.set_state(ServiceState.ERROR)
            await ctx.recorder.normal(instance, REASON_WAITING, f"waiting for secret : {ref.secret_name} to get created")
            return PhaseOutcome.REQUEUE

        if not ctx.database.status.apex_installed:
            outcome = await install_apex(ctx, pod, apex_password)
            if outcome.stops:
                return outcome
    except KubernetesError as e:
        log.error("secret_lookup_failed", error=str(e))
        return PhaseOutcome.REQUEUE

    try:
        output = await ctx.executor.run(
            pod, ctx.namespace, SET_APEX_USERS_CMD.format(apex_password=apex_password), redact=True,
        )
    except RemoteCommandError as e:
        log.warning("apex_users_update_failed", error=e.message)
        return PhaseOutcome.REQUEUE
    if has_error_marker(output):
        log.warning("apex_users_update_failed", output=output)
        return PhaseOutcome.REQUEUE

    # The pod reads the new pool configuration only at start
    try:
        await ctx.store.delete_pod(ctx.namespace, pod, force=True)
    except KubernetesError as e:
        log.error("pod_restart_failed", pod=pod, error=str(e))
        return PhaseOutcome.REQUEUE

    log.info("apex_configured", restarted_pod=pod)
    status.apex_configured = True
    await ctx.persist_instance_status()
    return PhaseOutcome.CONTINUE
