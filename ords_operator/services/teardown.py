"""
Finalizer / Teardown Manager.

Ordered cleanup run when deletion of an OracleRestDataService is requested:

1. Kill the ORDS sessions in the primary database
2. Uninstall ORDS from the database (an error here blocks deletion)
3. Drop the shared administrative accounts
4. Delete the workload pod and, unless kept, the admin secret
5. Clear the back-reference in the primary database status
6. Remove the finalizer

Also holds the credential release run after a fully successful pass.
"""
from ords_operator.core.constants import ORA_MARKER, REASON_NO_READY_POD, REASON_WAITING
from ords_operator.core.outcome import PhaseOutcome
from ords_operator.core.scripts import (
    DROP_ADMIN_USERS_SQL,
    GET_SESSION_INFO_SQL,
    UNINSTALL_ORDS_CMD,
    kill_sessions_sql,
    parse_session_rows,
)
from ords_operator.exceptions import CleanupError, KubernetesError, RemoteCommandError
from ords_operator.services.context import ReconcileContext
from ords_operator.services.executor import has_error_marker
from ords_operator.services.pods import find_database_pod, find_pods, pod_name
from ords_operator.utils.naming import decode_secret_value
from ords_operator.utils.retry import retry_until_found, retry_until_success


async def kill_sessions(ctx: ReconcileContext, database_pod: str) -> None:
    """Force-kill every session held by the ORDS user."""
    namespace = ctx.database.namespace
    user = ctx.instance.spec.resolved_ords_user
    try:
        output = await ctx.executor.run_sql(database_pod, namespace, GET_SESSION_INFO_SQL.format(user=user))
        sessions = parse_session_rows(output)
        ctx.log.info("ords_sessions_found", user=user, sessions=len(sessions))
        if sessions:
            output = await ctx.executor.run_sql(database_pod, namespace, kill_sessions_sql(sessions))
            ctx.log.info("ords_sessions_killed", output=output)
    except RemoteCommandError as e:
        raise CleanupError("kill_sessions", e.message) from e


async def fetch_admin_secret(ctx: ReconcileContext):
    """
    Admin secret with a bounded retry.

    Another process may be deleting or recreating the secret while the
    instance is torn down; each miss is reported as a waiting event.
    """
    instance = ctx.instance
    ref = instance.spec.admin_password

    async def fetch():
        secret = await ctx.store.get_secret(ctx.database.namespace, ref.secret_name)
        if secret is None:
            await ctx.recorder.normal(
                instance, REASON_WAITING,
                f"waiting for admin password secret : {ref.secret_name} to get created",
            )
        return secret

    return await retry_until_found(
        fetch,
        attempts=ctx.settings.secret_lookup_attempts,
        delay=ctx.settings.secret_lookup_delay_seconds,
        on_miss=lambda attempt: ctx.log.info("admin_secret_missing", secret=ref.secret_name, attempt=attempt),
    )


async def cleanup(ctx: ReconcileContext) -> None:
    """
    Remove the database-side state of an installed service.

    Raises:
        CleanupError: If a step fails in a way that must block deletion
        KubernetesError: On object-store failures
    """
    instance = ctx.instance
    log = ctx.log.bind(phase="teardown")

    # A ready pod suffices; the database status is not consulted
    database_pod = await find_database_pod(ctx.store, ctx.database)
    if database_pod is None:
        await ctx.recorder.normal(
            instance, REASON_NO_READY_POD,
            f"omitting ORDS uninstallation as no ready pod of {ctx.database.name} is available",
        )
        return
    db_pod = pod_name(database_pod)

    await kill_sessions(ctx, db_pod)

    admin_secret = await fetch_admin_secret(ctx)

    image = instance.spec.image
    pods = await find_pods(ctx.store, ctx.namespace, instance.name, image.pull_from, image.version)
    ready = pod_name(pods.ready) if pods.ready else ""

    if admin_secret is not None and ready:
        password = decode_secret_value(admin_secret, instance.spec.admin_password.secret_key)
        try:
            output = await ctx.executor.run(ready, ctx.namespace, UNINSTALL_ORDS_CMD.format(password=password), redact=True)
        except RemoteCommandError as e:
            output = e.output
            log.info("ords_uninstall_exec_error", error=e.message)
        if has_error_marker(output) or ORA_MARKER in output:
            raise CleanupError("uninstall_ords", output)
        log.info("ords_uninstalled", pod=ready)

    try:
        output = await ctx.executor.run_sql(db_pod, ctx.database.namespace, DROP_ADMIN_USERS_SQL)
        log.info("shared_accounts_dropped", output=output)
    except RemoteCommandError as e:
        log.info("shared_accounts_drop_failed", error=e.message)

    if ready:
        try:
            await ctx.store.delete_pod(ctx.namespace, ready, force=True)
        except KubernetesError as e:
            log.warning("pod_delete_failed", pod=ready, error=str(e))

    if admin_secret is not None and not instance.spec.admin_password.keep_secret:
        name = instance.spec.admin_password.secret_name
        try:
            await ctx.store.delete_secret(ctx.database.namespace, name)
            log.info("admin_secret_deleted", secret=name)
        except KubernetesError as e:
            log.warning("admin_secret_delete_failed", secret=name, error=str(e))


async def finalize(ctx: ReconcileContext) -> PhaseOutcome:
    """
    Teardown entry point for an instance marked for deletion.

    Returns:
        STOP once the finalizer is gone, REQUEUE while any step is failing
    """
    instance = ctx.instance
    log = ctx.log.bind(phase="teardown")

    if not instance.has_finalizer:
        return PhaseOutcome.STOP

    if instance.status.ords_installed:
        try:
            await cleanup(ctx)
        except CleanupError as e:
            log.error("cleanup_failed", step=e.step, reason=e.reason)
            return PhaseOutcome.REQUEUE
        except KubernetesError as e:
            log.error("cleanup_failed", error=str(e))
            return PhaseOutcome.REQUEUE

    async def clear_reference():
        ctx.database.status.ords_reference = ""
        await ctx.store.patch_database_status(
            ctx.database.namespace, ctx.database.name, ctx.database.owned_status_body(),
        )

    cleared = await retry_until_success(
        clear_reference,
        attempts=ctx.settings.status_update_attempts,
        delay=ctx.settings.status_update_delay_seconds,
        operation="clear_ords_reference",
    )
    if not cleared:
        return PhaseOutcome.REQUEUE

    instance.remove_finalizer()
    try:
        written = await ctx.store.update_instance(instance.to_object())
    except KubernetesError as e:
        log.error("finalizer_removal_failed", error=str(e))
        instance.add_finalizer()
        return PhaseOutcome.REQUEUE
    instance.observe_write(written)
    log.info("finalizer_removed")
    return PhaseOutcome.STOP


async def release_credentials(ctx: ReconcileContext) -> None:
    """Delete the credential secrets the user asked not to keep."""
    spec = ctx.instance.spec
    for ref in (spec.admin_password, spec.ords_password, spec.apex_password):
        if not ref.secret_name or ref.keep_secret:
            continue
        try:
            if await ctx.store.get_secret(ctx.namespace, ref.secret_name) is None:
                continue
            await ctx.store.delete_secret(ctx.namespace, ref.secret_name)
            ctx.log.info("credential_secret_released", secret=ref.secret_name)
        except KubernetesError as e:
            ctx.log.warning("credential_secret_release_failed", secret=ref.secret_name, error=str(e))
