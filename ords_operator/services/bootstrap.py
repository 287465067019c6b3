"""
Database Bootstrap and Schema Enable phase.

Runs SQL*Plus inside the primary database pod to validate the admin
credential, create the shared administrative accounts once, and apply the
per-schema REST enable rules on every pass.
"""
from typing import Optional

from ords_operator.core.constants import (
    LOGON_DENIED_CODE,
    REASON_LOGON_DENIED,
    REASON_NO_SECRET,
    REASON_SCHEMA_SKIPPED,
    REASON_WAITING,
    SCHEMA_ENABLED_MARKER,
    SYS_USER_MARKER,
    USER_EXISTS_CODE,
)
from ords_operator.core.outcome import PhaseOutcome
from ords_operator.core.scripts import (
    ENABLE_SCHEMA_SQL,
    GET_PDBS_SQL,
    GET_SCHEMA_STATUS_SQL,
    SET_ADMIN_USERS_SQL,
    VALIDATE_ADMIN_PASSWORD_SQL,
)
from ords_operator.core.state_machine import ServiceState
from ords_operator.exceptions import KubernetesError, RemoteCommandError
from ords_operator.models import RestEnableSchema
from ords_operator.services.context import ReconcileContext
from ords_operator.services.executor import succeeded_ignoring
from ords_operator.services.pods import find_database_pod, pod_name


async def locate_database_pod(ctx: ReconcileContext) -> Optional[dict]:
    """
    Ready pod of the primary database, None while the database is not usable.

    Both a ready pod and a ready database status are required.
    """
    if not ctx.database.is_ready:
        return None
    return await find_database_pod(ctx.store, ctx.database)


async def create_shared_accounts(ctx: ReconcileContext, pod: str) -> PhaseOutcome:
    """Validate the admin password, then create the common admin users."""
    instance = ctx.instance
    ref = instance.spec.admin_password
    log = ctx.log.bind(phase="bootstrap", pod=pod)

    password = await ctx.read_password(ref)
    if password is None:
        ctx.set_state(ServiceState.ERROR)
        await ctx.recorder.normal(instance, REASON_WAITING, f"waiting for secret : {ref.secret_name} to get created")
        return PhaseOutcome.REQUEUE

    try:
        output = await ctx.executor.run_sql(
            pod, ctx.database.namespace, VALIDATE_ADMIN_PASSWORD_SQL.format(password=password), redact=True,
        )
    except RemoteCommandError as e:
        log.warning("admin_password_check_failed", error=e.message)
        return PhaseOutcome.REQUEUE

    if SYS_USER_MARKER not in output:
        if LOGON_DENIED_CODE in output:
            ctx.set_state(ServiceState.ERROR)
            await ctx.recorder.warning(
                instance, REASON_LOGON_DENIED,
                f"{LOGON_DENIED_CODE}: invalid username/password; logon denied for {ref.secret_name}",
            )
            return PhaseOutcome.STOP
        log.info("admin_password_check_inconclusive")
        return PhaseOutcome.REQUEUE

    try:
        output = await ctx.executor.run_sql(
            pod, ctx.database.namespace, SET_ADMIN_USERS_SQL.format(password=password), redact=True,
        )
    except RemoteCommandError as e:
        log.warning("shared_accounts_creation_failed", error=e.message)
        return PhaseOutcome.REQUEUE

    if not succeeded_ignoring(output, {USER_EXISTS_CODE}):
        log.warning("shared_accounts_creation_failed", output=output)
        return PhaseOutcome.REQUEUE

    log.info("shared_accounts_created")
    instance.status.common_users_created = True
    return PhaseOutcome.CONTINUE


async def apply_schema_rule(ctx: ReconcileContext, pod: str, pdbs: str, rule: RestEnableSchema) -> PhaseOutcome:
    """Enable or disable REST access for one schema unless it already matches."""
    instance = ctx.instance
    namespace = ctx.database.namespace
    log = ctx.log.bind(phase="schemas", schema=rule.schema_name, pdb=rule.pdb)

    if rule.pdb.upper() not in pdbs.upper():
        await ctx.recorder.warning(
            instance, REASON_SCHEMA_SKIPPED,
            f"Skipping schema {rule.schema_name}: PDB {rule.pdb} not found",
        )
        return PhaseOutcome.CONTINUE

    try:
        current = await ctx.executor.run_sql(
            pod, namespace, GET_SCHEMA_STATUS_SQL.format(pdb=rule.pdb, schema=rule.schema_name),
        )
    except RemoteCommandError as e:
        log.warning("schema_status_query_failed", error=e.message)
        return PhaseOutcome.REQUEUE

    if (SCHEMA_ENABLED_MARKER in current) == rule.enable:
        log.debug("schema_already_in_state", enable=rule.enable)
        return PhaseOutcome.CONTINUE

    ref = instance.spec.ords_password
    password = await ctx.read_password(ref)
    if password is None:
        await ctx.recorder.normal(instance, REASON_NO_SECRET, f"secret {ref.secret_name} not found")
        return PhaseOutcome.REQUEUE

    sql = ENABLE_SCHEMA_SQL.format(
        pdb=rule.pdb,
        schema=rule.schema_name.upper(),
        password=password,
        enabled="TRUE" if rule.enable else "FALSE",
        url_mapping=rule.url_pattern,
    )
    try:
        output = await ctx.executor.run_sql(pod, namespace, sql, redact=True)
    except RemoteCommandError as e:
        log.warning("schema_enable_failed", error=e.message)
        return PhaseOutcome.REQUEUE

    log.info("schema_rest_access_applied", enable=rule.enable, url_mapping=rule.url_pattern, output=output)
    return PhaseOutcome.CONTINUE


async def enable_schemas(ctx: ReconcileContext, pod: str) -> PhaseOutcome:
    rules = ctx.instance.spec.rest_enable_schemas
    if not rules:
        return PhaseOutcome.CONTINUE

    try:
        pdbs = await ctx.executor.run_sql(pod, ctx.database.namespace, GET_PDBS_SQL)
    except RemoteCommandError as e:
        ctx.log.warning("pdb_query_failed", error=e.message)
        return PhaseOutcome.REQUEUE

    for rule in rules:
        outcome = await apply_schema_rule(ctx, pod, pdbs, rule)
        if outcome.stops:
            return outcome
    return PhaseOutcome.CONTINUE


async def bootstrap(ctx: ReconcileContext) -> PhaseOutcome:
    """Shared accounts while the latch is unset, then the schema rules."""
    instance = ctx.instance
    log = ctx.log.bind(phase="bootstrap")

    try:
        ctx.database_pod = await locate_database_pod(ctx)
    except KubernetesError as e:
        log.error("database_pod_discovery_failed", error=str(e))
        return PhaseOutcome.REQUEUE
    if ctx.database_pod is None:
        await ctx.recorder.normal(
            instance, REASON_WAITING, f"waiting for database {ctx.database.name} to be ready",
        )
        return PhaseOutcome.REQUEUE
    pod = pod_name(ctx.database_pod)

    try:
        if not instance.status.common_users_created:
            outcome = await create_shared_accounts(ctx, pod)
            if outcome.stops:
                return outcome
        return await enable_schemas(ctx, pod)
    except KubernetesError as e:
        log.error("secret_lookup_failed", error=str(e))
        return PhaseOutcome.REQUEUE
