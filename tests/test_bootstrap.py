"""
Tests for database bootstrap and schema enabling.
"""
from ords_operator.core.constants import (
    REASON_LOGON_DENIED,
    REASON_NO_SECRET,
    REASON_SCHEMA_SKIPPED,
    REASON_WAITING,
)
from ords_operator.core.outcome import PhaseOutcome
from ords_operator.services.bootstrap import bootstrap
from tests.fakes import NAMESPACE, add_database_pod, database_object, instance_object

VALIDATE = "SHOW USER"
PROVISION = "CREATE USER C##DBAPI_CDB_ADMIN"
PDBS = "DBA_PDBS"
SCHEMA_STATUS = "ORDS_METADATA.ORDS_SCHEMAS"
ENABLE = "ORDS.ENABLE_SCHEMA"

SCHEMA_RULE = {"schema": "hr", "pdb": "ORCLPDB1", "enable": True}


async def test_missing_admin_secret_waits_without_creating_accounts(make_ctx, store, executor, recorder):
    add_database_pod(store)
    del store.secrets[(NAMESPACE, "db-admin-secret")]
    ctx = make_ctx()

    outcome = await bootstrap(ctx)

    assert outcome == PhaseOutcome.REQUEUE
    assert ctx.instance.status.status == "Error"
    assert recorder.events == [("Normal", REASON_WAITING, "waiting for secret : db-admin-secret to get created")]
    assert not executor.ran(PROVISION)
    assert ctx.instance.status.common_users_created is False


async def test_database_without_ready_pod_waits(make_ctx, store, executor, recorder):
    add_database_pod(store, ready=False)
    ctx = make_ctx()

    assert await bootstrap(ctx) == PhaseOutcome.REQUEUE
    assert recorder.reasons() == [REASON_WAITING]
    assert executor.commands == []


async def test_database_status_must_be_ready(make_ctx, store, recorder):
    add_database_pod(store)
    store.databases[(NAMESPACE, "sidb")] = database_object(state="Creating")
    ctx = make_ctx()

    assert await bootstrap(ctx) == PhaseOutcome.REQUEUE
    assert recorder.reasons() == [REASON_WAITING]


async def test_valid_password_creates_shared_accounts(make_ctx, store, executor):
    add_database_pod(store)
    executor.respond(VALIDATE, 'USER is "SYS"')
    executor.respond(PROVISION, "User created.\nGrant succeeded.")
    ctx = make_ctx()

    outcome = await bootstrap(ctx)

    assert outcome == PhaseOutcome.CONTINUE
    assert ctx.instance.status.common_users_created is True
    assert ctx.database_pod["metadata"]["name"] == "sidb-xyz12"
    assert all(pod == "sidb-xyz12" for pod, _ in executor.commands)


async def test_existing_accounts_count_as_success(make_ctx, store, executor):
    add_database_pod(store)
    executor.respond(VALIDATE, 'USER is "SYS"')
    executor.respond(PROVISION, "ERROR at line 1:\nORA-01920: user name 'C##DBAPI_CDB_ADMIN' conflicts")
    ctx = make_ctx()

    assert await bootstrap(ctx) == PhaseOutcome.CONTINUE
    assert ctx.instance.status.common_users_created is True


async def test_other_provisioning_errors_requeue(make_ctx, store, executor):
    add_database_pod(store)
    executor.respond(VALIDATE, 'USER is "SYS"')
    executor.respond(PROVISION, "ORA-01920: exists\nORA-01031: insufficient privileges")
    ctx = make_ctx()

    assert await bootstrap(ctx) == PhaseOutcome.REQUEUE
    assert ctx.instance.status.common_users_created is False


async def test_logon_denied_is_a_permanent_error(make_ctx, store, executor, recorder):
    add_database_pod(store)
    executor.respond(VALIDATE, "ERROR:\nORA-01017: invalid username/password; logon denied")
    ctx = make_ctx()

    outcome = await bootstrap(ctx)

    assert outcome == PhaseOutcome.STOP
    assert ctx.instance.status.status == "Error"
    assert recorder.reasons() == [REASON_LOGON_DENIED]
    assert not executor.ran(PROVISION)


async def test_inconclusive_password_check_requeues(make_ctx, store, executor):
    add_database_pod(store)
    executor.respond(VALIDATE, "SP2-0640: Not connected")
    ctx = make_ctx()

    assert await bootstrap(ctx) == PhaseOutcome.REQUEUE
    assert ctx.instance.status.status == ""


async def test_accounts_are_not_recreated_once_latched(make_ctx, store, executor):
    add_database_pod(store)
    ctx = make_ctx(instance_object(status={"commonUsersCreated": True}))

    assert await bootstrap(ctx) == PhaseOutcome.CONTINUE
    assert not executor.ran(VALIDATE)
    assert not executor.ran(PROVISION)


async def test_schema_is_enabled_with_default_url_mapping(make_ctx, store, executor):
    add_database_pod(store)
    executor.respond(PDBS, "ORCLPDB1\nPDB2")
    executor.respond(SCHEMA_STATUS, "no rows selected")
    ctx = make_ctx(instance_object(status={"commonUsersCreated": True}, restEnableSchemas=[SCHEMA_RULE]))

    assert await bootstrap(ctx) == PhaseOutcome.CONTINUE

    enable = [script for _, script in executor.commands if ENABLE in script]
    assert len(enable) == 1
    assert "p_schema => 'HR'" in enable[0]
    assert "p_enabled => TRUE" in enable[0]
    assert "p_url_mapping_pattern => 'hr'" in enable[0]
    assert "OrdsPwd_1" in enable[0]


async def test_schema_already_in_desired_state_is_left_alone(make_ctx, store, executor):
    add_database_pod(store)
    executor.respond(PDBS, "ORCLPDB1")
    executor.respond(SCHEMA_STATUS, "STATUS:ENABLED")
    ctx = make_ctx(instance_object(status={"commonUsersCreated": True}, restEnableSchemas=[SCHEMA_RULE]))

    assert await bootstrap(ctx) == PhaseOutcome.CONTINUE
    assert not executor.ran(ENABLE)


async def test_schema_is_disabled_with_custom_url_mapping(make_ctx, store, executor):
    add_database_pod(store)
    executor.respond(PDBS, "ORCLPDB1")
    executor.respond(SCHEMA_STATUS, "STATUS:ENABLED")
    rule = {"schema": "hr", "pdb": "orclpdb1", "enable": False, "urlMapping": "HumanRes"}
    ctx = make_ctx(instance_object(status={"commonUsersCreated": True}, restEnableSchemas=[rule]))

    assert await bootstrap(ctx) == PhaseOutcome.CONTINUE

    enable = [script for _, script in executor.commands if ENABLE in script]
    assert "p_enabled => FALSE" in enable[0]
    assert "p_url_mapping_pattern => 'humanres'" in enable[0]


async def test_schema_in_missing_pdb_is_skipped_with_warning(make_ctx, store, executor, recorder):
    add_database_pod(store)
    executor.respond(PDBS, "ORCLPDB1")
    rule = {"schema": "hr", "pdb": "SALESPDB", "enable": True}
    ctx = make_ctx(instance_object(status={"commonUsersCreated": True}, restEnableSchemas=[rule]))

    assert await bootstrap(ctx) == PhaseOutcome.CONTINUE
    assert recorder.events[0][:2] == ("Warning", REASON_SCHEMA_SKIPPED)
    assert not executor.ran(SCHEMA_STATUS)


async def test_schema_enable_without_ords_secret_requeues(make_ctx, store, executor, recorder):
    add_database_pod(store)
    del store.secrets[(NAMESPACE, "ords-secret")]
    executor.respond(PDBS, "ORCLPDB1")
    executor.respond(SCHEMA_STATUS, "no rows selected")
    ctx = make_ctx(instance_object(status={"commonUsersCreated": True}, restEnableSchemas=[SCHEMA_RULE]))

    assert await bootstrap(ctx) == PhaseOutcome.REQUEUE
    assert recorder.reasons() == [REASON_NO_SECRET]
    assert not executor.ran(ENABLE)
