"""
Tests for the APEX installation phase.
"""
from ords_operator.core.constants import REASON_INSTALLED_APEX, REASON_INSTALLING_APEX, REASON_WAITING
from ords_operator.core.outcome import PhaseOutcome
from ords_operator.services.apex import configure_apex
from tests.fakes import NAMESPACE, add_ords_pod, database_object, instance_object, secret_object

INSTALL = "apexins.sql"
VERIFY = "DBA_REGISTRY"
SET_USERS = "plsql.gateway.mode"

APEX_SPEC = {"apexPassword": {"secretName": "apex-secret"}}


def with_apex_secret(store):
    store.secrets[(NAMESPACE, "apex-secret")] = secret_object("apex-secret", "ApexPwd_1")


async def test_no_apex_secret_name_forces_latch_false(make_ctx, store, executor):
    add_ords_pod(store)
    ctx = make_ctx(instance_object(status={"apexConfigured": True}))
    ctx.ready_pod = store.pods[(NAMESPACE, "ords-abcde")]

    for _ in range(2):
        assert await configure_apex(ctx) == PhaseOutcome.CONTINUE

    assert ctx.instance.status.apex_configured is False
    assert executor.commands == []
    assert store.calls == []


async def test_configured_apex_is_a_no_op(make_ctx, store, executor):
    with_apex_secret(store)
    ctx = make_ctx(instance_object(status={"apexConfigured": True}, **APEX_SPEC))
    ctx.ready_pod = add_ords_pod(store)

    assert await configure_apex(ctx) == PhaseOutcome.CONTINUE
    assert ctx.instance.status.apex_configured is True
    assert executor.commands == []


async def test_missing_apex_secret_waits(make_ctx, store, executor, recorder):
    ctx = make_ctx(instance_object(**APEX_SPEC))
    ctx.ready_pod = add_ords_pod(store)

    assert await configure_apex(ctx) == PhaseOutcome.REQUEUE
    assert ctx.instance.status.status == "Error"
    assert recorder.events == [("Normal", REASON_WAITING, "waiting for secret : apex-secret to get created")]
    assert executor.commands == []


async def test_install_configure_and_restart(make_ctx, store, executor, recorder):
    with_apex_secret(store)
    executor.respond(VERIFY, "APEXVERSION:21.1.0")
    ctx = make_ctx(instance_object(status={"status": "Ready"}, **APEX_SPEC))
    ctx.ready_pod = add_ords_pod(store)

    outcome = await configure_apex(ctx)

    assert outcome == PhaseOutcome.CONTINUE
    assert executor.ran(INSTALL)
    assert executor.ran(SET_USERS)
    assert recorder.reasons() == [REASON_INSTALLING_APEX, REASON_INSTALLED_APEX]
    assert ctx.database.status.apex_installed is True
    assert ctx.instance.status.apex_configured is True
    assert ctx.instance.status.status == "Ready"
    assert store.mutations("delete_pod") == [("delete_pod", "ords-abcde")]
    # Updating is persisted before the install, the latch after the restart
    assert store.mutations("update_instance_status") == [
        ("update_instance_status", "ords"),
        ("update_instance_status", "ords"),
    ]


async def test_failed_verification_requeues(make_ctx, store, executor):
    with_apex_secret(store)
    executor.respond(VERIFY, "no rows selected")
    ctx = make_ctx(instance_object(**APEX_SPEC))
    ctx.ready_pod = add_ords_pod(store)

    assert await configure_apex(ctx) == PhaseOutcome.REQUEUE
    assert ctx.instance.status.status == "Updating"
    assert ctx.database.status.apex_installed is False
    assert ctx.instance.status.apex_configured is False
    assert not executor.ran(SET_USERS)


async def test_installed_database_skips_install(make_ctx, store, executor, recorder):
    with_apex_secret(store)
    store.databases[(NAMESPACE, "sidb")] = database_object(apexInstalled=True)
    ctx = make_ctx(instance_object(**APEX_SPEC))
    ctx.ready_pod = add_ords_pod(store)

    assert await configure_apex(ctx) == PhaseOutcome.CONTINUE
    assert not executor.ran(INSTALL)
    assert executor.ran(SET_USERS)
    assert recorder.events == []
    assert ctx.instance.status.apex_configured is True


async def test_latch_waits_for_pod_restart(make_ctx, store, executor):
    with_apex_secret(store)
    store.databases[(NAMESPACE, "sidb")] = database_object(apexInstalled=True)
    store.fail("delete_pod")
    ctx = make_ctx(instance_object(**APEX_SPEC))
    ctx.ready_pod = add_ords_pod(store)

    assert await configure_apex(ctx) == PhaseOutcome.REQUEUE
    assert ctx.instance.status.apex_configured is False


async def test_credential_update_error_requeues(make_ctx, store, executor):
    with_apex_secret(store)
    store.databases[(NAMESPACE, "sidb")] = database_object(apexInstalled=True)
    executor.respond(SET_USERS, "Error: The pool default does not exist")
    ctx = make_ctx(instance_object(**APEX_SPEC))
    ctx.ready_pod = add_ords_pod(store)

    assert await configure_apex(ctx) == PhaseOutcome.REQUEUE
    assert store.mutations("delete_pod") == []
    assert ctx.instance.status.apex_configured is False
