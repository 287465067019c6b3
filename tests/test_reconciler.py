"""
Tests for the reconcile orchestrator.
"""
import pytest

from ords_operator.core.constants import FINALIZER, REASON_WAITING
from ords_operator.core.outcome import PhaseOutcome
from ords_operator.exceptions import KubernetesError
from ords_operator.services.reconciler import ServiceReconciler
from tests.fakes import NAMESPACE, add_database_pod, add_ords_pod, instance_object

HEALTHY_OUTPUT = "< HTTP/1.1 200 OK"


@pytest.fixture
def reconciler(store, executor, recorder, test_settings):
    return ServiceReconciler(store, executor, recorder, test_settings)


def stored_status(store, name="ords"):
    return store.instances[(NAMESPACE, name)]["status"]


async def test_missing_instance_stops(reconciler):
    assert await reconciler.reconcile(NAMESPACE, "gone") == PhaseOutcome.STOP


async def test_missing_database_waits(reconciler, store, recorder):
    store.instances[(NAMESPACE, "ords")] = instance_object(databaseRef="nodb")

    assert await reconciler.reconcile(NAMESPACE, "ords") == PhaseOutcome.REQUEUE
    assert recorder.events == [("Normal", REASON_WAITING, "waiting for database nodb")]


async def test_fetch_errors_propagate(reconciler, store):
    store.fail("get_instance")

    with pytest.raises(KubernetesError):
        await reconciler.reconcile(NAMESPACE, "ords")


async def test_first_pass_adds_finalizer_and_persists_status(reconciler, store):
    store.instances[(NAMESPACE, "ords")] = instance_object(finalizer=False)

    outcome = await reconciler.reconcile(NAMESPACE, "ords")

    assert outcome == PhaseOutcome.REQUEUE
    stored = store.instances[(NAMESPACE, "ords")]
    assert stored["metadata"]["finalizers"] == [FINALIZER]
    assert stored["status"]["status"] == "NotReady"
    assert stored["status"]["replicas"] == 1
    assert len(store.mutations("create_pod")) == 1
    assert store.databases[(NAMESPACE, "sidb")]["status"]["ordsReference"] == "ords"


async def test_finalizer_write_failure_requeues_before_any_phase(reconciler, store):
    store.instances[(NAMESPACE, "ords")] = instance_object(finalizer=False)
    store.fail("update_instance", KubernetesError("conflict", status=409))

    assert await reconciler.reconcile(NAMESPACE, "ords") == PhaseOutcome.REQUEUE
    assert store.mutations("create") == []


async def test_validation_failure_still_persists_status(reconciler, store):
    store.instances[(NAMESPACE, "ords")] = instance_object(status={"databaseRef": "old"})

    assert await reconciler.reconcile(NAMESPACE, "ords") == PhaseOutcome.STOP
    assert stored_status(store)["status"] == "Error"
    assert store.mutations("create") == []
    assert store.mutations("patch_database_status") == [("patch_database_status", "sidb")]


async def test_converged_pass(reconciler, store, executor):
    store.instances[(NAMESPACE, "ords")] = instance_object()
    add_ords_pod(store)
    add_database_pod(store)
    executor.respond("metadata-catalog", HEALTHY_OUTPUT)
    executor.respond("SHOW USER", 'USER is "SYS"')

    outcome = await reconciler.reconcile(NAMESPACE, "ords")

    assert outcome == PhaseOutcome.CONTINUE
    status = stored_status(store)
    assert status["status"] == "Ready"
    assert status["ordsInstalled"] is True
    assert status["commonUsersCreated"] is True
    assert status["apexConfigured"] is False
    assert status["serviceIP"] == "10.0.0.5"
    assert status["databaseRef"] == "sidb"
    assert status["loadBalancer"] == "false"
    assert store.mutations("create_pod") == []


async def test_latches_survive_a_failing_pass(reconciler, store, executor):
    store.instances[(NAMESPACE, "ords")] = instance_object(
        status={"ordsInstalled": True, "commonUsersCreated": True, "status": "Ready"},
    )
    add_ords_pod(store)
    executor.respond("metadata-catalog", "curl: (52) Empty reply from server\nerror")

    assert await reconciler.reconcile(NAMESPACE, "ords") == PhaseOutcome.REQUEUE
    status = stored_status(store)
    assert status["status"] == "NotReady"
    assert status["ordsInstalled"] is True
    assert status["commonUsersCreated"] is True


async def test_deletion_without_database_drops_finalizer(reconciler, store):
    obj = instance_object(databaseRef="nodb")
    obj["metadata"]["deletionTimestamp"] = "2024-01-01T00:00:00Z"
    store.instances[(NAMESPACE, "ords")] = obj

    assert await reconciler.reconcile(NAMESPACE, "ords") == PhaseOutcome.STOP
    assert (NAMESPACE, "ords") not in store.instances


async def test_deletion_routes_to_teardown(reconciler, store, executor):
    obj = instance_object()
    obj["metadata"]["deletionTimestamp"] = "2024-01-01T00:00:00Z"
    store.instances[(NAMESPACE, "ords")] = obj

    assert await reconciler.reconcile(NAMESPACE, "ords") == PhaseOutcome.STOP
    assert (NAMESPACE, "ords") not in store.instances
    assert store.mutations("create") == []
