"""
Tests for the resource converger: service, claim and pod set.
"""
from ords_operator.core.constants import CONFIG_MOUNT_PATH, INIT_CMD_KEY, SERVICE_PORT
from ords_operator.core.outcome import PhaseOutcome
from ords_operator.models import PrimaryDatabase, ServiceInstance
from ords_operator.services.converger import build_pod, build_pvc, converge
from tests.fakes import (
    NAMESPACE,
    ORDS_IMAGE,
    ORDS_VERSION,
    add_ords_pod,
    database_object,
    instance_object,
    pod_object,
)


async def test_fresh_instance_creates_service_secret_and_pods(make_ctx, store):
    ctx = make_ctx(instance_object(replicas=2))

    outcome = await converge(ctx)

    assert outcome == PhaseOutcome.CONTINUE
    assert store.mutations("create_svc") == [("create_svc", "ords")]
    assert store.svcs[(NAMESPACE, "ords")]["spec"]["type"] == "NodePort"
    assert store.mutations("create_secret") == [("create_secret", "ords")]
    assert len(store.mutations("create_pod")) == 2
    assert store.mutations("create_pvc") == []

    status = ctx.instance.status
    assert status.replicas == 2
    assert status.status == "NotReady"
    assert ctx.database.status.ords_reference == "ords"


async def test_node_port_address_and_urls(make_ctx):
    ctx = make_ctx()

    await converge(ctx)

    status = ctx.instance.status
    assert status.service_ip == "10.0.0.5"
    assert status.database_api_url == "https://10.0.0.5:30443/ords/ORCLPDB1/_/db-api/stable/"
    assert status.database_actions_url == "https://10.0.0.5:30443/ords/sql-developer"
    assert status.apex_url == ""


async def test_load_balancer_address_and_apex_url(make_ctx, store):
    store.svcs[(NAMESPACE, "ords")] = {
        "metadata": {"name": "ords", "namespace": NAMESPACE},
        "spec": {"type": "LoadBalancer", "ports": [{"name": "client", "port": SERVICE_PORT}]},
        "status": {"loadBalancer": {"ingress": [{"ip": "129.1.2.3"}]}},
    }
    ctx = make_ctx(instance_object(loadBalancer=True, status={"apexConfigured": True}))

    await converge(ctx)

    status = ctx.instance.status
    assert store.mutations("create_svc") == []
    assert status.service_ip == "129.1.2.3"
    assert status.apex_url == "https://129.1.2.3:8443/ords/ORCLPDB1/apex"


async def test_pending_load_balancer_clears_stale_address(make_ctx, store):
    ctx = make_ctx(instance_object(loadBalancer=True, status={"serviceIP": "1.1.1.1"}))

    await converge(ctx)

    assert store.svcs[(NAMESPACE, "ords")]["spec"]["type"] == "LoadBalancer"
    assert ctx.instance.status.service_ip == ""


async def test_second_pass_makes_no_further_changes(make_ctx, store):
    obj = instance_object(replicas=2, persistence={"accessMode": "ReadWriteMany", "size": "10Gi", "storageClass": "nfs"})
    await converge(make_ctx(obj))
    calls_after_first = list(store.calls)

    await converge(make_ctx(obj))

    assert store.calls == calls_after_first


async def test_shrink_keeps_the_ready_pod(make_ctx, store):
    add_ords_pod(store, "ords-aaaaa", ready=False)
    add_ords_pod(store, "ords-bbbbb", ready=True)
    add_ords_pod(store, "ords-ccccc", ready=False)
    ctx = make_ctx(instance_object(replicas=1))

    await converge(ctx)

    deleted = {name for _, name in store.mutations("delete_pod")}
    assert deleted == {"ords-aaaaa", "ords-ccccc"}
    assert (NAMESPACE, "ords-bbbbb") in store.pods


async def test_shrink_without_ready_pod_stops_at_desired_count(make_ctx, store):
    for suffix in ("aaaaa", "bbbbb", "ccccc"):
        add_ords_pod(store, f"ords-{suffix}", ready=False)
    ctx = make_ctx(instance_object(replicas=1))

    await converge(ctx)

    assert len(store.mutations("delete_pod")) == 2
    assert len(store.pods) == 1


async def test_terminating_pods_are_force_deleted_and_replaced(make_ctx, store):
    store.pods[(NAMESPACE, "ords-old01")] = pod_object(
        "ords-old01", "ords", ORDS_IMAGE, ORDS_VERSION, ready=False, terminating=True,
    )
    ctx = make_ctx()

    await converge(ctx)

    assert store.mutations("delete_pod") == [("delete_pod", "ords-old01")]
    assert len(store.mutations("create_pod")) == 1


async def test_pod_creation_failure_requeues(make_ctx, store):
    store.fail("create_pod")
    ctx = make_ctx()

    assert await converge(ctx) == PhaseOutcome.REQUEUE


async def test_own_claim_is_created_once(make_ctx, store):
    obj = instance_object(persistence={"accessMode": "ReadWriteOnce", "size": "10Gi", "storageClass": "standard"})

    await converge(make_ctx(obj))

    pvc = store.pvcs[(NAMESPACE, "ords")]
    assert pvc["spec"]["resources"]["requests"]["storage"] == "10Gi"
    assert pvc["spec"]["accessModes"] == ["ReadWriteOnce"]
    assert "selector" not in pvc["spec"]


def test_oci_claim_selects_by_node_selector():
    instance = ServiceInstance.from_object(instance_object(
        persistence={"accessMode": "ReadWriteOnce", "size": "50Gi", "storageClass": "oci"},
        nodeSelector={"failure-domain.beta.kubernetes.io/zone": "PHX-AD-1"},
    ))

    pvc = build_pvc(instance)

    assert pvc["spec"]["selector"] == {"matchLabels": {"failure-domain.beta.kubernetes.io/zone": "PHX-AD-1"}}


def test_pod_template_shares_database_claim_by_default():
    instance = ServiceInstance.from_object(instance_object(
        image={"pullFrom": ORDS_IMAGE, "pullSecrets": "regcred", "version": ORDS_VERSION},
        nodeSelector={"zone": "a"},
    ))
    database = PrimaryDatabase.from_object(database_object())

    pod = build_pod(instance, database)

    spec = pod["spec"]
    assert pod["metadata"]["name"].startswith("ords-")
    assert len(pod["metadata"]["name"]) == len("ords-") + 5
    assert pod["metadata"]["labels"] == {"app": "ords", "version": ORDS_VERSION}
    assert pod["metadata"]["ownerReferences"][0]["kind"] == "OracleRestDataService"
    assert spec["volumes"][0]["persistentVolumeClaim"]["claimName"] == "sidb"
    assert spec["volumes"][1]["secret"]["secretName"] == "ords"
    assert spec["volumes"][1]["secret"]["items"][0]["key"] == INIT_CMD_KEY
    assert [c["name"] for c in spec["initContainers"]] == ["init-permissions", "init-ords"]
    assert spec["initContainers"][0]["securityContext"] == {"runAsUser": 0}
    assert spec["initContainers"][0]["volumeMounts"][0]["subPath"] == "ORCLCDB_ORDS"
    assert spec["containers"][0]["ports"] == [{"containerPort": 8443}]
    assert spec["containers"][0]["volumeMounts"][0]["mountPath"] == CONFIG_MOUNT_PATH + "/"
    assert spec["terminationGracePeriodSeconds"] == 30
    assert spec["imagePullSecrets"] == [{"name": "regcred"}]
    assert spec["nodeSelector"] == {"zone": "a"}
    assert spec["serviceAccountName"] == "default"

    env = {e["name"]: e for e in spec["initContainers"][1]["env"]}
    assert env["ORACLE_HOST"]["value"] == "sidb"
    assert env["ORACLE_PORT"]["value"] == "1521"
    assert env["ORACLE_SERVICE"]["value"] == "ORCLCDB"
    assert env["ORDS_USER"]["value"] == "ORDS_PUBLIC_USER"
    assert env["ORDS_PWD"]["valueFrom"]["secretKeyRef"] == {"name": "ords-secret", "key": "oracle_pwd"}
    assert env["ORACLE_PWD"]["valueFrom"]["secretKeyRef"] == {"name": "db-admin-secret", "key": "oracle_pwd"}
    main_env = {e["name"] for e in spec["containers"][0]["env"]}
    assert "ORACLE_PWD" not in main_env


def test_pod_template_uses_own_claim_when_size_requested():
    instance = ServiceInstance.from_object(instance_object(
        persistence={"accessMode": "ReadWriteOnce", "size": "10Gi"},
        oracleService="ORCLPDB1",
        ordsUser="ORDS_CUSTOM",
    ))
    database = PrimaryDatabase.from_object(database_object())

    pod = build_pod(instance, database)

    assert pod["spec"]["volumes"][0]["persistentVolumeClaim"]["claimName"] == "ords"
    assert "imagePullSecrets" not in pod["spec"]
    env = {e["name"]: e.get("value") for e in pod["spec"]["containers"][0]["env"]}
    assert env["ORACLE_SERVICE"] == "ORCLPDB1"
    assert env["ORDS_USER"] == "ORDS_CUSTOM"


async def test_size_request_gets_own_claim_on_single_writer_database(make_ctx, store):
    ctx = make_ctx(
        instance_object(persistence={"size": "10Gi"}),
        database_object(access_mode="ReadWriteOnce"),
    )

    await converge(ctx)

    assert store.mutations("create_pvc") == [("create_pvc", "ords")]
    assert store.pvcs[(NAMESPACE, "ords")]["spec"]["accessModes"] == ["ReadWriteMany"]
    pod = next(iter(store.pods.values()))
    assert pod["spec"]["volumes"][0]["persistentVolumeClaim"]["claimName"] == "ords"


async def test_access_mode_without_size_shares_database_claim(make_ctx, store):
    ctx = make_ctx(instance_object(persistence={"accessMode": "ReadWriteOnce"}))

    await converge(ctx)

    assert store.mutations("create_pvc") == []
    pod = next(iter(store.pods.values()))
    assert pod["spec"]["volumes"][0]["persistentVolumeClaim"]["claimName"] == "sidb"


async def test_scaling_to_zero_removes_the_ready_pod(make_ctx, store):
    add_ords_pod(store, "ords-aaaaa", ready=False)
    add_ords_pod(store, "ords-bbbbb", ready=True)
    ctx = make_ctx(instance_object(replicas=0))

    await converge(ctx)

    assert store.pods == {}
    assert ctx.instance.status.replicas == 0

    await converge(make_ctx(instance_object(replicas=0)))

    assert store.mutations("create_pod") == []


async def test_service_lookup_failure_clears_stale_address(make_ctx, store):
    store.fail("get_svc")
    ctx = make_ctx(instance_object(status={"serviceIP": "1.1.1.1"}))

    assert await converge(ctx) == PhaseOutcome.REQUEUE
    assert ctx.instance.status.service_ip == ""
