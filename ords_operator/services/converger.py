"""
Resource Converger.

Computes and applies the difference between the desired child objects of an
OracleRestDataService and what exists in the cluster:

- Service (the network endpoint): create-if-absent, never mutated
- PersistentVolumeClaim: created only for a dedicated size, never resized
- Pods: converged to ``spec.replicas``, the ready pod deleted last when shrinking

All children carry a controller owner reference, so the platform deletes
them when the instance is deleted.
"""
from typing import Any, Dict

from ords_operator.config.logging import get_logger
from ords_operator.core.constants import (
    CONFIG_MOUNT_PATH,
    CRD_GROUP,
    CRD_VERSION,
    DATA_VOLUME,
    DATABASE_PORT,
    DBA_GID,
    INIT_CMD_KEY,
    INIT_CMD_MOUNT_PATH,
    INIT_VOLUME,
    ORACLE_UID,
    SERVICE_KIND,
    SERVICE_PORT,
    SERVICE_PORT_NAME,
    TERMINATION_GRACE_PERIOD_SECONDS,
)
from ords_operator.core.outcome import PhaseOutcome
from ords_operator.core.scripts import INIT_ORDS_CMD
from ords_operator.core.state_machine import ServiceState
from ords_operator.exceptions import KubernetesError
from ords_operator.models import PrimaryDatabase, ServiceInstance
from ords_operator.services.context import ReconcileContext
from ords_operator.services.pods import find_pods, get_node_address, pod_name
from ords_operator.utils.naming import app_labels, default_or, pod_labels, random_suffix

logger = get_logger(__name__)

OCI_STORAGE_CLASS = "oci"


def _owner(instance: ServiceInstance) -> Dict[str, Any]:
    return instance.owner_reference(f"{CRD_GROUP}/{CRD_VERSION}", SERVICE_KIND)


def _metadata(instance: ServiceInstance, name: str, labels: Dict[str, str]) -> Dict[str, Any]:
    return {
        "name": name,
        "namespace": instance.namespace,
        "labels": labels,
        "ownerReferences": [_owner(instance)],
    }


def build_svc(instance: ServiceInstance) -> Dict[str, Any]:
    """Service exposing 8443/TCP, load-balanced or node-routed per spec."""
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(instance, instance.name, app_labels(instance.name)),
        "spec": {
            "ports": [{"name": SERVICE_PORT_NAME, "port": SERVICE_PORT, "protocol": "TCP"}],
            "selector": app_labels(instance.name),
            "type": "LoadBalancer" if instance.spec.load_balancer else "NodePort",
        },
    }


def build_pvc(instance: ServiceInstance) -> Dict[str, Any]:
    """Dedicated claim with the requested size, class and access mode."""
    persistence = instance.spec.persistence
    spec: Dict[str, Any] = {
        "accessModes": [persistence.resolved_access_mode],
        "resources": {"requests": {"storage": persistence.size}},
        "storageClassName": persistence.storage_class,
    }
    if persistence.storage_class == OCI_STORAGE_CLASS:
        spec["selector"] = {"matchLabels": dict(instance.spec.node_selector)}
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": _metadata(instance, instance.name, app_labels(instance.name)),
        "spec": spec,
    }


def build_init_secret(instance: ServiceInstance) -> Dict[str, Any]:
    """Secret carrying the bootstrap script run by the init-ords container."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _metadata(instance, instance.name, app_labels(instance.name)),
        "type": "Opaque",
        "stringData": {INIT_CMD_KEY: INIT_ORDS_CMD},
    }


def _connection_env(instance: ServiceInstance, database: PrimaryDatabase) -> list:
    return [
        {"name": "ORACLE_HOST", "value": database.name},
        {"name": "ORACLE_PORT", "value": str(DATABASE_PORT)},
        {"name": "ORACLE_SERVICE", "value": default_or(instance.spec.oracle_service, database.spec.sid)},
        {"name": "ORDS_USER", "value": instance.spec.resolved_ords_user},
    ]


def _secret_env(name: str, ref) -> Dict[str, Any]:
    return {
        "name": name,
        "valueFrom": {"secretKeyRef": {"name": ref.secret_name, "key": ref.secret_key}},
    }


def build_pod(instance: ServiceInstance, database: PrimaryDatabase) -> Dict[str, Any]:
    """
    Worker pod: two init containers followed by the serving container.

    The pod name carries a random suffix so replicas never collide.
    """
    spec = instance.spec
    sub_path = database.config_sub_path
    claim_name = instance.name if spec.persistence.dedicated else database.name

    config_mount = {"mountPath": CONFIG_MOUNT_PATH, "name": DATA_VOLUME, "subPath": sub_path}

    pod_spec: Dict[str, Any] = {
        "volumes": [
            {
                "name": DATA_VOLUME,
                "persistentVolumeClaim": {"claimName": claim_name, "readOnly": False},
            },
            {
                "name": INIT_VOLUME,
                "secret": {
                    "secretName": instance.name,
                    "optional": True,
                    "items": [{"key": INIT_CMD_KEY, "path": INIT_CMD_KEY}],
                },
            },
        ],
        "initContainers": [
            {
                "name": "init-permissions",
                "image": spec.image.pull_from,
                "command": ["/bin/sh", "-c", f"chown {ORACLE_UID}:{DBA_GID} {CONFIG_MOUNT_PATH}"],
                "securityContext": {"runAsUser": 0},
                "volumeMounts": [config_mount],
            },
            {
                "name": "init-ords",
                "image": spec.image.pull_from,
                "command": ["/bin/sh", INIT_CMD_MOUNT_PATH],
                "securityContext": {"runAsUser": ORACLE_UID, "runAsGroup": DBA_GID},
                "volumeMounts": [
                    config_mount,
                    {
                        "mountPath": INIT_CMD_MOUNT_PATH,
                        "readOnly": True,
                        "name": INIT_VOLUME,
                        "subPath": INIT_CMD_KEY,
                    },
                ],
                "env": _connection_env(instance, database) + [
                    _secret_env("ORDS_PWD", spec.ords_password),
                    _secret_env("ORACLE_PWD", spec.admin_password),
                ],
            },
        ],
        "containers": [
            {
                "name": instance.name,
                "image": spec.image.pull_from,
                "ports": [{"containerPort": SERVICE_PORT}],
                "volumeMounts": [dict(config_mount, mountPath=CONFIG_MOUNT_PATH + "/")],
                "env": _connection_env(instance, database),
            }
        ],
        "terminationGracePeriodSeconds": TERMINATION_GRACE_PERIOD_SECONDS,
        "nodeSelector": dict(spec.node_selector),
        "serviceAccountName": spec.resolved_service_account,
        "securityContext": {"runAsUser": ORACLE_UID, "runAsGroup": DBA_GID},
    }
    if spec.image.pull_secrets:
        pod_spec["imagePullSecrets"] = [{"name": spec.image.pull_secrets}]

    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": _metadata(
            instance,
            f"{instance.name}-{random_suffix()}",
            pod_labels(instance.name, spec.image.version),
        ),
        "spec": pod_spec,
    }


def _apply_addresses(ctx: ReconcileContext, host: str, port: Any) -> None:
    status = ctx.instance.status
    pdb = ctx.database.status.pdb_name
    base = f"https://{host}:{port}/ords"
    status.service_ip = host
    status.database_api_url = f"{base}/{pdb}/_/db-api/stable/"
    status.database_actions_url = f"{base}/sql-developer"
    if status.apex_configured:
        status.apex_url = f"{base}/{pdb}/apex"


async def ensure_svc(ctx: ReconcileContext) -> PhaseOutcome:
    """Create the Service if absent, then derive the reachable address and URLs."""
    instance = ctx.instance
    log = ctx.log.bind(phase="service")
    # No stale address may survive from an earlier pass
    instance.status.service_ip = ""
    try:
        svc = await ctx.store.get_svc(ctx.namespace, instance.name)
        if svc is None:
            body = build_svc(instance)
            log.info("creating_service", service=instance.name, type=body["spec"]["type"])
            svc = await ctx.store.create_svc(ctx.namespace, body)
            log.info("service_created", service=instance.name)
        else:
            log.debug("service_exists", service=instance.name)
    except KubernetesError as e:
        log.error("service_ensure_failed", service=instance.name, error=str(e))
        return PhaseOutcome.REQUEUE

    ports = ((svc or {}).get("spec") or {}).get("ports") or []
    if not ports:
        return PhaseOutcome.CONTINUE

    if instance.spec.load_balancer:
        ingress = (((svc.get("status") or {}).get("loadBalancer") or {}).get("ingress")) or []
        if ingress:
            host = ingress[0].get("ip") or ingress[0].get("hostname") or ""
            if host:
                _apply_addresses(ctx, host, ports[0].get("port"))
        return PhaseOutcome.CONTINUE

    try:
        node_address = await get_node_address(ctx.store)
    except KubernetesError as e:
        log.warning("node_address_lookup_failed", error=str(e))
        return PhaseOutcome.CONTINUE
    if node_address and ports[0].get("nodePort"):
        _apply_addresses(ctx, node_address, ports[0]["nodePort"])
    return PhaseOutcome.CONTINUE


async def ensure_pvc(ctx: ReconcileContext) -> PhaseOutcome:
    """Create the dedicated claim if requested and absent; never resize or delete it."""
    instance = ctx.instance
    if not instance.spec.persistence.dedicated:
        # Volume is shared with the primary database
        return PhaseOutcome.CONTINUE

    log = ctx.log.bind(phase="claim")
    try:
        pvc = await ctx.store.get_pvc(ctx.namespace, instance.name)
        if pvc is None:
            log.info("creating_pvc", pvc=instance.name, size=instance.spec.persistence.size)
            await ctx.store.create_pvc(ctx.namespace, build_pvc(instance))
        else:
            log.debug("pvc_exists", pvc=instance.name)
    except KubernetesError as e:
        log.error("pvc_ensure_failed", pvc=instance.name, error=str(e))
        return PhaseOutcome.REQUEUE
    return PhaseOutcome.CONTINUE


async def converge_pods(ctx: ReconcileContext) -> PhaseOutcome:
    """Converge the live pod count to ``spec.replicas``."""
    instance = ctx.instance
    spec = instance.spec
    log = ctx.log.bind(phase="pods")

    try:
        pods = await find_pods(ctx.store, ctx.namespace, instance.name, spec.image.pull_from, spec.image.version)
    except KubernetesError as e:
        log.error("pod_discovery_failed", error=str(e))
        return PhaseOutcome.REQUEUE

    # New pods are created only after earlier ones are fully gone
    for pod in pods.terminating:
        log.info("force_deleting_pod", pod=pod_name(pod), phase=(pod.get("status") or {}).get("phase"))
        try:
            await ctx.store.delete_pod(ctx.namespace, pod_name(pod), force=True)
        except KubernetesError as e:
            log.warning("force_delete_failed", pod=pod_name(pod), error=str(e))

    found = pods.replicas_found
    desired = spec.replicas
    log.info("pods_found", found=found, desired=desired, ready_pod=pods.ready_name)

    if found == 0:
        ctx.set_state(ServiceState.NOT_READY)

    if found < desired:
        try:
            if await ctx.store.get_secret(ctx.namespace, instance.name) is None:
                log.info("creating_init_secret", secret=instance.name)
                await ctx.store.create_secret(ctx.namespace, build_init_secret(instance))
            for _ in range(found, desired):
                body = build_pod(instance, ctx.database)
                log.info("creating_pod", pod=body["metadata"]["name"])
                await ctx.store.create_pod(ctx.namespace, body)
        except KubernetesError as e:
            log.error("pod_creation_failed", error=str(e))
            return PhaseOutcome.REQUEUE
    elif found > desired:
        # live() lists the ready pod last, so it survives unless desired is 0
        live = pods.live()
        deleted = 0
        for pod in live:
            if desired == len(live) - deleted:
                break
            log.info("deleting_extra_pod", pod=pod_name(pod))
            deleted += 1
            try:
                await ctx.store.delete_pod(ctx.namespace, pod_name(pod), force=True)
            except KubernetesError as e:
                log.error("extra_pod_delete_failed", pod=pod_name(pod), error=str(e))

    ctx.database.status.ords_reference = instance.name
    instance.status.replicas = desired
    return PhaseOutcome.CONTINUE


async def converge(ctx: ReconcileContext) -> PhaseOutcome:
    """Service, claim, then pods; the first stopping step ends the phase."""
    for step in (ensure_svc, ensure_pvc, converge_pods):
        outcome = await step(ctx)
        if outcome.stops:
            return outcome
    return PhaseOutcome.CONTINUE
