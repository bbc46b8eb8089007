"""
Enforcer manifests

Builds the in-cluster resources the reaper runs under:
- ServiceAccount in the enforcer namespace
- ClusterRole allowing get/list/watch/patch/update on batch Jobs (cluster-wide)
- ClusterRoleBinding tying the two together
- Deployment running `scanjob-reaper serve` with the current settings

The Deployment replaces a CronJob wrapping kubectl: the scheduler inside the
pod owns the five-minute interval, and /health backs the liveness probe.
"""

from kubernetes import client
from typing import Dict, List
import logging
import yaml

logger = logging.getLogger(__name__)

HEALTH_PORT = 8000


def get_enforcer_labels(name: str) -> Dict[str, str]:
    """Standard labels for every enforcer resource."""
    return {
        "app.kubernetes.io/name": name,
        "app.kubernetes.io/component": "ttl-enforcer",
        "app.kubernetes.io/managed-by": "scanjob-reaper",
    }


def create_service_account(settings) -> client.V1ServiceAccount:
    return client.V1ServiceAccount(
        api_version="v1",
        kind="ServiceAccount",
        metadata=client.V1ObjectMeta(
            name=settings.enforcer_name,
            namespace=settings.namespace,
            labels=get_enforcer_labels(settings.enforcer_name)
        )
    )


def create_cluster_role(settings) -> client.V1ClusterRole:
    """ClusterRole scoped to exactly what the List and Patch steps need."""
    return client.V1ClusterRole(
        api_version="rbac.authorization.k8s.io/v1",
        kind="ClusterRole",
        metadata=client.V1ObjectMeta(
            name=settings.enforcer_name,
            labels=get_enforcer_labels(settings.enforcer_name)
        ),
        rules=[
            client.V1PolicyRule(
                api_groups=["batch"],
                resources=["jobs"],
                verbs=["get", "list", "watch", "patch", "update"]
            )
        ]
    )


def create_cluster_role_binding(settings) -> client.V1ClusterRoleBinding:
    return client.V1ClusterRoleBinding(
        api_version="rbac.authorization.k8s.io/v1",
        kind="ClusterRoleBinding",
        metadata=client.V1ObjectMeta(
            name=settings.enforcer_name,
            labels=get_enforcer_labels(settings.enforcer_name)
        ),
        role_ref=client.V1RoleRef(
            api_group="rbac.authorization.k8s.io",
            kind="ClusterRole",
            name=settings.enforcer_name
        ),
        subjects=[
            client.RbacV1Subject(
                kind="ServiceAccount",
                name=settings.enforcer_name,
                namespace=settings.namespace
            )
        ]
    )


def create_enforcer_deployment(settings) -> client.V1Deployment:
    """
    Single-replica Deployment running the reaper.

    Settings are passed through as REAPER_* environment variables so the pod
    enforces the same policy the installer was configured with.
    """
    labels = get_enforcer_labels(settings.enforcer_name)
    env = [
        client.V1EnvVar(name="REAPER_TTL_SECONDS", value=str(settings.ttl_seconds)),
        client.V1EnvVar(name="REAPER_FORCED_TTL_SECONDS", value=str(settings.forced_ttl_seconds)),
        client.V1EnvVar(name="REAPER_INTERVAL_SECONDS", value=str(settings.interval_seconds)),
        client.V1EnvVar(name="REAPER_JOB_NAME_PREFIX", value=settings.job_name_prefix),
        client.V1EnvVar(name="REAPER_MAX_CONCURRENT_PATCHES", value=str(settings.max_concurrent_patches)),
        client.V1EnvVar(name="REAPER_LOG_LEVEL", value=settings.log_level),
    ]

    container = client.V1Container(
        name="reaper",
        image=settings.enforcer_image,
        image_pull_policy=settings.enforcer_image_pull_policy,
        command=["scanjob-reaper", "serve", "--host", "0.0.0.0", "--port", str(HEALTH_PORT)],
        env=env,
        ports=[client.V1ContainerPort(container_port=HEALTH_PORT, name="http")],
        resources=client.V1ResourceRequirements(
            requests={"cpu": "10m", "memory": "64Mi"},
            limits={"cpu": "100m", "memory": "128Mi"}
        ),
        liveness_probe=client.V1Probe(
            http_get=client.V1HTTPGetAction(path="/health", port=HEALTH_PORT),
            initial_delay_seconds=10,
            period_seconds=30
        ),
        security_context=client.V1SecurityContext(
            allow_privilege_escalation=False,
            read_only_root_filesystem=True,
            run_as_non_root=True,
            capabilities=client.V1Capabilities(drop=["ALL"])
        )
    )

    return client.V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=client.V1ObjectMeta(
            name=settings.enforcer_name,
            namespace=settings.namespace,
            labels=labels
        ),
        spec=client.V1DeploymentSpec(
            replicas=1,
            selector=client.V1LabelSelector(match_labels={"app.kubernetes.io/name": settings.enforcer_name}),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=labels),
                spec=client.V1PodSpec(
                    service_account_name=settings.enforcer_name,
                    containers=[container]
                )
            )
        )
    )


def build_enforcer_manifests(settings) -> List:
    """All enforcer resources, in apply order."""
    return [
        create_service_account(settings),
        create_cluster_role(settings),
        create_cluster_role_binding(settings),
        create_enforcer_deployment(settings),
    ]


def render_enforcer_yaml(settings) -> str:
    """Render the enforcer resources as a multi-document YAML stream."""
    api_client = client.ApiClient()
    documents = [api_client.sanitize_for_serialization(obj) for obj in build_enforcer_manifests(settings)]
    return yaml.safe_dump_all(documents, default_flow_style=False, sort_keys=False)


async def install_enforcer(k8s, settings) -> None:
    """Create or update every enforcer resource."""
    logger.info(f"[K8S] Installing TTL enforcer (ttlSecondsAfterFinished={settings.ttl_seconds})")
    await k8s.create_namespace_if_not_exists(settings.namespace)
    await k8s.apply_service_account(create_service_account(settings), settings.namespace)
    await k8s.apply_cluster_role(create_cluster_role(settings))
    await k8s.apply_cluster_role_binding(create_cluster_role_binding(settings))
    await k8s.apply_deployment(create_enforcer_deployment(settings), settings.namespace)
    logger.info("[K8S] ✅ TTL enforcer deployed")


async def remove_enforcer(k8s, settings) -> int:
    """
    Delete the enforcer resources (reverse apply order), ignoring missing ones.

    Returns:
        Number of resources actually deleted
    """
    logger.info("[K8S] Removing TTL enforcer...")
    deleted = 0
    deleted += await k8s.delete_deployment(settings.enforcer_name, settings.namespace)
    deleted += await k8s.delete_cluster_role_binding(settings.enforcer_name)
    deleted += await k8s.delete_cluster_role(settings.enforcer_name)
    deleted += await k8s.delete_service_account(settings.enforcer_name, settings.namespace)
    logger.info(f"[K8S] ✅ TTL enforcer removed ({deleted} resources deleted)")
    return deleted
