"""Executor StatefulSet construction and update helpers."""

import copy
import json
import logging
from typing import Optional

from kubernetes.client import (
    V1ConfigMap,
    V1ConfigMapVolumeSource,
    V1Container,
    V1ContainerPort,
    V1DownwardAPIVolumeFile,
    V1DownwardAPIVolumeSource,
    V1EnvVar,
    V1EnvVarSource,
    V1KeyToPath,
    V1ObjectFieldSelector,
    V1ObjectMeta,
    V1PersistentVolumeClaim,
    V1PersistentVolumeClaimSpec,
    V1PodTemplateSpec,
    V1ResourceRequirements,
    V1RollingUpdateStatefulSetStrategy,
    V1SecretVolumeSource,
    V1StatefulSet,
    V1StatefulSetSpec,
    V1StatefulSetUpdateStrategy,
    V1Volume,
    V1VolumeMount,
)
from kubernetes.utils import parse_quantity

from .component import ComponentAccessor, build_executor_spec
from .configmap import (
    CONFIG_FILE_KEY,
    EXECUTOR_CONFIG_MOUNT_PATH,
    EXECUTOR_STORAGE_MOUNT_PATH,
    STARTUP_SCRIPT_KEY,
)
from .errors import InvalidSpecError
from .models import ExecutorSpec, TiflowCluster
from .naming import (
    EXECUTOR_LABEL_VAL,
    LAST_APPLIED_CONFIG_ANNOTATION,
    cluster_tls_secret_name,
    executor_labels,
    executor_member_name,
    executor_peer_member_name,
    owner_reference,
)
from .serialization import canonical_json, sanitize
from .service import EXECUTOR_PORT

logger = logging.getLogger(__name__)

EXECUTOR_CONTAINER_NAME = EXECUTOR_LABEL_VAL
DEFAULT_STORAGE_SIZE = "10Gi"
DEFAULT_STORAGE_NAME = "dataflow"

STARTUP_SCRIPT_MOUNT_PATH = "/usr/local/bin"
CLUSTER_CERT_PATH = "/var/lib/tiflow-tls"
CLIENT_CERT_PATH = "/var/lib/tiflow-client-tls"
ANNOTATIONS_MOUNT_PATH = "/etc/podinfo"

CONTROLLER_REVISION_HASH_LABEL = "controller-revision-hash"


def annotations_mount_volume() -> tuple[V1VolumeMount, V1Volume]:
    """Downward API volume exposing the pod's annotations to the start script."""
    mount = V1VolumeMount(name="annotations", read_only=True, mount_path=ANNOTATIONS_MOUNT_PATH)
    volume = V1Volume(
        name="annotations",
        downward_api=V1DownwardAPIVolumeSource(
            items=[
                V1DownwardAPIVolumeFile(
                    path="annotations",
                    field_ref=V1ObjectFieldSelector(field_path="metadata.annotations"),
                )
            ]
        ),
    )
    return mount, volume


def prometheus_annotations(port: int) -> dict[str, str]:
    return {
        "prometheus.io/scrape": "true",
        "prometheus.io/path": "/metrics",
        "prometheus.io/port": str(port),
    }


def append_env(env: list[V1EnvVar], extra: list[V1EnvVar]) -> list[V1EnvVar]:
    """Append extra env vars whose names are not already defined."""
    names = {e.name for e in env}
    return env + [e for e in extra if e.name not in names]


def container_resources(executor: ExecutorSpec) -> V1ResourceRequirements:
    """Container resources; storage requests belong to the volume claim."""
    requests = {k: v for k, v in executor.requests.items() if k != "storage"}
    limits = {k: v for k, v in executor.limits.items() if k != "storage"}
    return V1ResourceRequirements(requests=requests or None, limits=limits or None)


def _config_map_volume(name: str, config_map_name: str, key: str, path: str) -> V1Volume:
    return V1Volume(
        name=name,
        config_map=V1ConfigMapVolumeSource(
            name=config_map_name,
            items=[V1KeyToPath(key=key, path=path)],
        ),
    )


def build_executor_pod_volumes(cluster: TiflowCluster, config_map: V1ConfigMap) -> list[V1Volume]:
    """Volumes for the executor pod: annotations, config, startup script and TLS secrets."""
    config_map_name = config_map.metadata.name
    _, anno_volume = annotations_mount_volume()

    volumes = [
        anno_volume,
        _config_map_volume("config", config_map_name, CONFIG_FILE_KEY, "tiflow-executor.toml"),
        _config_map_volume(
            "startup-script",
            config_map_name,
            STARTUP_SCRIPT_KEY,
            "tiflow_executor_start_script.sh",
        ),
    ]

    if cluster.is_cluster_tls_enabled():
        volumes.append(
            V1Volume(
                name="tiflow-executor-tls",
                secret=V1SecretVolumeSource(
                    secret_name=cluster_tls_secret_name(cluster.name, EXECUTOR_LABEL_VAL)
                ),
            )
        )

    for secret_name in _tls_client_secret_names(cluster):
        volumes.append(
            V1Volume(name=secret_name, secret=V1SecretVolumeSource(secret_name=secret_name))
        )

    return volumes


def _tls_client_secret_names(cluster: TiflowCluster) -> list[str]:
    if cluster.spec.master is None:
        return []
    return cluster.spec.master.tls_client_secret_names


def build_executor_volume_mounts(
    cluster: TiflowCluster, accessor: ComponentAccessor
) -> list[V1VolumeMount]:
    """Volume mounts of the executor container."""
    mounts = [
        V1VolumeMount(name="config", read_only=True, mount_path=EXECUTOR_CONFIG_MOUNT_PATH),
        V1VolumeMount(name="startup-script", read_only=True, mount_path=STARTUP_SCRIPT_MOUNT_PATH),
    ]

    if cluster.is_cluster_tls_enabled():
        mounts.append(
            V1VolumeMount(name="tiflow-executor-tls", read_only=True, mount_path=CLUSTER_CERT_PATH)
        )

    for secret_name in _tls_client_secret_names(cluster):
        mounts.append(
            V1VolumeMount(
                name=secret_name,
                read_only=True,
                mount_path=f"{CLIENT_CERT_PATH}/{secret_name}",
            )
        )

    anno_mount, _ = annotations_mount_volume()
    mounts.append(anno_mount)
    mounts.append(V1VolumeMount(name=DEFAULT_STORAGE_NAME, mount_path=EXECUTOR_STORAGE_MOUNT_PATH))

    return mounts + accessor.additional_volume_mounts()


def build_executor_containers(
    cluster: TiflowCluster, accessor: ComponentAccessor
) -> list[V1Container]:
    """The executor container followed by any additional containers."""
    env = [
        V1EnvVar(
            name="NAMESPACE",
            value_from=V1EnvVarSource(
                field_ref=V1ObjectFieldSelector(field_path="metadata.namespace")
            ),
        ),
        V1EnvVar(name="PEER_SERVICE_NAME", value=executor_peer_member_name(cluster.name)),
    ]
    if accessor.host_network():
        env.append(
            V1EnvVar(
                name="POD_NAME",
                value_from=V1EnvVarSource(
                    field_ref=V1ObjectFieldSelector(field_path="metadata.name")
                ),
            )
        )
    env = append_env(env, accessor.env())

    container = V1Container(
        name=EXECUTOR_CONTAINER_NAME,
        image=cluster.executor_image,
        image_pull_policy=accessor.image_pull_policy(),
        command=["/bin/sh", f"{STARTUP_SCRIPT_MOUNT_PATH}/tiflow_executor_start_script.sh"],
        ports=[V1ContainerPort(name="executor", container_port=EXECUTOR_PORT, protocol="TCP")],
        env=env,
        env_from=accessor.env_from() or None,
        volume_mounts=build_executor_volume_mounts(cluster, accessor),
        resources=container_resources(cluster.spec.executor),
    )
    return [container] + accessor.additional_containers()


def build_executor_pod_template(
    cluster: TiflowCluster, config_map: V1ConfigMap, accessor: ComponentAccessor
) -> V1PodTemplateSpec:
    pod_spec = accessor.build_pod_spec()
    pod_spec.volumes = build_executor_pod_volumes(cluster, config_map) + accessor.additional_volumes()
    pod_spec.containers = build_executor_containers(cluster, accessor)
    init_containers = accessor.init_containers()
    if init_containers:
        pod_spec.init_containers = init_containers

    # Selector labels win over user labels
    labels = {**accessor.labels(), **executor_labels(cluster).as_dict()}
    annotations = {**prometheus_annotations(EXECUTOR_PORT), **accessor.annotations()}

    return V1PodTemplateSpec(
        metadata=V1ObjectMeta(labels=labels, annotations=annotations),
        spec=pod_spec,
    )


def build_executor_pvc_templates(
    cluster: TiflowCluster, default_storage_size: str = DEFAULT_STORAGE_SIZE
) -> list[V1PersistentVolumeClaim]:
    """
    Volume claim templates of the executor StatefulSet.

    Raises:
        InvalidSpecError: If the storage size is not a valid quantity
    """
    executor = cluster.spec.executor
    storage_size = executor.storage_size or default_storage_size
    try:
        parse_quantity(storage_size)
    except ValueError as e:
        raise InvalidSpecError(
            f"cannot parse storage request {storage_size!r} for tiflow-executor, "
            f"tiflowCluster [{cluster.namespace}/{cluster.name}]: {e}"
        ) from e

    return [
        V1PersistentVolumeClaim(
            metadata=V1ObjectMeta(
                name=DEFAULT_STORAGE_NAME,
                namespace=cluster.namespace,
                labels=executor_labels(cluster).as_dict(),
                owner_references=[owner_reference(cluster)],
            ),
            spec=V1PersistentVolumeClaimSpec(
                access_modes=["ReadWriteOnce"],
                storage_class_name=executor.storage_class_name,
                resources=V1ResourceRequirements(requests={"storage": storage_size}),
            ),
        )
    ]


def build_executor_stateful_set(
    cluster: TiflowCluster,
    config_map: Optional[V1ConfigMap],
    default_storage_size: str = DEFAULT_STORAGE_SIZE,
) -> V1StatefulSet:
    """
    Build the desired executor StatefulSet.

    Args:
        cluster: TiflowCluster being reconciled
        config_map: Reconciled executor ConfigMap the pods mount
        default_storage_size: Storage request used when the spec sets none

    Returns:
        Desired V1StatefulSet

    Raises:
        InvalidSpecError: If the ConfigMap is missing or the spec is malformed
    """
    if config_map is None or config_map.metadata is None or not config_map.metadata.name:
        raise InvalidSpecError(
            f"config-map for tiflow-executor is not found, "
            f"tiflowCluster [{cluster.namespace}/{cluster.name}]"
        )

    accessor = build_executor_spec(cluster)
    pod_template = build_executor_pod_template(cluster, config_map, accessor)
    pvc_templates = build_executor_pvc_templates(cluster, default_storage_size)

    return V1StatefulSet(
        api_version="apps/v1",
        kind="StatefulSet",
        metadata=V1ObjectMeta(
            name=executor_member_name(cluster.name),
            namespace=cluster.namespace,
            labels=executor_labels(cluster).as_dict(),
            annotations={},
            owner_references=[owner_reference(cluster)],
        ),
        spec=V1StatefulSetSpec(
            replicas=cluster.executor_desired_replicas,
            selector=executor_labels(cluster).label_selector(),
            template=pod_template,
            volume_claim_templates=pvc_templates,
            service_name=executor_peer_member_name(cluster.name),
            pod_management_policy=accessor.pod_management_policy(),
            update_strategy=V1StatefulSetUpdateStrategy(
                type=accessor.stateful_set_update_strategy()
            ),
        ),
    )


def set_last_applied_config_annotation(sts: V1StatefulSet) -> None:
    """Record the applied spec on the StatefulSet."""
    if sts.metadata.annotations is None:
        sts.metadata.annotations = {}
    sts.metadata.annotations[LAST_APPLIED_CONFIG_ANNOTATION] = canonical_json(sts.spec)


def _last_applied_spec(sts: V1StatefulSet) -> Optional[dict]:
    annotations = sts.metadata.annotations or {}
    applied = annotations.get(LAST_APPLIED_CONFIG_ANNOTATION)
    if not applied:
        return None
    try:
        return json.loads(applied)
    except ValueError:
        logger.warning(
            f"Unreadable last-applied annotation on StatefulSet "
            f"{sts.metadata.namespace}/{sts.metadata.name}"
        )
        return None


def template_equal(new: V1StatefulSet, old: V1StatefulSet) -> bool:
    """
    True if the pod template last applied to old equals new's template.

    The comparison uses what this operator applied, not the live template, so
    fields defaulted by the API server and revision metadata do not count as
    drift.
    """
    applied = _last_applied_spec(old)
    if applied is None:
        return False
    return applied.get("template") == sanitize(new.spec.template)


def stateful_set_equal(new: V1StatefulSet, old: V1StatefulSet) -> bool:
    """True if replicas, template and update strategy were already applied to old."""
    applied = _last_applied_spec(old)
    if applied is None:
        return False
    desired = sanitize(new.spec)
    return all(
        applied.get(field) == desired.get(field)
        for field in ("replicas", "template", "updateStrategy")
    )


def get_upgrade_partition(sts: V1StatefulSet) -> Optional[int]:
    strategy = sts.spec.update_strategy
    if strategy is None or strategy.rolling_update is None:
        return None
    return strategy.rolling_update.partition


def set_upgrade_partition(sts: V1StatefulSet, partition: int) -> None:
    """Switch the StatefulSet to a rolling update protecting ordinals below partition."""
    sts.spec.update_strategy = V1StatefulSetUpdateStrategy(
        type="RollingUpdate",
        rolling_update=V1RollingUpdateStatefulSetStrategy(partition=partition),
    )
    logger.info(
        f"Set upgrade partition of StatefulSet "
        f"{sts.metadata.namespace}/{sts.metadata.name} to {partition}"
    )


def stateful_set_is_upgrading(sts: V1StatefulSet) -> bool:
    """True if the StatefulSet's own status reports a rollout in progress."""
    status = sts.status
    if status is None:
        return False
    if status.current_revision != status.update_revision:
        return True
    generation = sts.metadata.generation or 0
    if generation > (status.observed_generation or 0) and sts.spec.replicas == status.replicas:
        return True
    return False


def rollout_in_progress(sts: V1StatefulSet) -> bool:
    """True if a partitioned rolling update of sts has not finished yet."""
    return get_upgrade_partition(sts) is not None and stateful_set_is_upgrading(sts)


def get_container_by_name(sts: V1StatefulSet, name: str) -> Optional[V1Container]:
    for container in sts.spec.template.spec.containers or []:
        if container.name == name:
            return container
    return None


def update_stateful_set(store, new: V1StatefulSet, old: V1StatefulSet) -> Optional[V1StatefulSet]:
    """
    Apply replicas, template and update strategy of new onto old.

    Volume claim templates are never touched. Nothing is written when new
    matches what was last applied and old is controlled by the cluster.

    Returns:
        Updated V1StatefulSet, or None if no update was needed

    Raises:
        ApiException: If the update fails
    """
    is_orphan = not any(ref.controller for ref in old.metadata.owner_references or [])
    if stateful_set_equal(new, old) and not is_orphan:
        logger.debug(f"StatefulSet {old.metadata.namespace}/{old.metadata.name} is up to date")
        return None

    sts = copy.deepcopy(old)
    sts.spec.template = copy.deepcopy(new.spec.template)
    sts.spec.replicas = new.spec.replicas
    sts.spec.update_strategy = copy.deepcopy(new.spec.update_strategy)
    sts.metadata.labels = {**(old.metadata.labels or {}), **(new.metadata.labels or {})}
    sts.metadata.annotations = {
        **(old.metadata.annotations or {}),
        **(new.metadata.annotations or {}),
    }
    if is_orphan:
        sts.metadata.owner_references = new.metadata.owner_references
    set_last_applied_config_annotation(sts)

    return store.update(sts)
