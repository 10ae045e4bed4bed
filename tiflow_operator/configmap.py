"""Executor configuration ConfigMap."""

import hashlib
import json
import logging
from typing import Callable, Optional

import tomli_w
from kubernetes.client import V1ConfigMap, V1ObjectMeta, V1PodSpec, V1StatefulSet

from .component import build_executor_spec
from .config import OperatorSettings
from .errors import InvalidSpecError
from .master_client import MASTER_PORT
from .models import ConfigUpdateStrategy, TiflowCluster
from .naming import (
    executor_labels,
    executor_member_name,
    joined_master_host,
    owner_reference,
)
from .startup_script import ExecutorStartScriptModel, render_executor_start_script
from .store import ResourceStore

logger = logging.getLogger(__name__)

CONFIG_FILE_KEY = "config-file"
STARTUP_SCRIPT_KEY = "startup-script"

EXECUTOR_CONFIG_MOUNT_PATH = "/etc/tiflow-executor"
EXECUTOR_STORAGE_MOUNT_PATH = "/mnt/tiflow-executor"

# --data-dir of the executor process
EXECUTOR_DATA_DIR = EXECUTOR_CONFIG_MOUNT_PATH


def find_config_map_volume(pod_spec: Optional[V1PodSpec], predicate: Callable[[str], bool]) -> str:
    """Name of the first ConfigMap volume source matching predicate, or ""."""
    if pod_spec is None:
        return ""
    for volume in pod_spec.volumes or []:
        if volume.config_map is not None and predicate(volume.config_map.name or ""):
            return volume.config_map.name
    return ""


def add_config_map_digest_suffix(config_map: V1ConfigMap) -> None:
    """Suffix the ConfigMap name with a digest of its data."""
    payload = json.dumps(config_map.data or {}, sort_keys=True).encode("utf-8")
    digest = hashlib.sha256(payload).hexdigest()[:8]
    config_map.metadata.name = f"{config_map.metadata.name}-{digest}"


def update_config_map_if_needed(
    strategy: ConfigUpdateStrategy, in_use_name: str, desired: V1ConfigMap
) -> None:
    """
    Pick the identity the desired ConfigMap is written under.

    In place: the ConfigMap currently mounted keeps its name, so the pod
    template does not change. Otherwise the name is content-addressed and a
    changed config yields a new object that the StatefulSet must roll to.
    """
    if strategy == ConfigUpdateStrategy.IN_PLACE_IF_POSSIBLE and in_use_name:
        desired.metadata.name = in_use_name
        return
    add_config_map_digest_suffix(desired)


def executor_master_address(cluster: TiflowCluster) -> str:
    return f"{joined_master_host(cluster)}:{MASTER_PORT}"


def build_executor_config_map(cluster: TiflowCluster) -> V1ConfigMap:
    """
    Build the executor ConfigMap (config file and startup script) under its
    base name.

    Raises:
        InvalidSpecError: If the config cannot be serialized or the script
            cannot be rendered
    """
    config = cluster.spec.executor.config or {}
    try:
        config_text = tomli_w.dumps(config)
    except TypeError as e:
        raise InvalidSpecError(
            f"cannot marshal tiflow-executor config, tiflowCluster "
            f"[{cluster.namespace}/{cluster.name}]: {e}"
        ) from e

    start_script = render_executor_start_script(
        ExecutorStartScriptModel(
            cluster_domain=cluster.spec.cluster_domain,
            data_dir=EXECUTOR_DATA_DIR,
            master_address=executor_master_address(cluster),
        )
    )

    return V1ConfigMap(
        api_version="v1",
        kind="ConfigMap",
        metadata=V1ObjectMeta(
            name=executor_member_name(cluster.name),
            namespace=cluster.namespace,
            labels=executor_labels(cluster).as_dict(),
            owner_references=[owner_reference(cluster)],
        ),
        data={
            CONFIG_FILE_KEY: config_text,
            STARTUP_SCRIPT_KEY: start_script,
        },
    )


class ExecutorConfigSynchronizer:
    """Reconciles the executor ConfigMap."""

    def __init__(self, store: ResourceStore, settings: OperatorSettings):
        """
        Initialize config synchronizer.

        Args:
            store: Resource store
            settings: Operator settings (default update strategy)
        """
        self.store = store
        self.settings = settings

    def sync_config(
        self, cluster: TiflowCluster, observed: Optional[V1StatefulSet]
    ) -> V1ConfigMap:
        """
        Reconcile the executor ConfigMap.

        Args:
            cluster: TiflowCluster being reconciled
            observed: Live executor StatefulSet, None if not created yet

        Returns:
            The live ConfigMap

        Raises:
            InvalidSpecError: If the ConfigMap cannot be built
            ApiException: If a store call fails
        """
        desired = build_executor_config_map(cluster)

        in_use_name = ""
        if observed is not None and observed.spec is not None and observed.spec.template:
            prefix = executor_member_name(cluster.name)
            in_use_name = find_config_map_volume(
                observed.spec.template.spec, lambda name: name.startswith(prefix)
            )
        logger.info(f"Executor in-use ConfigMap name: {in_use_name!r}")

        strategy = build_executor_spec(cluster).config_update_strategy(
            self.settings.default_config_update_strategy
        )
        update_config_map_if_needed(strategy, in_use_name, desired)

        return self.store.create_or_update_config_map(desired)
