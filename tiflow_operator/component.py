"""Pod-level policy of a cluster member, resolved against cluster defaults."""

from typing import Optional

from kubernetes.client import V1Container, V1EnvFromSource, V1EnvVar, V1PodSpec
from kubernetes.client import V1Volume, V1VolumeMount

from .models import ComponentSpec, ConfigUpdateStrategy, TiflowCluster, TiflowClusterSpec
from .serialization import to_model

DEFAULT_IMAGE_PULL_POLICY = "IfNotPresent"
DEFAULT_POD_MANAGEMENT_POLICY = "Parallel"
DEFAULT_STATEFUL_SET_UPDATE_STRATEGY = "RollingUpdate"


class ComponentAccessor:
    """
    Resolves a member's pod-level policy.

    A value set on the member wins; otherwise the cluster-level value is used,
    and otherwise a built-in default.
    """

    def __init__(self, cluster_spec: TiflowClusterSpec, component: ComponentSpec):
        """
        Initialize component accessor.

        Args:
            cluster_spec: Cluster-level spec holding shared defaults
            component: Member spec
        """
        self.cluster_spec = cluster_spec
        self.component = component

    def _resolve(self, field: str, default):
        value = getattr(self.component, field)
        if value is None:
            value = getattr(self.cluster_spec, field)
        return default if value is None else value

    def image_pull_policy(self) -> str:
        return self._resolve("image_pull_policy", DEFAULT_IMAGE_PULL_POLICY)

    def pod_management_policy(self) -> str:
        return self._resolve("pod_management_policy", DEFAULT_POD_MANAGEMENT_POLICY)

    def stateful_set_update_strategy(self) -> str:
        return self._resolve(
            "stateful_set_update_strategy", DEFAULT_STATEFUL_SET_UPDATE_STRATEGY
        )

    def config_update_strategy(
        self, default: ConfigUpdateStrategy = ConfigUpdateStrategy.IN_PLACE_IF_POSSIBLE
    ) -> ConfigUpdateStrategy:
        return self._resolve("config_update_strategy", default)

    def host_network(self) -> bool:
        return bool(self._resolve("host_network", False))

    def labels(self) -> dict[str, str]:
        return {**self.cluster_spec.labels, **self.component.labels}

    def annotations(self) -> dict[str, str]:
        return {**self.cluster_spec.annotations, **self.component.annotations}

    def env(self) -> list[V1EnvVar]:
        """Cluster-level env overridden by member env of the same name."""
        merged: dict[str, dict] = {}
        for entry in self.cluster_spec.env + self.component.env:
            merged[entry["name"]] = entry
        return [to_model(entry, "V1EnvVar") for entry in merged.values()]

    def env_from(self) -> list[V1EnvFromSource]:
        return [to_model(entry, "V1EnvFromSource") for entry in self.component.env_from]

    def additional_containers(self) -> list[V1Container]:
        return to_model(getattr(self.component, "additional_containers", []), "list[V1Container]")

    def additional_volumes(self) -> list[V1Volume]:
        return to_model(getattr(self.component, "additional_volumes", []), "list[V1Volume]")

    def additional_volume_mounts(self) -> list[V1VolumeMount]:
        return to_model(
            getattr(self.component, "additional_volume_mounts", []), "list[V1VolumeMount]"
        )

    def init_containers(self) -> list[V1Container]:
        return to_model(getattr(self.component, "init_containers", []), "list[V1Container]")

    def build_pod_spec(self) -> V1PodSpec:
        """Base pod spec; containers and volumes are filled in by the caller."""
        pod_spec = V1PodSpec(containers=[])
        if self.host_network():
            pod_spec.host_network = True
            pod_spec.dns_policy = "ClusterFirstWithHostNet"
        return pod_spec


def build_executor_spec(cluster: TiflowCluster) -> Optional[ComponentAccessor]:
    """Component accessor for the executor member, None if absent."""
    if cluster.spec.executor is None:
        return None
    return ComponentAccessor(cluster.spec, cluster.spec.executor)
