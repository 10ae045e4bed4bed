"""TiflowCluster resource models."""

from enum import Enum
from typing import Any, Optional

from kubernetes.client import V1StatefulSetStatus
from pydantic import BaseModel, Field

FORCE_UPGRADE_ANNOTATION = "tiflow.pingcap.com/force-upgrade"
INSTANCE_LABEL_KEY = "app.kubernetes.io/instance"


class MemberPhase(str, Enum):
    """Phase of a cluster member."""

    NORMAL = "Normal"
    SCALE = "Scale"
    UPGRADE = "Upgrade"


class ConfigUpdateStrategy(str, Enum):
    """How a changed member configuration reaches the store."""

    IN_PLACE_IF_POSSIBLE = "InPlaceIfPossible"
    ALWAYS_NEW_OBJECT = "AlwaysNewObject"


class TLSCluster(BaseModel):
    """Mutual TLS between cluster components."""

    enabled: bool = False


class ClusterReference(BaseModel):
    """Reference to another TiflowCluster (heterogeneous deployments)."""

    name: str
    namespace: Optional[str] = None


class ComponentSpec(BaseModel):
    """
    Pod-level policy shared by all members.

    Fields left unset on a member fall back to the cluster-level value.
    """

    image_pull_policy: Optional[str] = None
    pod_management_policy: Optional[str] = None
    stateful_set_update_strategy: Optional[str] = None
    config_update_strategy: Optional[ConfigUpdateStrategy] = None
    host_network: Optional[bool] = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    env: list[dict[str, Any]] = Field(default_factory=list)
    env_from: list[dict[str, Any]] = Field(default_factory=list)


class MasterSpec(ComponentSpec):
    """Master (control-plane) member specification."""

    replicas: int = Field(default=3, ge=0)
    base_image: str = "pingcap/tiflow"
    version: Optional[str] = None
    tls_client_secret_names: list[str] = Field(default_factory=list)
    config: Optional[dict[str, Any]] = None


class ExecutorSpec(ComponentSpec):
    """Executor member specification."""

    replicas: int = Field(default=1, ge=0)
    base_image: str = "pingcap/tiflow"
    image: Optional[str] = None  # Full image reference, overrides base_image
    version: Optional[str] = None
    requests: dict[str, str] = Field(default_factory=dict)
    limits: dict[str, str] = Field(default_factory=dict)
    storage_size: Optional[str] = None
    storage_class_name: Optional[str] = None
    config: Optional[dict[str, Any]] = None

    # Kubernetes API shaped (camelCase) entries
    additional_containers: list[dict[str, Any]] = Field(default_factory=list)
    additional_volumes: list[dict[str, Any]] = Field(default_factory=list)
    additional_volume_mounts: list[dict[str, Any]] = Field(default_factory=list)
    init_containers: list[dict[str, Any]] = Field(default_factory=list)


class TiflowClusterSpec(ComponentSpec):
    """Desired state of a tiflow cluster."""

    version: Optional[str] = None
    cluster_domain: str = ""
    tls_cluster: Optional[TLSCluster] = None
    cluster: Optional[ClusterReference] = None
    master: Optional[MasterSpec] = None
    executor: Optional[ExecutorSpec] = None


class StatefulSetStatusSnapshot(BaseModel):
    """Copy of a StatefulSet's observed status."""

    observed_generation: Optional[int] = None
    replicas: int = 0
    ready_replicas: Optional[int] = None
    current_replicas: Optional[int] = None
    updated_replicas: Optional[int] = None
    current_revision: Optional[str] = None
    update_revision: Optional[str] = None

    @classmethod
    def from_k8s(cls, status: Optional[V1StatefulSetStatus]) -> "StatefulSetStatusSnapshot":
        """Build a snapshot from a live StatefulSet status."""
        if status is None:
            return cls()
        return cls(
            observed_generation=status.observed_generation,
            replicas=status.replicas or 0,
            ready_replicas=status.ready_replicas,
            current_replicas=status.current_replicas,
            updated_replicas=status.updated_replicas,
            current_revision=status.current_revision,
            update_revision=status.update_revision,
        )


class MasterStatus(BaseModel):
    """Observed state of the master member."""

    synced: bool = False
    phase: MemberPhase = MemberPhase.NORMAL


class ExecutorStatus(BaseModel):
    """Observed state of the executor member."""

    synced: bool = False
    phase: MemberPhase = MemberPhase.NORMAL
    stateful_set: Optional[StatefulSetStatusSnapshot] = None
    image: str = ""
    volumes: dict[str, Any] = Field(default_factory=dict)


class TiflowClusterStatus(BaseModel):
    """Observed state of a tiflow cluster."""

    master: MasterStatus = Field(default_factory=MasterStatus)
    executor: ExecutorStatus = Field(default_factory=ExecutorStatus)


class TiflowCluster(BaseModel):
    """A TiflowCluster custom resource."""

    name: str
    namespace: str = "default"
    uid: Optional[str] = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    spec: TiflowClusterSpec = Field(default_factory=TiflowClusterSpec)
    status: TiflowClusterStatus = Field(default_factory=TiflowClusterStatus)

    @property
    def instance_name(self) -> str:
        return self.labels.get(INSTANCE_LABEL_KEY, self.name)

    @property
    def executor_desired_replicas(self) -> int:
        if self.spec.executor is None:
            return 0
        return self.spec.executor.replicas

    @property
    def executor_image(self) -> str:
        executor = self.spec.executor
        if executor.image:
            return executor.image
        version = executor.version or self.spec.version
        if version:
            return f"{executor.base_image}:{version}"
        return executor.base_image

    def is_cluster_tls_enabled(self) -> bool:
        return self.spec.tls_cluster is not None and self.spec.tls_cluster.enabled

    def heterogeneous(self) -> bool:
        """True if this cluster joins the master of a referenced cluster."""
        return self.spec.cluster is not None and bool(self.spec.cluster.name)

    def without_local_master(self) -> bool:
        return self.spec.master is None

    def need_force_upgrade(self) -> bool:
        return self.annotations.get(FORCE_UPGRADE_ANNOTATION) == "true"
