"""Object names, labels and owner references for tiflow cluster members."""

from kubernetes.client import V1LabelSelector, V1OwnerReference

from .models import INSTANCE_LABEL_KEY, TiflowCluster

NAME_LABEL_KEY = "app.kubernetes.io/name"
MANAGED_BY_LABEL_KEY = "app.kubernetes.io/managed-by"
COMPONENT_LABEL_KEY = "app.kubernetes.io/component"
USED_BY_LABEL_KEY = "app.kubernetes.io/used-by"

MASTER_LABEL_VAL = "tiflow-master"
EXECUTOR_LABEL_VAL = "tiflow-executor"

CLUSTER_API_VERSION = "pingcap.com/v1alpha1"
CLUSTER_KIND = "TiflowCluster"

LAST_APPLIED_CONFIG_ANNOTATION = "pingcap.com/last-applied-configuration"


def master_member_name(cluster_name: str) -> str:
    return f"{cluster_name}-{MASTER_LABEL_VAL}"


def master_peer_member_name(cluster_name: str) -> str:
    return f"{cluster_name}-{MASTER_LABEL_VAL}-peer"


def executor_member_name(cluster_name: str) -> str:
    return f"{cluster_name}-{EXECUTOR_LABEL_VAL}"


def executor_peer_member_name(cluster_name: str) -> str:
    return f"{cluster_name}-{EXECUTOR_LABEL_VAL}-peer"


def master_full_host(cluster_name: str, namespace: str, cluster_domain: str = "") -> str:
    """Fully qualified host of a cluster's master service."""
    host = f"{master_member_name(cluster_name)}.{namespace}.svc"
    if cluster_domain:
        host = f"{host}.{cluster_domain}"
    return host


def cluster_tls_secret_name(cluster_name: str, component: str) -> str:
    return f"{cluster_name}-{component}-cluster-secret"


class Labels:
    """Builder for the label set of a cluster member."""

    def __init__(self):
        self._labels: dict[str, str] = {
            NAME_LABEL_KEY: "tiflow-cluster",
            MANAGED_BY_LABEL_KEY: "tiflow-operator",
        }

    def instance(self, name: str) -> "Labels":
        self._labels[INSTANCE_LABEL_KEY] = name
        return self

    def component(self, name: str) -> "Labels":
        self._labels[COMPONENT_LABEL_KEY] = name
        return self

    def tiflow_master(self) -> "Labels":
        return self.component(MASTER_LABEL_VAL)

    def tiflow_executor(self) -> "Labels":
        return self.component(EXECUTOR_LABEL_VAL)

    def used_by_peer(self) -> "Labels":
        self._labels[USED_BY_LABEL_KEY] = "peer"
        return self

    def copy(self) -> "Labels":
        labels = Labels()
        labels._labels = dict(self._labels)
        return labels

    def as_dict(self) -> dict[str, str]:
        return dict(self._labels)

    def selector(self) -> str:
        """Label selector string (e.g., "app.kubernetes.io/component=tiflow-executor")."""
        return ",".join(f"{k}={v}" for k, v in sorted(self._labels.items()))

    def label_selector(self) -> V1LabelSelector:
        return V1LabelSelector(match_labels=self.as_dict())


def executor_labels(cluster: TiflowCluster) -> Labels:
    return Labels().instance(cluster.instance_name).tiflow_executor()


def owner_reference(cluster: TiflowCluster) -> V1OwnerReference:
    """Controller owner reference pointing at the TiflowCluster."""
    return V1OwnerReference(
        api_version=CLUSTER_API_VERSION,
        kind=CLUSTER_KIND,
        name=cluster.name,
        uid=cluster.uid or "",
        controller=True,
        block_owner_deletion=True,
    )


def joined_master_host(cluster: TiflowCluster) -> str:
    """
    Host of the master the cluster's executors join.

    A heterogeneous cluster without a local master joins the master of the
    referenced cluster.
    """
    if cluster.heterogeneous() and cluster.without_local_master():
        ref = cluster.spec.cluster
        return master_full_host(
            ref.name, ref.namespace or cluster.namespace, cluster.spec.cluster_domain
        )
    return master_member_name(cluster.name)
