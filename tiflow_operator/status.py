"""Executor status projection."""

import logging
from typing import Callable, Optional

from kubernetes.client import V1StatefulSet

from .master_client import LeaderGetter
from .models import MemberPhase, StatefulSetStatusSnapshot, TiflowCluster
from .naming import executor_labels
from .statefulset import (
    CONTROLLER_REVISION_HASH_LABEL,
    EXECUTOR_CONTAINER_NAME,
    get_container_by_name,
    stateful_set_is_upgrading,
)
from .store import POD, ResourceStore

logger = logging.getLogger(__name__)


class ExecutorStatusSyncer:
    """
    Projects the live executor StatefulSet into the cluster status.

    Only status.executor is written, except that an unreachable master marks
    status.master as not synced.
    """

    def __init__(
        self,
        store: ResourceStore,
        master_client_factory: Callable[[TiflowCluster], LeaderGetter],
    ):
        """
        Initialize status syncer.

        Args:
            store: Resource store (used to list executor pods)
            master_client_factory: Builds the master client used as health check
        """
        self.store = store
        self.master_client_factory = master_client_factory

    def sync_status(self, cluster: TiflowCluster, sts: Optional[V1StatefulSet]) -> None:
        """
        Update cluster.status.executor from the live StatefulSet.

        Args:
            cluster: TiflowCluster whose status is updated in place
            sts: Live executor StatefulSet, None if not created yet

        Raises:
            ApiException: If listing executor pods fails
            httpx.HTTPError: If the master health check fails
        """
        # Skip if not created yet
        if sts is None:
            return

        status = cluster.status.executor
        status.stateful_set = StatefulSetStatusSnapshot.from_k8s(sts.status)

        upgrading = self.is_upgrading(cluster, sts)

        # Matching replicas reports Scale, steady state included
        if cluster.executor_desired_replicas == sts.spec.replicas:
            status.phase = MemberPhase.SCALE
        elif upgrading:
            status.phase = MemberPhase.UPGRADE
        else:
            status.phase = MemberPhase.NORMAL

        master_client = self.master_client_factory(cluster)
        try:
            master_client.get_leader()
        except Exception:
            cluster.status.master.synced = False
            raise
        finally:
            master_client.close()

        status.image = ""
        container = get_container_by_name(sts, EXECUTOR_CONTAINER_NAME)
        if container is not None:
            status.image = container.image

        status.volumes = {}
        status.synced = True

    def is_upgrading(self, cluster: TiflowCluster, sts: V1StatefulSet) -> bool:
        """
        True if the StatefulSet or any executor pod is behind the update revision.

        Pods are checked because the StatefulSet status lags the rollout.
        """
        if stateful_set_is_upgrading(sts):
            return True

        selector = executor_labels(cluster).selector()
        pods = self.store.list(POD, cluster.namespace, label_selector=selector)

        update_revision = sts.status.update_revision if sts.status is not None else None
        for pod in pods:
            revision_hash = (pod.metadata.labels or {}).get(CONTROLLER_REVISION_HASH_LABEL)
            if revision_hash is None:
                return False
            if revision_hash != update_revision:
                return True
        return False
