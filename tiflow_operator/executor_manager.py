"""Reconciliation of the executor member of a TiflowCluster."""

import logging
from functools import partial
from typing import Callable, Optional

from .cluster import ClusterConnection
from .config import OperatorSettings, get_settings
from .configmap import ExecutorConfigSynchronizer
from .errors import RequeueError
from .failover import Failover, NoopFailover
from .master_client import LeaderGetter, get_master_client
from .models import MemberPhase, StatefulSetStatusSnapshot, TiflowCluster
from .naming import executor_member_name
from .scaler import ExecutorScaler, Scaler
from .service import ExecutorServiceSynchronizer
from .statefulset import (
    build_executor_stateful_set,
    rollout_in_progress,
    set_last_applied_config_annotation,
    set_upgrade_partition,
    template_equal,
    update_stateful_set,
)
from .status import ExecutorStatusSyncer
from .store import STATEFUL_SET, ResourceStore
from .upgrader import ExecutorUpgrader, Upgrader

logger = logging.getLogger(__name__)


class ExecutorMemberManager:
    """
    Brings the executor member of a TiflowCluster in line with its spec.

    Each pass reconciles the headless Service, then the ConfigMap and the
    StatefulSet. The StatefulSet is created once and afterwards only updated,
    with this precedence:

    1. force upgrade (status not synced and force-upgrade annotation set)
    2. scaling
    3. rolling upgrade (template drift or an upgrade already in progress)

    Passes over the same cluster must not run concurrently.
    """

    def __init__(
        self,
        store: ResourceStore,
        scaler: Optional[Scaler] = None,
        upgrader: Optional[Upgrader] = None,
        failover: Optional[Failover] = None,
        master_client_factory: Optional[Callable[[TiflowCluster], LeaderGetter]] = None,
        settings: Optional[OperatorSettings] = None,
    ):
        """
        Initialize executor member manager.

        Args:
            store: Resource store
            scaler: Scaling policy (defaults to ExecutorScaler)
            upgrader: Rolling upgrade policy (defaults to ExecutorUpgrader)
            failover: Failover capability (defaults to NoopFailover)
            master_client_factory: Builds the master client used as health check
            settings: Operator settings
        """
        self.settings = settings or get_settings()
        self.store = store
        self.scaler = scaler or ExecutorScaler()
        self.upgrader = upgrader or ExecutorUpgrader()
        self.failover = failover or NoopFailover()
        if master_client_factory is None:
            master_client_factory = partial(get_master_client, settings=self.settings)

        self.service_syncer = ExecutorServiceSynchronizer(store)
        self.config_syncer = ExecutorConfigSynchronizer(store, self.settings)
        self.status_syncer = ExecutorStatusSyncer(store, master_client_factory)

    @classmethod
    def from_settings(cls, settings: OperatorSettings) -> "ExecutorMemberManager":
        """Build a manager talking to the API server configured in settings."""
        connection = ClusterConnection(settings)
        return cls(ResourceStore(connection), settings=settings)

    def sync(self, cluster: TiflowCluster) -> None:
        """
        Run one reconciliation pass for the executor member.

        Args:
            cluster: TiflowCluster to reconcile; its status is updated in place

        Raises:
            RequeueError: The pass made progress and must be run again
            InvalidSpecError: The spec cannot be turned into child resources
            ApiException: A store call failed
        """
        logger.info(f"Start to sync tiflow cluster [{cluster.namespace}/{cluster.name}]")

        if cluster.spec.executor is None:
            return

        # Service before StatefulSet: pods take their peer names from it
        self.service_syncer.sync_service(cluster)
        self._sync_stateful_set(cluster)

    def _sync_stateful_set(self, cluster: TiflowCluster) -> None:
        ns = cluster.namespace
        name = cluster.name
        sts_name = executor_member_name(name)

        logger.info(f"Start to get StatefulSet [{ns}/{sts_name}]")
        old_sts = self.store.get(STATEFUL_SET, ns, sts_name)

        # Force upgrade is gated on the status this pass started from
        was_synced = cluster.status.executor.synced

        # Status is best effort and never blocks the rest of the pass
        try:
            self.status_syncer.sync_status(cluster, old_sts)
        except Exception as e:
            logger.error(
                f"Failed to sync TiflowCluster [{ns}/{name}]'s executor status: {e}",
                exc_info=True,
            )

        config_map = self.config_syncer.sync_config(cluster, old_sts)
        new_sts = build_executor_stateful_set(
            cluster, config_map, self.settings.default_storage_size
        )

        if old_sts is None:
            set_last_applied_config_annotation(new_sts)
            self.store.create(new_sts)
            cluster.status.executor.stateful_set = StatefulSetStatusSnapshot()
            raise RequeueError(
                f"tiflow cluster [{ns}/{name}], waiting for tiflow-executor cluster running"
            )

        # Force upgrade takes precedence over scaling
        if not was_synced and cluster.need_force_upgrade():
            cluster.status.executor.phase = MemberPhase.UPGRADE
            set_upgrade_partition(new_sts, 0)
            update_stateful_set(self.store, new_sts, old_sts)
            raise RequeueError(
                f"tiflow cluster [{ns}/{name}]'s tiflow-executor needs force upgrade"
            )

        # Scaling runs before upgrading and may happen mid-upgrade
        new_sts = self.scaler.scale(cluster, old_sts, new_sts)

        template_changed = not template_equal(new_sts, old_sts)
        if template_changed:
            cluster.status.executor.phase = MemberPhase.UPGRADE
        # A partitioned rollout keeps going until every pod runs the update revision
        if cluster.status.executor.phase == MemberPhase.UPGRADE or rollout_in_progress(old_sts):
            new_sts = self.upgrader.upgrade(cluster, old_sts, new_sts)

        update_stateful_set(self.store, new_sts, old_sts)
