"""Executor rolling upgrade policy."""

import copy
import logging
from typing import Protocol

from kubernetes.client import V1StatefulSet

from .models import TiflowCluster
from .statefulset import (
    get_upgrade_partition,
    set_upgrade_partition,
    stateful_set_is_upgrading,
    template_equal,
)

logger = logging.getLogger(__name__)


class Upgrader(Protocol):
    """Decides the rollout fields of a desired StatefulSet."""

    def upgrade(
        self, cluster: TiflowCluster, observed: V1StatefulSet, desired: V1StatefulSet
    ) -> V1StatefulSet:
        """Return a copy of desired with the partition/strategy to apply this pass."""
        ...


class ExecutorUpgrader:
    """
    Rolls executor pods from the highest ordinal down, one per pass.

    The partition moves down once every pod at or above it runs the update
    revision and all replicas are ready.
    """

    def upgrade(
        self, cluster: TiflowCluster, observed: V1StatefulSet, desired: V1StatefulSet
    ) -> V1StatefulSet:
        result = copy.deepcopy(desired)
        strategy = result.spec.update_strategy
        if strategy is not None and strategy.type == "OnDelete":
            return result

        replicas = result.spec.replicas or 0
        partition = get_upgrade_partition(observed)
        new_rollout = not template_equal(desired, observed) and not stateful_set_is_upgrading(
            observed
        )
        if partition is None or new_rollout:
            partition = replicas

        if self._step_done(observed, partition):
            partition = max(partition - 1, 0)

        logger.info(
            f"Upgrading executor of [{cluster.namespace}/{cluster.name}], partition {partition}"
        )
        set_upgrade_partition(result, partition)
        return result

    @staticmethod
    def _step_done(observed: V1StatefulSet, partition: int) -> bool:
        status = observed.status
        if status is None:
            return False
        if (status.observed_generation or 0) < (observed.metadata.generation or 0):
            return False
        replicas = observed.spec.replicas or 0
        updated = status.updated_replicas or 0
        ready = status.ready_replicas or 0
        return updated >= replicas - partition and ready >= replicas
