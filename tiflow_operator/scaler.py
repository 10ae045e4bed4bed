"""Executor scaling policy."""

import copy
import logging
from typing import Protocol

from kubernetes.client import V1StatefulSet

from .models import TiflowCluster

logger = logging.getLogger(__name__)


class Scaler(Protocol):
    """Adjusts the replica count of a desired StatefulSet."""

    def scale(
        self, cluster: TiflowCluster, observed: V1StatefulSet, desired: V1StatefulSet
    ) -> V1StatefulSet:
        """Return a copy of desired with the replica count to apply this pass."""
        ...


class ExecutorScaler:
    """
    Moves the executor replica count one step per pass toward the target.

    A step is held until the live StatefulSet reports as many replicas as it
    was asked for.
    """

    def scale(
        self, cluster: TiflowCluster, observed: V1StatefulSet, desired: V1StatefulSet
    ) -> V1StatefulSet:
        result = copy.deepcopy(desired)
        current = observed.spec.replicas or 0
        target = desired.spec.replicas or 0

        if target == current:
            return result

        if observed.status is not None and (observed.status.replicas or 0) != current:
            logger.info(
                f"Executor of [{cluster.namespace}/{cluster.name}] is still scaling to "
                f"{current}, waiting before the next step"
            )
            result.spec.replicas = current
            return result

        step = current + 1 if target > current else current - 1
        direction = "out" if target > current else "in"
        logger.info(
            f"Scaling {direction} executor of [{cluster.namespace}/{cluster.name}]: "
            f"{current} -> {step} (target {target})"
        )
        result.spec.replicas = step
        return result
