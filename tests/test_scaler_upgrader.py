"""Tests for the executor scaling and rolling upgrade policies."""

from kubernetes.client import V1StatefulSetStatus, V1StatefulSetUpdateStrategy

from tiflow_operator import ExecutorScaler, ExecutorUpgrader
from tiflow_operator.configmap import build_executor_config_map
from tiflow_operator.statefulset import (
    build_executor_stateful_set,
    get_upgrade_partition,
    set_last_applied_config_annotation,
    set_upgrade_partition,
)


def _build(cluster):
    return build_executor_stateful_set(cluster, build_executor_config_map(cluster))


def _status(replicas, ready=None, updated=None, current_revision="rev-1", update_revision="rev-1"):
    return V1StatefulSetStatus(
        replicas=replicas,
        ready_replicas=replicas if ready is None else ready,
        updated_replicas=replicas if updated is None else updated,
        observed_generation=1,
        current_revision=current_revision,
        update_revision=update_revision,
    )


class TestExecutorScaler:
    """Test cases for ExecutorScaler."""

    def test_no_change(self, sample_cluster, make_stateful_set):
        """Test that matching replicas pass through."""
        observed = make_stateful_set(sample_cluster, status=_status(3))
        desired = _build(sample_cluster)

        result = ExecutorScaler().scale(sample_cluster, observed, desired)

        assert result.spec.replicas == 3
        assert result is not desired

    def test_scale_out_one_step(self, sample_cluster, make_stateful_set):
        """Test scaling out by one replica per pass."""
        observed = make_stateful_set(sample_cluster, replicas=1, status=_status(1))
        desired = _build(sample_cluster)

        result = ExecutorScaler().scale(sample_cluster, observed, desired)

        assert result.spec.replicas == 2
        # Input is not mutated
        assert desired.spec.replicas == 3

    def test_scale_in_one_step(self, sample_cluster, make_stateful_set):
        """Test scaling in by one replica per pass."""
        observed = make_stateful_set(sample_cluster, replicas=5, status=_status(5))

        result = ExecutorScaler().scale(sample_cluster, observed, _build(sample_cluster))

        assert result.spec.replicas == 4

    def test_hold_while_previous_step_pending(self, sample_cluster, make_stateful_set):
        """Test that a step waits for the live replica count."""
        observed = make_stateful_set(sample_cluster, replicas=2, status=_status(1))

        result = ExecutorScaler().scale(sample_cluster, observed, _build(sample_cluster))

        assert result.spec.replicas == 2

    def test_scale_to_zero(self, sample_cluster, make_stateful_set):
        """Test scaling in to zero replicas."""
        sample_cluster.spec.executor.replicas = 0
        observed = make_stateful_set(sample_cluster, replicas=1, status=_status(1))

        result = ExecutorScaler().scale(sample_cluster, observed, _build(sample_cluster))

        assert result.spec.replicas == 0


class TestExecutorUpgrader:
    """Test cases for ExecutorUpgrader."""

    def test_on_delete_passes_through(self, sample_cluster, make_stateful_set):
        """Test that OnDelete StatefulSets are left to the user."""
        observed = make_stateful_set(sample_cluster, status=_status(3))
        desired = _build(sample_cluster)
        desired.spec.update_strategy = V1StatefulSetUpdateStrategy(type="OnDelete")

        result = ExecutorUpgrader().upgrade(sample_cluster, observed, desired)

        assert result.spec.update_strategy.type == "OnDelete"
        assert get_upgrade_partition(result) is None

    def test_new_rollout_starts_at_top(self, sample_cluster, make_stateful_set):
        """Test that a new template starts the rollout from the highest ordinal."""
        observed = make_stateful_set(sample_cluster, status=_status(3))
        sample_cluster.spec.executor.version = "v6.6.0"
        desired = _build(sample_cluster)

        result = ExecutorUpgrader().upgrade(sample_cluster, observed, desired)

        assert get_upgrade_partition(result) == 2
        assert get_upgrade_partition(desired) is None

    def test_new_rollout_waits_for_ready(self, sample_cluster, make_stateful_set):
        """Test that a new rollout holds all pods while replicas are not ready."""
        observed = make_stateful_set(sample_cluster, status=_status(3, ready=2))
        sample_cluster.spec.executor.version = "v6.6.0"

        result = ExecutorUpgrader().upgrade(sample_cluster, observed, _build(sample_cluster))

        assert get_upgrade_partition(result) == 3

    def _rolling(self, sample_cluster, make_stateful_set, partition, **status_kwargs):
        sample_cluster.spec.executor.version = "v6.6.0"
        observed = make_stateful_set(
            sample_cluster,
            status=_status(3, current_revision="rev-1", update_revision="rev-2", **status_kwargs),
        )
        set_upgrade_partition(observed, partition)
        set_last_applied_config_annotation(observed)
        return observed, _build(sample_cluster)

    def test_partition_moves_down(self, sample_cluster, make_stateful_set):
        """Test that a finished step lowers the partition."""
        observed, desired = self._rolling(sample_cluster, make_stateful_set, 2, updated=1)

        result = ExecutorUpgrader().upgrade(sample_cluster, observed, desired)

        assert get_upgrade_partition(result) == 1

    def test_partition_held_until_step_done(self, sample_cluster, make_stateful_set):
        """Test that the partition holds while the updated pod is not ready."""
        observed, desired = self._rolling(sample_cluster, make_stateful_set, 2, updated=1, ready=2)

        result = ExecutorUpgrader().upgrade(sample_cluster, observed, desired)

        assert get_upgrade_partition(result) == 2

    def test_partition_floor(self, sample_cluster, make_stateful_set):
        """Test that the partition never goes below zero."""
        observed, desired = self._rolling(sample_cluster, make_stateful_set, 0, updated=3)

        result = ExecutorUpgrader().upgrade(sample_cluster, observed, desired)

        assert get_upgrade_partition(result) == 0
