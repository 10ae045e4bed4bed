"""Tests for the executor headless Service."""

from tiflow_operator import ExecutorServiceSynchronizer
from tiflow_operator.naming import LAST_APPLIED_CONFIG_ANNOTATION
from tiflow_operator.service import build_executor_headless_service, service_equal

SERVICE_KEY = ("Service", "default", "basic-tiflow-executor-peer")


class TestBuildExecutorHeadlessService:
    """Test cases for build_executor_headless_service."""

    def test_shape(self, sample_cluster):
        """Test the headless Service fields."""
        svc = build_executor_headless_service(sample_cluster)

        assert svc.metadata.name == "basic-tiflow-executor-peer"
        assert svc.metadata.labels["app.kubernetes.io/used-by"] == "peer"
        assert svc.spec.cluster_ip == "None"
        assert svc.spec.publish_not_ready_addresses is True
        assert svc.spec.ports[0].name == "tiflow-executor"
        assert svc.spec.ports[0].port == 10241
        assert svc.spec.selector["app.kubernetes.io/component"] == "tiflow-executor"
        assert "app.kubernetes.io/used-by" not in svc.spec.selector
        assert svc.metadata.owner_references[0].uid == sample_cluster.uid


class TestExecutorServiceSynchronizer:
    """Test cases for ExecutorServiceSynchronizer."""

    def test_creates_when_absent(self, store, sample_cluster):
        """Test that a missing Service is created with its applied spec recorded."""
        ExecutorServiceSynchronizer(store).sync_service(sample_cluster)

        assert store.mutations() == [("create", "Service", "basic-tiflow-executor-peer")]
        created = store.objects[SERVICE_KEY]
        assert LAST_APPLIED_CONFIG_ANNOTATION in created.metadata.annotations

    def test_no_write_when_unchanged(self, store, sample_cluster):
        """Test that a second sync issues no write."""
        syncer = ExecutorServiceSynchronizer(store)
        syncer.sync_service(sample_cluster)
        syncer.sync_service(sample_cluster)

        assert len(store.mutations()) == 1

    def test_updates_on_drift(self, store, sample_cluster):
        """Test that a drifted Service is updated and keeps its cluster IP."""
        syncer = ExecutorServiceSynchronizer(store)
        syncer.sync_service(sample_cluster)
        live = store.objects[SERVICE_KEY]
        live.metadata.annotations[LAST_APPLIED_CONFIG_ANNOTATION] = "{}"
        live.metadata.labels["extra"] = "kept"

        syncer.sync_service(sample_cluster)

        assert store.mutations()[-1] == ("update", "Service", "basic-tiflow-executor-peer")
        updated = store.objects[SERVICE_KEY]
        assert updated.spec.cluster_ip == "None"
        assert updated.metadata.labels["extra"] == "kept"
        assert service_equal(build_executor_headless_service(sample_cluster), updated)

    def test_service_equal_without_annotation(self, sample_cluster):
        """Test that a Service without an applied spec is never equal."""
        svc = build_executor_headless_service(sample_cluster)
        assert not service_equal(svc, svc)
