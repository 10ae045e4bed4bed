"""Pytest configuration and fixtures for tiflow operator tests."""

import copy
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client import V1ObjectMeta, V1Pod, V1StatefulSetStatus
from kubernetes.client.exceptions import ApiException

from tiflow_operator import (
    ExecutorSpec,
    LeaderInfo,
    MasterSpec,
    OperatorSettings,
    ResourceStore,
    TiflowCluster,
    TiflowClusterSpec,
)
from tiflow_operator.store import kind_of


class InMemoryStore(ResourceStore):
    """ResourceStore keeping objects in a dict and recording every call."""

    def __init__(self):
        self.objects: dict[tuple[str, str, str], Any] = {}
        self.calls: list[tuple[str, str, str]] = []
        self._version = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def get(self, kind: str, namespace: str, name: str) -> Optional[Any]:
        self.calls.append(("get", kind, name))
        obj = self.objects.get((kind, namespace, name))
        return copy.deepcopy(obj)

    def create(self, obj: Any) -> Any:
        kind = kind_of(obj)
        key = (kind, obj.metadata.namespace, obj.metadata.name)
        self.calls.append(("create", kind, obj.metadata.name))
        if key in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        stored = copy.deepcopy(obj)
        stored.metadata.resource_version = self._next_version()
        self.objects[key] = stored
        return copy.deepcopy(stored)

    def update(self, obj: Any) -> Any:
        kind = kind_of(obj)
        key = (kind, obj.metadata.namespace, obj.metadata.name)
        self.calls.append(("update", kind, obj.metadata.name))
        current = self.objects.get(key)
        if current is None:
            raise ApiException(status=404, reason="NotFound")
        if obj.metadata.resource_version != current.metadata.resource_version:
            raise ApiException(status=409, reason="Conflict")
        stored = copy.deepcopy(obj)
        stored.metadata.resource_version = self._next_version()
        self.objects[key] = stored
        return copy.deepcopy(stored)

    def list(self, kind: str, namespace: str, label_selector: Optional[str] = None) -> list:
        self.calls.append(("list", kind, label_selector or ""))
        wanted = {}
        if label_selector:
            wanted = dict(part.split("=", 1) for part in label_selector.split(","))
        result = []
        for (obj_kind, obj_ns, _), obj in self.objects.items():
            if obj_kind != kind or obj_ns != namespace:
                continue
            labels = obj.metadata.labels or {}
            if all(labels.get(k) == v for k, v in wanted.items()):
                result.append(copy.deepcopy(obj))
        return result

    def mutations(self):
        return [call for call in self.calls if call[0] in ("create", "update")]

    def add_pod(self, name: str, namespace: str, labels: dict[str, str]) -> None:
        pod = V1Pod(
            api_version="v1",
            kind="Pod",
            metadata=V1ObjectMeta(name=name, namespace=namespace, labels=labels),
        )
        self.objects[("Pod", namespace, name)] = pod

    def set_stateful_set_status(
        self, namespace: str, name: str, status: V1StatefulSetStatus, generation: int = 1
    ) -> None:
        sts = self.objects[("StatefulSet", namespace, name)]
        sts.status = status
        sts.metadata.generation = generation


@pytest.fixture
def store():
    """In-memory resource store."""
    return InMemoryStore()


@pytest.fixture
def mock_cluster_connection():
    """Mock cluster connection for testing."""
    mock_conn = MagicMock()
    mock_conn.core_v1 = MagicMock(spec=client.CoreV1Api)
    mock_conn.apps_v1 = MagicMock(spec=client.AppsV1Api)
    return mock_conn


@pytest.fixture
def settings():
    """Operator settings with defaults."""
    return OperatorSettings(_env_file=None)


@pytest.fixture
def master_client():
    """Mock master client whose leader request succeeds."""
    mock_client = MagicMock()
    mock_client.get_leader.return_value = LeaderInfo(advertise_addr="basic-tiflow-master-0:10240")
    return mock_client


@pytest.fixture
def master_client_factory(master_client):
    """Factory handing out the mock master client."""
    return MagicMock(return_value=master_client)


@pytest.fixture
def sample_cluster():
    """Sample TiflowCluster with a local master and three executors."""
    return TiflowCluster(
        name="basic",
        namespace="default",
        uid="6f1f1a52-5d1c-4b8c-9d36-3a8e0e0b7c11",
        spec=TiflowClusterSpec(
            version="v6.5.0",
            master=MasterSpec(replicas=3),
            executor=ExecutorSpec(
                replicas=3,
                storage_size="20Gi",
                requests={"cpu": "1", "memory": "1Gi", "storage": "20Gi"},
                config={"keepalive-ttl": "20s", "worker": {"concurrency": 8}},
            ),
        ),
    )


@pytest.fixture
def make_stateful_set():
    """Factory for a live executor StatefulSet as the API server would return it."""
    from tiflow_operator.configmap import build_executor_config_map
    from tiflow_operator.statefulset import (
        build_executor_stateful_set,
        set_last_applied_config_annotation,
    )

    def _make(
        cluster: TiflowCluster,
        replicas: Optional[int] = None,
        status: Optional[V1StatefulSetStatus] = None,
        generation: int = 1,
    ):
        config_map = build_executor_config_map(cluster)
        sts = build_executor_stateful_set(cluster, config_map)
        if replicas is not None:
            sts.spec.replicas = replicas
        set_last_applied_config_annotation(sts)
        sts.metadata.resource_version = "100"
        sts.metadata.generation = generation
        sts.status = status
        return sts

    return _make
