"""Headless peer Service of the executor member."""

import copy
import json
import logging

from kubernetes.client import V1ObjectMeta, V1Service, V1ServicePort, V1ServiceSpec

from .models import TiflowCluster
from .naming import (
    LAST_APPLIED_CONFIG_ANNOTATION,
    executor_labels,
    executor_peer_member_name,
    owner_reference,
)
from .serialization import canonical_json, sanitize
from .store import SERVICE, ResourceStore

logger = logging.getLogger(__name__)

EXECUTOR_PORT = 10241


def build_executor_headless_service(cluster: TiflowCluster) -> V1Service:
    """
    Build the executor's headless Service.

    It gives every executor pod a stable DNS name and publishes not-ready
    addresses so peers can find each other before readiness.
    """
    selector = executor_labels(cluster)
    svc_labels = selector.copy().used_by_peer().as_dict()

    return V1Service(
        api_version="v1",
        kind="Service",
        metadata=V1ObjectMeta(
            name=executor_peer_member_name(cluster.name),
            namespace=cluster.namespace,
            labels=svc_labels,
            owner_references=[owner_reference(cluster)],
        ),
        spec=V1ServiceSpec(
            cluster_ip="None",
            ports=[
                V1ServicePort(
                    name="tiflow-executor",
                    port=EXECUTOR_PORT,
                    target_port=EXECUTOR_PORT,
                    protocol="TCP",
                )
            ],
            selector=selector.as_dict(),
            publish_not_ready_addresses=True,
        ),
    )


def set_service_last_applied_config_annotation(service: V1Service) -> None:
    """Record the applied spec on the Service."""
    if service.metadata.annotations is None:
        service.metadata.annotations = {}
    service.metadata.annotations[LAST_APPLIED_CONFIG_ANNOTATION] = canonical_json(service.spec)


def service_equal(new: V1Service, old: V1Service) -> bool:
    """True if the spec last applied to old equals the spec of new."""
    annotations = old.metadata.annotations or {}
    applied = annotations.get(LAST_APPLIED_CONFIG_ANNOTATION)
    if not applied:
        return False
    try:
        return json.loads(applied) == sanitize(new.spec)
    except ValueError:
        logger.warning(
            f"Unreadable last-applied annotation on Service "
            f"{old.metadata.namespace}/{old.metadata.name}"
        )
        return False


class ExecutorServiceSynchronizer:
    """Keeps the executor headless Service in line with the cluster spec."""

    def __init__(self, store: ResourceStore):
        """
        Initialize service synchronizer.

        Args:
            store: Resource store
        """
        self.store = store

    def sync_service(self, cluster: TiflowCluster) -> None:
        """
        Create the Service if absent, or update its spec if it drifted.

        Raises:
            ApiException: If a store call fails
        """
        desired = build_executor_headless_service(cluster)
        name = desired.metadata.name

        logger.info(f"Syncing Service {cluster.namespace}/{name}")
        existing = self.store.get(SERVICE, cluster.namespace, name)

        if existing is None:
            set_service_last_applied_config_annotation(desired)
            self.store.create(desired)
            return

        if service_equal(desired, existing):
            return

        svc = copy.deepcopy(existing)
        # The API server assigns clusterIP and would reject a change to it
        desired.spec.cluster_ip = existing.spec.cluster_ip
        svc.spec = desired.spec
        set_service_last_applied_config_annotation(svc)
        self.store.update(svc)
