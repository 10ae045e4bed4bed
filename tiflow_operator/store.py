"""Resource store operations against the Kubernetes API server."""

import copy
import logging
from typing import Any, Callable, Optional

from kubernetes.client import V1ConfigMap, V1Pod, V1Service, V1StatefulSet
from kubernetes.client.exceptions import ApiException
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from .serialization import sanitize

logger = logging.getLogger(__name__)

STATEFUL_SET = "StatefulSet"
SERVICE = "Service"
CONFIG_MAP = "ConfigMap"
POD = "Pod"

_KINDS_BY_TYPE = {
    V1StatefulSet: STATEFUL_SET,
    V1Service: SERVICE,
    V1ConfigMap: CONFIG_MAP,
    V1Pod: POD,
}


def _is_transient(exc: BaseException) -> bool:
    """Throttling and server-side failures are worth retrying."""
    if not isinstance(exc, ApiException):
        return False
    return exc.status == 429 or (exc.status or 0) >= 500


store_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception(_is_transient),
    reraise=True,
)


def kind_of(obj: Any) -> str:
    """Resource kind of a client model."""
    if getattr(obj, "kind", None):
        return obj.kind
    try:
        return _KINDS_BY_TYPE[type(obj)]
    except KeyError:
        raise ValueError(f"Unsupported resource type {type(obj).__name__}") from None


class ResourceStore:
    """
    Blocking get/create/update/list over the namespaced resources the
    executor reconciler owns.

    A 404 on get is reported as None; every other API error propagates as
    ApiException after transient failures have been retried.
    """

    def __init__(self, cluster):
        """
        Initialize resource store.

        Args:
            cluster: Cluster connection exposing core_v1 and apps_v1
        """
        self.cluster = cluster
        self.core_v1 = cluster.core_v1
        self.apps_v1 = cluster.apps_v1

    def _api(self, kind: str, verb: str) -> Callable:
        methods = {
            STATEFUL_SET: {
                "read": self.apps_v1.read_namespaced_stateful_set,
                "create": self.apps_v1.create_namespaced_stateful_set,
                "replace": self.apps_v1.replace_namespaced_stateful_set,
                "list": self.apps_v1.list_namespaced_stateful_set,
            },
            SERVICE: {
                "read": self.core_v1.read_namespaced_service,
                "create": self.core_v1.create_namespaced_service,
                "replace": self.core_v1.replace_namespaced_service,
                "list": self.core_v1.list_namespaced_service,
            },
            CONFIG_MAP: {
                "read": self.core_v1.read_namespaced_config_map,
                "create": self.core_v1.create_namespaced_config_map,
                "replace": self.core_v1.replace_namespaced_config_map,
                "list": self.core_v1.list_namespaced_config_map,
            },
            POD: {
                "read": self.core_v1.read_namespaced_pod,
                "create": self.core_v1.create_namespaced_pod,
                "replace": self.core_v1.replace_namespaced_pod,
                "list": self.core_v1.list_namespaced_pod,
            },
        }
        if kind not in methods:
            raise ValueError(f"Unsupported resource kind {kind}")
        return methods[kind][verb]

    @store_retry
    def get(self, kind: str, namespace: str, name: str) -> Optional[Any]:
        """
        Get a resource.

        Args:
            kind: Resource kind (StatefulSet, Service, ConfigMap, Pod)
            namespace: Kubernetes namespace
            name: Resource name

        Returns:
            Client model or None if not found
        """
        try:
            return self._api(kind, "read")(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    @store_retry
    def create(self, obj: Any) -> Any:
        """
        Create a resource in its own namespace.

        Raises:
            ApiException: If creation fails
        """
        kind = kind_of(obj)
        logger.info(f"Creating {kind} {obj.metadata.namespace}/{obj.metadata.name}")
        return self._api(kind, "create")(namespace=obj.metadata.namespace, body=obj)

    @store_retry
    def update(self, obj: Any) -> Any:
        """
        Replace a resource.

        The object must carry the resource_version it was read with, so a
        concurrent write surfaces as a 409 conflict.

        Raises:
            ApiException: If the update fails
        """
        kind = kind_of(obj)
        logger.info(f"Updating {kind} {obj.metadata.namespace}/{obj.metadata.name}")
        return self._api(kind, "replace")(
            name=obj.metadata.name,
            namespace=obj.metadata.namespace,
            body=obj,
        )

    @store_retry
    def list(
        self, kind: str, namespace: str, label_selector: Optional[str] = None
    ) -> list[Any]:
        """
        List resources.

        Args:
            kind: Resource kind
            namespace: Kubernetes namespace
            label_selector: Label selector string

        Returns:
            List of client models
        """
        result = self._api(kind, "list")(
            namespace=namespace,
            label_selector=label_selector,
        )
        return result.items

    def create_or_update_config_map(self, desired: V1ConfigMap) -> V1ConfigMap:
        """
        Create the ConfigMap or merge the desired content into the live one.

        Data is replaced, labels are merged and existing owner references are
        kept. No write is issued when the merge changes nothing.

        Returns:
            The live ConfigMap
        """
        namespace = desired.metadata.namespace
        name = desired.metadata.name
        existing = self.get(CONFIG_MAP, namespace, name)
        if existing is None:
            return self.create(desired)

        merged = copy.deepcopy(existing)
        merged.data = desired.data
        merged.metadata.labels = {
            **(existing.metadata.labels or {}),
            **(desired.metadata.labels or {}),
        }
        if not existing.metadata.owner_references:
            merged.metadata.owner_references = desired.metadata.owner_references

        if sanitize(merged) == sanitize(existing):
            logger.debug(f"ConfigMap {namespace}/{name} is up to date")
            return existing
        return self.update(merged)
