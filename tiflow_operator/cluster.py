"""Kubernetes API client bootstrap."""

import logging
from typing import Optional

from kubernetes import config
from kubernetes.client import ApiClient, AppsV1Api, CoreV1Api
from kubernetes.client.exceptions import ApiException

from .config import OperatorSettings

logger = logging.getLogger(__name__)


class ClusterConnection:
    """Connection to the Kubernetes API server the operator reconciles against."""

    def __init__(self, settings: OperatorSettings):
        """
        Initialize cluster connection.

        Args:
            settings: Operator settings (kubeconfig path and context)

        Raises:
            ValueError: If the kubeconfig cannot be loaded
        """
        self.settings = settings
        self._api_client: Optional[ApiClient] = None
        self._core_v1: Optional[CoreV1Api] = None
        self._apps_v1: Optional[AppsV1Api] = None

        self._initialize_client()

    def _initialize_client(self):
        """Initialize Kubernetes API client."""
        try:
            if self.settings.kubeconfig_path:
                config.load_kube_config(
                    config_file=self.settings.kubeconfig_path,
                    context=self.settings.kube_context,
                )
                logger.info(f"Loaded kubeconfig from {self.settings.kubeconfig_path}")
            else:
                # Running inside the cluster
                config.load_incluster_config()
                logger.info("Loaded in-cluster config")

            self._api_client = ApiClient()
            self._core_v1 = CoreV1Api(self._api_client)
            self._apps_v1 = AppsV1Api(self._api_client)

        except Exception as e:
            raise ValueError(f"Failed to initialize cluster connection: {e}") from e

    @property
    def core_v1(self) -> CoreV1Api:
        """Get CoreV1Api instance."""
        if not self._core_v1:
            raise RuntimeError("Cluster connection not initialized")
        return self._core_v1

    @property
    def apps_v1(self) -> AppsV1Api:
        """Get AppsV1Api instance."""
        if not self._apps_v1:
            raise RuntimeError("Cluster connection not initialized")
        return self._apps_v1

    def is_healthy(self) -> bool:
        """
        Check if the API server is reachable.

        Returns:
            True if the API server answered
        """
        try:
            self.core_v1.get_api_resources()
            return True
        except ApiException:
            return False

    def close(self):
        """Close the connection."""
        if self._api_client:
            self._api_client.close()
            self._api_client = None
        self._core_v1 = None
        self._apps_v1 = None

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
