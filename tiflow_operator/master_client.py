"""HTTP client for the tiflow master API."""

import logging
import ssl
from typing import Any, Optional, Protocol

import httpx
from pydantic import BaseModel

from .config import OperatorSettings, get_settings
from .models import TiflowCluster
from .naming import joined_master_host, master_member_name

logger = logging.getLogger(__name__)

MASTER_PORT = 10240


class LeaderInfo(BaseModel):
    """Current master leader."""

    advertise_addr: str = ""


class LeaderGetter(Protocol):
    """Anything that can report the master leader."""

    def get_leader(self) -> LeaderInfo: ...

    def close(self) -> None: ...


class MasterClient:
    """Client for a tiflow master's HTTP API."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        verify: Any = True,
    ):
        """
        Initialize master client.

        Args:
            url: Master base URL (scheme, host and port)
            timeout: Request timeout in seconds
            verify: SSL context (or flag) passed to httpx
        """
        self.url = url.rstrip("/")
        self.client = httpx.Client(
            base_url=f"{self.url}/api/v1",
            timeout=timeout,
            verify=verify,
        )

    def get_leader(self) -> LeaderInfo:
        """
        Get the current master leader.

        Returns:
            LeaderInfo of the elected leader

        Raises:
            httpx.HTTPError: If the master is unreachable or answers non-2xx
        """
        response = self.client.get("/leader")
        response.raise_for_status()
        return LeaderInfo(**response.json())

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


def master_url(cluster: TiflowCluster) -> str:
    """Base URL of the master that the cluster's executors join."""
    scheme = "https" if cluster.is_cluster_tls_enabled() else "http"
    host = joined_master_host(cluster)
    if host == master_member_name(cluster.name):
        host = f"{host}.{cluster.namespace}"
    return f"{scheme}://{host}:{MASTER_PORT}"


def master_tls_context(settings: OperatorSettings) -> ssl.SSLContext:
    """
    SSL context for talking to masters with cluster TLS enabled.

    The CA bundle defaults to the system CAs; the client certificate is
    presented only when one is configured.
    """
    context = ssl.create_default_context(cafile=settings.master_tls_ca_file)
    if settings.master_tls_cert_file:
        context.load_cert_chain(
            certfile=settings.master_tls_cert_file,
            keyfile=settings.master_tls_key_file,
        )
    return context


def get_master_client(
    cluster: TiflowCluster, settings: Optional[OperatorSettings] = None
) -> MasterClient:
    """Build a master client for the cluster."""
    settings = settings or get_settings()
    url = master_url(cluster)
    logger.debug(f"Using master client {url} for cluster {cluster.namespace}/{cluster.name}")

    verify: Any = True
    if cluster.is_cluster_tls_enabled():
        verify = master_tls_context(settings)
    return MasterClient(url, timeout=settings.master_timeout_seconds, verify=verify)
