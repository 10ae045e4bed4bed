"""Executor failover capability."""

from typing import Protocol

from .models import TiflowCluster


class Failover(Protocol):
    """Replaces failed members and recovers them once healthy again."""

    def failover(self, cluster: TiflowCluster) -> None: ...

    def recover(self, cluster: TiflowCluster) -> None: ...


class NoopFailover:
    """Failover that does nothing; executor failover is not handled yet."""

    def failover(self, cluster: TiflowCluster) -> None:
        return None

    def recover(self, cluster: TiflowCluster) -> None:
        return None
