"""Tiflow Operator - executor member reconciliation."""

from .cluster import ClusterConnection
from .config import OperatorSettings, configure_logging, get_settings
from .configmap import ExecutorConfigSynchronizer
from .errors import InvalidSpecError, RequeueError, TiflowOperatorError, is_requeue_error
from .executor_manager import ExecutorMemberManager
from .failover import Failover, NoopFailover
from .master_client import LeaderInfo, MasterClient, get_master_client
from .models import (
    ClusterReference,
    ConfigUpdateStrategy,
    ExecutorSpec,
    ExecutorStatus,
    MasterSpec,
    MasterStatus,
    MemberPhase,
    StatefulSetStatusSnapshot,
    TiflowCluster,
    TiflowClusterSpec,
    TiflowClusterStatus,
    TLSCluster,
)
from .scaler import ExecutorScaler, Scaler
from .service import ExecutorServiceSynchronizer
from .statefulset import build_executor_stateful_set, template_equal
from .status import ExecutorStatusSyncer
from .store import ResourceStore
from .upgrader import ExecutorUpgrader, Upgrader

__version__ = "0.1.0"

__all__ = [
    # Reconciliation
    "ExecutorMemberManager",
    "ExecutorServiceSynchronizer",
    "ExecutorConfigSynchronizer",
    "ExecutorStatusSyncer",
    "build_executor_stateful_set",
    "template_equal",
    # Collaborators
    "Scaler",
    "ExecutorScaler",
    "Upgrader",
    "ExecutorUpgrader",
    "Failover",
    "NoopFailover",
    "MasterClient",
    "LeaderInfo",
    "get_master_client",
    # Store
    "ClusterConnection",
    "ResourceStore",
    # Settings
    "OperatorSettings",
    "get_settings",
    "configure_logging",
    # Errors
    "TiflowOperatorError",
    "InvalidSpecError",
    "RequeueError",
    "is_requeue_error",
    # Models
    "TiflowCluster",
    "TiflowClusterSpec",
    "TiflowClusterStatus",
    "ExecutorSpec",
    "ExecutorStatus",
    "MasterSpec",
    "MasterStatus",
    "ClusterReference",
    "TLSCluster",
    "MemberPhase",
    "ConfigUpdateStrategy",
    "StatefulSetStatusSnapshot",
]
