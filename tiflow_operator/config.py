"""Configuration management for the tiflow operator."""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import ConfigUpdateStrategy


class OperatorSettings(BaseSettings):
    """Operator settings."""

    model_config = SettingsConfigDict(
        env_prefix="TIFLOW_OPERATOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = "INFO"

    # Kubernetes Settings
    kubeconfig_path: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file, in-cluster config is used when unset",
    )
    kube_context: Optional[str] = None

    # Executor Defaults
    default_storage_size: str = "10Gi"
    default_config_update_strategy: ConfigUpdateStrategy = (
        ConfigUpdateStrategy.IN_PLACE_IF_POSSIBLE
    )

    # Master client
    master_timeout_seconds: float = 5.0
    master_tls_ca_file: Optional[str] = Field(
        default=None,
        description="CA bundle for masters with cluster TLS, system CAs when unset",
    )
    master_tls_cert_file: Optional[str] = None
    master_tls_key_file: Optional[str] = None


@lru_cache
def get_settings() -> OperatorSettings:
    """Get cached settings instance."""
    return OperatorSettings()


def configure_logging(settings: OperatorSettings) -> None:
    """Configure root logging from settings."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
