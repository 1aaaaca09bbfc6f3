"""Configuration management for the Berth Kubernetes driver."""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Driver settings."""

    model_config = SettingsConfigDict(
        env_prefix="BERTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    log_level: str = "INFO"

    # Kubernetes Settings
    kubeconfig_path: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file (in-cluster config when unset)",
    )
    kube_context: Optional[str] = None
    default_namespace: str = "default"

    # Readiness Settings
    poll_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Seconds between readiness polls",
    )
    default_timeout_seconds: int = 300

    # Reconciliation Settings
    delete_propagation_policy: str = Field(
        default="Background",
        description="Propagation policy for deletes: Background, Foreground, Orphan",
    )
    delete_on_update_error: bool = Field(
        default=False,
        description="Still delete removed objects when some updates failed",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Install a root logging handler for command-line style callers."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
