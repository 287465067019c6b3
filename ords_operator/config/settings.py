"""
Operator configuration using Pydantic Settings.
Loads configuration from environment variables with validation.
"""
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Main operator settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Oracle REST Data Service Operator", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment (development/staging/production/testing)")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Health / metrics server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, ge=1, le=65535, description="Server port")

    # Kubernetes
    kubeconfig_path: Optional[str] = Field(
        default=None, description="Path to kubeconfig file (None for in-cluster)"
    )
    k8s_in_cluster: bool = Field(default=False, description="Running inside Kubernetes cluster")
    watch_namespace: Optional[str] = Field(
        default=None, description="Namespace to watch (None watches all namespaces)"
    )

    # Reconciliation
    requeue_delay_seconds: float = Field(
        default=15.0, ge=0.0, le=600.0, description="Delay before a requested reconcile retry"
    )
    resync_interval_seconds: int = Field(
        default=300, ge=10, le=3600, description="Interval of the periodic full resync"
    )
    max_concurrent_reconciles: int = Field(
        default=100, ge=1, le=1000, description="Max reconciles running in parallel across instances"
    )
    exec_timeout_seconds: int = Field(
        default=600, ge=10, description="Upper bound for a single command executed inside a pod"
    )

    # Teardown bounded retries
    secret_lookup_attempts: int = Field(default=5, ge=1, le=50, description="Admin secret lookups during teardown")
    secret_lookup_delay_seconds: float = Field(default=15.0, ge=0.0, description="Delay between admin secret lookups")
    status_update_attempts: int = Field(default=10, ge=1, le=50, description="Primary database status write attempts")
    status_update_delay_seconds: float = Field(default=5.0, ge=0.0, description="Delay between status write attempts")

    # Monitoring
    prometheus_enabled: bool = Field(default=True, description="Enable Prometheus metrics")

    # Sentry
    sentry_dsn: Optional[str] = Field(default=None, description="Sentry DSN for error tracking")
    sentry_traces_sample_rate: float = Field(
        default=0.1, ge=0.0, le=1.0, description="Sentry traces sample rate"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment."""
        valid_envs = ["development", "staging", "production", "testing"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of {valid_envs}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"


# Global settings instance
settings = Settings()
