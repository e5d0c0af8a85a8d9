"""Configuration management for the pushdeploy agent."""

from typing import Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Agent configuration settings.

    Settings are frozen once constructed: the API key is read at process start
    and cannot be changed for the lifetime of the process.
    """

    model_config = SettingsConfigDict(
        env_prefix="PUSHDEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Server configuration
    host: str = Field("0.0.0.0", description="Server host")
    port: int = Field(9999, description="Server port")

    # Security
    api_key: Optional[SecretStr] = Field(None, description="Shared bearer secret for /deploy")

    # Storage
    upload_dir: str = Field("./uploads", description="Directory holding deployment workspaces")
    upload_field: str = Field("deployment", description="Multipart field carrying the archive")
    max_upload_size_mb: int = Field(100, description="Maximum accepted archive size in MB")
    unique_workspace_names: bool = Field(
        False,
        description="Append a random suffix to workspace names to avoid same-second collisions",
    )

    # Execution
    entry_script: str = Field("DEPLOY.sh", description="Entry-point script required at the archive root")
    script_interpreter: str = Field("/bin/bash", description="Interpreter used to run the entry-point script")

    # Cleanup
    cleanup_delay_seconds: float = Field(5.0, description="Grace period before a workspace is removed")
    reap_after_exit: bool = Field(
        False,
        description="Start the grace period when the script exits instead of when it is launched",
    )
    reap_failed_workspaces: bool = Field(
        True,
        description="Schedule removal of workspaces whose deployment failed before launch",
    )
    shutdown_timeout_seconds: float = Field(30.0, description="How long shutdown waits for in-flight deployments")

    # Observability
    log_level: str = Field("INFO", description="Log level")
    log_format: str = Field("json", description="Log format (json or console)")
    metrics_enabled: bool = Field(True, description="Expose Prometheus metrics at /metrics")

    @field_validator("api_key", mode="before")
    @classmethod
    def empty_api_key_is_unset(cls, v):
        """Treat an empty or whitespace-only key as missing."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v not in ("json", "console"):
            raise ValueError(f"Unsupported log format: {v}")
        return v

    @field_validator("cleanup_delay_seconds", "shutdown_timeout_seconds")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Durations must not be negative")
        return v

    @property
    def max_upload_size_bytes(self) -> int:
        """Maximum upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024

    def api_key_value(self) -> Optional[str]:
        """Return the plain API key, or None when not configured."""
        return self.api_key.get_secret_value() if self.api_key else None
