"""
Shared configuration management for the OAuth gate.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientConfig(BaseModel):
    """Outbound HTTP client settings used to reach the identity provider."""

    model_config = ConfigDict(frozen=True)

    url: str = ""
    timeout: float = 10.0
    retry_attempts: int = 1
    retry_base_delay: float = 0.5
    retry_max_delay: float = 5.0
    headers: Dict[str, str] = Field(default_factory=dict)


class AuthConfig(BaseSettings):
    """Identity provider client credentials plus the embedded client settings."""

    model_config = SettingsConfigDict(
        env_prefix="GATE_AUTH_",
        env_nested_delimiter="__",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    id: str = ""
    secret: str = ""
    client: ClientConfig = Field(default_factory=ClientConfig)

    @property
    def url(self) -> str:
        """Identity provider base URL."""
        return self.client.url


class ServiceConfig(BaseSettings):
    """Service-level configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GATE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = "gate"
    app_name: str = "gate"
    env: str = "local"
    log_level: str = "info"
    host: str = "0.0.0.0"
    port: int = 8000

    # Upper bound on the per-request token exchange, in seconds
    request_timeout: Optional[float] = 10.0


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)


def get_auth_config() -> AuthConfig:
    """Load identity provider settings from the environment."""
    return AuthConfig()
