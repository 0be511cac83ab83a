"""
Configuration for the Rel SDK.

Uses pydantic-settings for environment variable loading (prefix ``REL_``).
Explicit keyword arguments override the environment.

Invariants:
    - All settings have defaults that target a local server
    - The access token is a SecretStr and is never logged
"""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Connection configuration loaded from environment."""

    # Service address
    scheme: str = Field(default="http", description="Connection scheme")
    host: str = Field(default="127.0.0.1", description="Service host")
    port: int = Field(default=8010, description="Service port")
    base_url: str | None = Field(
        default=None,
        description="Full base URL; overrides scheme/host/port when set",
    )

    # Transport
    timeout: float = Field(default=60.0, description="Request timeout seconds")
    access_token: SecretStr | None = Field(default=None, description="Bearer token")
    default_headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every request",
    )

    # Routing
    default_compute_name: str | None = Field(
        default=None,
        description="Compute used when an operation does not name one",
    )
    is_local_server: bool = Field(
        default=True,
        description="Local servers reject cloud administration calls",
    )

    # Concurrency
    serialize_writes: bool = Field(
        default=True,
        description="Serialize write transactions per database within a connection",
    )

    model_config = {"env_prefix": "REL_"}

    @property
    def endpoint(self) -> str:
        """Resolved base URL."""
        if self.base_url:
            return self.base_url.rstrip("/")
        return f"{self.scheme}://{self.host}:{self.port}"
