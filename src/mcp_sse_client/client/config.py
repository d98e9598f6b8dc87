"""Client configuration loaded from the environment."""

from typing import Any

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from mcp_sse_client.client.reconnect import ReconnectPolicy
from mcp_sse_client.types import Implementation


class ClientSettings(BaseSettings):
    """MCP SSE client settings.

    All settings can be configured via environment variables with the prefix MCP_.
    For example, MCP_SERVER_URL=http://localhost:3000 sets server_url.
    """

    model_config = SettingsConfigDict(
        env_prefix="MCP_",
        env_file=".env",
        extra="ignore",
    )

    server_url: str
    debug: bool = False

    client_name: str = "mcp-client"
    client_version: str = "1.0.0"

    # Deadlines, in seconds
    connect_timeout: float = Field(default=30.0, gt=0)
    init_timeout: float = Field(default=30.0, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)
    sse_read_timeout: float = Field(default=60 * 5, gt=0)

    # Reconnection
    max_reconnect_attempts: int = Field(default=3, ge=0)
    reconnect_base_delay: float = Field(default=1.0, ge=0)
    reconnect_max_delay: float = Field(default=10.0, ge=0)
    reset_attempts_after: float | None = None
    """Seconds a connection must stay up before its loss resets the reconnection budget."""

    @property
    def client_info(self) -> Implementation:
        return Implementation(name=self.client_name, version=self.client_version)

    @property
    def reconnect_policy(self) -> ReconnectPolicy:
        return ReconnectPolicy(
            max_attempts=self.max_reconnect_attempts,
            base_delay=self.reconnect_base_delay,
            max_delay=self.reconnect_max_delay,
            reset_after=self.reset_attempts_after,
        )


def load_settings(**overrides: Any) -> ClientSettings:
    """Load settings from the environment (and `.env`), applying `overrides`.

    Raises:
        RuntimeError: If the server URL is not configured or a value is invalid.
    """
    try:
        return ClientSettings(**overrides)
    except ValidationError as exc:
        if any(error["loc"] == ("server_url",) for error in exc.errors()):
            raise RuntimeError(
                "MCP server URL not configured. Please set MCP_SERVER_URL in your environment or .env file."
            ) from exc
        raise RuntimeError(f"Invalid MCP client configuration: {exc}") from exc
