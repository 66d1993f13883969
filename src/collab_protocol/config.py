"""
Configuration settings for the collaboration protocol and its MCP server.

Uses pydantic-settings for environment-based configuration with validation.
Server settings are read from PROTOCOL_MCP_SERVER_* variables, collaboration
behaviour from PROTOCOL_COLLAB_* variables.
"""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TransportType(str, Enum):
    """MCP transport types."""

    STDIO = "stdio"
    SSE = "sse"
    WEBSOCKET = "websocket"


class CollaborationSettings(BaseSettings):
    """Settings for the registry, session table and message router.

    Environment variables:
        PROTOCOL_COLLAB_VALIDATE_AGENT_IDS: Reject agent ids missing from the registry
        PROTOCOL_COLLAB_MAX_SESSIONS: Session table cap (0 = unlimited)
        PROTOCOL_COLLAB_REGISTRY_FILE: JSON agent catalog replacing the built-in one
    """

    model_config = SettingsConfigDict(
        env_prefix="PROTOCOL_COLLAB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    validate_agent_ids: bool = Field(
        default=False,
        description="Require every referenced agent id to exist in the registry",
    )
    max_sessions: int = Field(
        default=0,
        ge=0,
        description="Maximum number of collaboration sessions held in memory (0 = unlimited)",
    )
    registry_file: Optional[Path] = Field(
        default=None,
        description="JSON file with the agent catalog (None = built-in platform agents)",
    )


class MCPServerSettings(BaseSettings):
    """Settings for MCP server configuration.

    Environment variables:
        PROTOCOL_MCP_SERVER_NAME: Server name for identification
        PROTOCOL_MCP_SERVER_VERSION: Server version string
        PROTOCOL_MCP_SERVER_TRANSPORT: Transport type (stdio, sse, websocket)
        PROTOCOL_MCP_SERVER_HOST: Server bind address for network transports
        PROTOCOL_MCP_SERVER_PORT: Server port for network transports
        PROTOCOL_MCP_SERVER_LOG_LEVEL: Logging level
        PROTOCOL_MCP_SERVER_JSON_LOGS: Emit structured JSON log lines
        PROTOCOL_MCP_SERVER_MAX_MESSAGE_BYTES: Largest accepted stdio message
    """

    model_config = SettingsConfigDict(
        env_prefix="PROTOCOL_MCP_SERVER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server identification
    name: str = Field(
        default="collaboration-protocol",
        description="MCP server name",
    )
    version: str = Field(
        default="1.0.0",
        description="MCP server version",
    )
    description: str = Field(
        default="Agent-to-agent communication and workflow coordination",
        description="Server description",
    )

    # Transport settings
    transport: TransportType = Field(
        default=TransportType.STDIO,
        description="MCP transport type",
    )
    host: str = Field(
        default="127.0.0.1",
        description="Server bind address (for sse/websocket)",
    )
    port: int = Field(
        default=8766,
        ge=1,
        le=65535,
        description="Server port (for sse/websocket)",
    )

    max_message_bytes: int = Field(
        default=16 * 1024 * 1024,
        ge=1024,
        description="Largest newline-delimited stdio message accepted, in bytes",
    )

    # Capability settings
    enable_tools: bool = Field(
        default=True,
        description="Enable MCP tools capability",
    )
    enable_resources: bool = Field(
        default=True,
        description="Enable MCP resources capability",
    )

    # Logging and debugging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    json_logs: bool = Field(
        default=True,
        description="Format log lines as JSON",
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging",
    )

    # Security settings
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed origins for CORS (network transports)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid Python logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


class MCPSettings(BaseSettings):
    """Combined settings aggregating server and collaboration configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PROTOCOL_MCP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    server: MCPServerSettings = Field(
        default_factory=MCPServerSettings,
        description="MCP server settings",
    )
    collaboration: CollaborationSettings = Field(
        default_factory=CollaborationSettings,
        description="Registry, session and routing settings",
    )


# Singleton instance cache
_settings: Optional[MCPSettings] = None


def get_mcp_settings(force_reload: bool = False) -> MCPSettings:
    """
    Get MCP settings singleton.

    Args:
        force_reload: If True, reload settings from environment.

    Returns:
        MCPSettings instance.
    """
    global _settings
    if _settings is None or force_reload:
        _settings = MCPSettings()
    return _settings


def reset_mcp_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
