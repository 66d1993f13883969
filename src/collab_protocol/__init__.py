"""
Collaboration Protocol - coordination core for autonomous specialist agents.

This package provides:

- An agent registry describing the known agents and their capabilities
- A collaboration session manager tracking multi-agent tasks
- A message router accepting typed messages between agents
- An MCP server exposing collaboration tools and introspection resources
"""

__version__ = "1.0.0"

from collab_protocol.config import (
    CollaborationSettings,
    MCPServerSettings,
    MCPSettings,
    TransportType,
    get_mcp_settings,
    reset_mcp_settings,
)
from collab_protocol.exceptions import (
    AgentNotFoundError,
    InternalError,
    NotFoundError,
    ProtocolError,
    ResourceNotFoundError,
    SessionNotFoundError,
    ToolNotFoundError,
    ValidationError,
)
from collab_protocol.models import (
    Agent,
    AgentMessage,
    AgentStatus,
    CollaborationPreferences,
    CollaborationRole,
    CollaborationSession,
    CollaborationType,
    MessageReceipt,
    MessageType,
    SessionStatus,
)
from collab_protocol.protocol import CollaborationProtocol, create_protocol
from collab_protocol.registry import (
    AgentRegistry,
    create_default_registry,
    create_registry,
    load_registry,
)
from collab_protocol.router import MessageRouter
from collab_protocol.sessions import SessionManager

__all__ = [
    "__version__",
    # Configuration
    "CollaborationSettings",
    "MCPServerSettings",
    "MCPSettings",
    "TransportType",
    "get_mcp_settings",
    "reset_mcp_settings",
    # Errors
    "AgentNotFoundError",
    "InternalError",
    "NotFoundError",
    "ProtocolError",
    "ResourceNotFoundError",
    "SessionNotFoundError",
    "ToolNotFoundError",
    "ValidationError",
    # Models
    "Agent",
    "AgentMessage",
    "AgentStatus",
    "CollaborationPreferences",
    "CollaborationRole",
    "CollaborationSession",
    "CollaborationType",
    "MessageReceipt",
    "MessageType",
    "SessionStatus",
    # Core
    "AgentRegistry",
    "CollaborationProtocol",
    "MessageRouter",
    "SessionManager",
    "create_default_registry",
    "create_protocol",
    "create_registry",
    "load_registry",
]
