"""
MCP (Model Context Protocol) surface for the collaboration protocol.

Exposes the collaboration tools and the introspection resources to
MCP-compatible clients.
"""

from collab_protocol.mcp.resources import (
    MCPResource,
    ResourceContent,
    ResourceRegistry,
    create_protocol_resources,
)
from collab_protocol.mcp.server import MCPServer, create_mcp_server, main
from collab_protocol.mcp.tools import (
    MCPTool,
    MCPToolParameter,
    MCPToolRegistry,
    MCPToolResult,
    create_protocol_tools,
)

__all__ = [
    # Resources
    "MCPResource",
    "ResourceContent",
    "ResourceRegistry",
    "create_protocol_resources",
    # Tools
    "MCPTool",
    "MCPToolParameter",
    "MCPToolRegistry",
    "MCPToolResult",
    "create_protocol_tools",
    # Server
    "MCPServer",
    "create_mcp_server",
    "main",
]
