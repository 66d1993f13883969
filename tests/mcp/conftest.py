"""Pytest fixtures for MCP tests."""

import pytest


@pytest.fixture
def mcp_settings():
    """Create test MCP settings."""
    from collab_protocol.config import CollaborationSettings, MCPServerSettings, MCPSettings

    return MCPSettings(
        server=MCPServerSettings(
            name="test-mcp-server",
            version="1.0.0-test",
            debug_mode=True,
            log_level="DEBUG",
            json_logs=False,
        ),
        collaboration=CollaborationSettings(),
    )


@pytest.fixture
def tool_registry(protocol):
    """Create a test tool registry."""
    from collab_protocol.mcp.tools import create_protocol_tools

    return create_protocol_tools(protocol)


@pytest.fixture
def resource_registry(protocol):
    """Create a test resource registry."""
    from collab_protocol.mcp.resources import create_protocol_resources

    return create_protocol_resources(protocol)


@pytest.fixture
def mcp_server(mcp_settings, protocol):
    """Create a test MCP server."""
    from collab_protocol.mcp.server import MCPServer

    return MCPServer(settings=mcp_settings.server, protocol=protocol)


@pytest.fixture
def rpc(mcp_server):
    """Send one JSON-RPC request to the test server and decode the reply."""
    import json

    counter = {"id": 0}

    async def call(method, params=None):
        counter["id"] += 1
        message = {"jsonrpc": "2.0", "id": counter["id"], "method": method}
        if params is not None:
            message["params"] = params
        response = await mcp_server.handle_message(json.dumps(message))
        return json.loads(response)

    return call
