"""
MCP server implementation for the collaboration protocol.

This module provides an MCP (Model Context Protocol) server that exposes the
collaboration tools and introspection resources to MCP-compatible clients
over stdio, SSE or WebSocket.
"""

import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from collab_protocol.config import (
    MCPServerSettings,
    MCPSettings,
    TransportType,
    get_mcp_settings,
)
from collab_protocol.exceptions import ProtocolError, RPCErrorCode, ValidationError
from collab_protocol.logging import EventType, configure_protocol_logging, get_protocol_logger
from collab_protocol.mcp.resources import ResourceRegistry, create_protocol_resources
from collab_protocol.mcp.tools import MCPToolRegistry, create_protocol_tools
from collab_protocol.protocol import CollaborationProtocol, create_protocol

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"


class MCPMessageType(str, Enum):
    """MCP protocol message types."""

    # Lifecycle
    INITIALIZE = "initialize"
    INITIALIZED = "notifications/initialized"
    SHUTDOWN = "shutdown"
    PING = "ping"

    # Capabilities
    LIST_TOOLS = "tools/list"
    CALL_TOOL = "tools/call"
    LIST_RESOURCES = "resources/list"
    LIST_RESOURCE_TEMPLATES = "resources/templates/list"
    READ_RESOURCE = "resources/read"
    LIST_PROMPTS = "prompts/list"


@dataclass
class MCPError:
    """MCP error representation."""

    code: int
    message: str
    data: Optional[Any] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary format."""
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.data is not None:
            result["data"] = self.data
        return result

    @classmethod
    def from_exception(cls, error: ProtocolError) -> "MCPError":
        return cls(code=error.rpc_code, message=error.message, data=error.to_dict())


@dataclass
class ServerCapabilities:
    """Server capabilities declaration."""

    tools: bool = True
    resources: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP capabilities format."""
        caps: dict[str, Any] = {}

        if self.tools:
            caps["tools"] = {}
        if self.resources:
            caps["resources"] = {}

        return caps


@dataclass
class MCPRequest:
    """Parsed MCP request."""

    jsonrpc: str
    method: str
    id: Optional[str | int] = None
    params: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MCPRequest":
        """Parse request from dictionary."""
        params = data.get("params")
        return cls(
            jsonrpc=data.get("jsonrpc", "2.0"),
            method=data.get("method", ""),
            id=data.get("id"),
            params=params if isinstance(params, dict) else {},
        )


@dataclass
class MCPResponse:
    """MCP response."""

    jsonrpc: str = "2.0"
    id: Optional[str | int] = None
    result: Optional[Any] = None
    error: Optional[MCPError] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary format."""
        response: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}

        if self.error is not None:
            response["error"] = self.error.to_dict()
        else:
            response["result"] = self.result if self.result is not None else {}

        return response

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class MCPServer:
    """
    MCP server for agent collaboration.

    Dispatches JSON-RPC requests to the collaboration tools and
    introspection resources. Every request gets a well-formed response;
    failures never terminate the message loop.

    Example:
        ```python
        server = create_mcp_server()
        await server.run()
        ```
    """

    def __init__(
        self,
        settings: Optional[MCPServerSettings] = None,
        protocol: Optional[CollaborationProtocol] = None,
        tool_registry: Optional[MCPToolRegistry] = None,
        resource_registry: Optional[ResourceRegistry] = None,
    ):
        """
        Initialize MCP server.

        Args:
            settings: Server settings. Uses defaults from environment if not provided.
            protocol: Collaboration state. Creates one from environment settings if not provided.
            tool_registry: Custom tool registry. Creates default if not provided.
            resource_registry: Custom resource registry. Creates default if not provided.
        """
        self.settings = settings or get_mcp_settings().server
        self._setup_logging()

        self.protocol = protocol or create_protocol()
        self.tool_registry = tool_registry or create_protocol_tools(self.protocol)
        self.resource_registry = resource_registry or create_protocol_resources(self.protocol)

        # Server state
        self._initialized = False
        self._running = False
        self._client_info: Optional[dict[str, Any]] = None

        self.capabilities = ServerCapabilities(
            tools=self.settings.enable_tools,
            resources=self.settings.enable_resources,
        )

        self._handlers: dict[str, Callable[[MCPRequest], Awaitable[dict[str, Any]]]] = {
            MCPMessageType.INITIALIZE.value: self._handle_initialize,
            MCPMessageType.INITIALIZED.value: self._handle_initialized,
            MCPMessageType.SHUTDOWN.value: self._handle_shutdown,
            MCPMessageType.PING.value: self._handle_ping,
            MCPMessageType.LIST_TOOLS.value: self._handle_list_tools,
            MCPMessageType.CALL_TOOL.value: self._handle_call_tool,
            MCPMessageType.LIST_RESOURCES.value: self._handle_list_resources,
            MCPMessageType.LIST_RESOURCE_TEMPLATES.value: self._handle_list_resource_templates,
            MCPMessageType.READ_RESOURCE.value: self._handle_read_resource,
            MCPMessageType.LIST_PROMPTS.value: self._handle_list_prompts,
        }

        logger.info(f"MCP Server initialized: {self.settings.name} v{self.settings.version}")

    @property
    def initialized(self) -> bool:
        return self._initialized

    def _setup_logging(self) -> None:
        """Configure logging based on settings."""
        level = "DEBUG" if self.settings.debug_mode else self.settings.log_level
        configure_protocol_logging(level=level, json_output=self.settings.json_logs)

    async def handle_message(self, message: str | bytes) -> Optional[str]:
        """
        Handle an incoming MCP message.

        Args:
            message: JSON-RPC message, as text or UTF-8 bytes.

        Returns:
            Response JSON string, or None for notifications.
        """
        if isinstance(message, bytes):
            try:
                message = message.decode("utf-8")
            except UnicodeDecodeError as e:
                return MCPResponse(
                    error=MCPError(RPCErrorCode.PARSE_ERROR, f"Invalid UTF-8: {e}")
                ).to_json()

        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            return MCPResponse(
                error=MCPError(RPCErrorCode.PARSE_ERROR, f"Invalid JSON: {e}")
            ).to_json()

        if not isinstance(data, dict) or not isinstance(data.get("method"), str):
            return MCPResponse(
                id=data.get("id") if isinstance(data, dict) else None,
                error=MCPError(RPCErrorCode.INVALID_REQUEST, "Invalid request"),
            ).to_json()

        response = await self.handle_request(MCPRequest.from_dict(data))
        return response.to_json() if response is not None else None

    async def handle_request(self, request: MCPRequest) -> Optional[MCPResponse]:
        """
        Dispatch a parsed request to its handler.

        Returns:
            The response, or None for notifications.
        """
        handler = self._handlers.get(request.method)
        if handler is None:
            if request.id is None:
                return None
            return MCPResponse(
                id=request.id,
                error=MCPError(
                    RPCErrorCode.METHOD_NOT_FOUND,
                    f"Method not found: {request.method}",
                ),
            )

        try:
            result = await handler(request)
        except ProtocolError as e:
            logger.warning(f"{request.method} failed: {e.message}")
            error = MCPError.from_exception(e)
        except Exception as e:
            get_protocol_logger().exception(
                f"Error handling {request.method}", event_type=EventType.ERROR
            )
            error = MCPError(RPCErrorCode.INTERNAL_ERROR, str(e))
        else:
            if request.id is None:
                return None
            return MCPResponse(id=request.id, result=result)

        if request.id is None:
            return None
        return MCPResponse(id=request.id, error=error)

    async def _handle_initialize(self, request: MCPRequest) -> dict[str, Any]:
        """Handle initialize request."""
        self._client_info = request.params.get("clientInfo")
        self._initialized = True

        logger.info(f"Client initialized: {self._client_info}")

        return {
            "protocolVersion": request.params.get("protocolVersion", PROTOCOL_VERSION),
            "capabilities": self.capabilities.to_dict(),
            "serverInfo": {
                "name": self.settings.name,
                "version": self.settings.version,
            },
        }

    async def _handle_initialized(self, request: MCPRequest) -> dict[str, Any]:
        return {}

    async def _handle_shutdown(self, request: MCPRequest) -> dict[str, Any]:
        """Handle shutdown request."""
        self._running = False
        self._initialized = False
        logger.info("Server shutdown requested")
        return {}

    async def _handle_ping(self, request: MCPRequest) -> dict[str, Any]:
        return {}

    async def _handle_list_tools(self, request: MCPRequest) -> dict[str, Any]:
        """Handle tools/list request."""
        if not self.settings.enable_tools:
            return {"tools": []}
        return {"tools": self.tool_registry.to_mcp_format()}

    async def _handle_call_tool(self, request: MCPRequest) -> dict[str, Any]:
        """
        Handle tools/call request.

        Tool failures, including an unknown tool name, are reported inside
        the result with ``isError`` rather than as a JSON-RPC error.
        """
        if not self.settings.enable_tools:
            raise ProtocolError("Tools capability not enabled")

        tool_name = request.params.get("name")
        arguments = request.params.get("arguments") or {}

        if not tool_name:
            return {
                "isError": True,
                "content": [{"type": "text", "text": "Tool name is required"}],
            }

        result = await self.tool_registry.call(tool_name, arguments)
        return result.to_mcp_format()

    async def _handle_list_resources(self, request: MCPRequest) -> dict[str, Any]:
        """Handle resources/list request."""
        if not self.settings.enable_resources:
            return {"resources": []}
        return {"resources": self.resource_registry.to_mcp_format()}

    async def _handle_list_resource_templates(self, request: MCPRequest) -> dict[str, Any]:
        """Handle resources/templates/list request."""
        if not self.settings.enable_resources:
            return {"resourceTemplates": []}
        return {"resourceTemplates": self.resource_registry.templates_to_mcp_format()}

    async def _handle_read_resource(self, request: MCPRequest) -> dict[str, Any]:
        """Handle resources/read request."""
        if not self.settings.enable_resources:
            raise ProtocolError("Resources capability not enabled")

        uri = request.params.get("uri")
        if not uri:
            raise ValidationError("Resource URI is required", field="uri")

        logger.debug(f"Reading resource: {uri}")

        content = await self.resource_registry.read(uri)
        get_protocol_logger().debug(
            f"Resource read: {uri}", event_type=EventType.RESOURCE_READ, data={"uri": uri}
        )
        return {"contents": [content.to_mcp_format()]}

    async def _handle_list_prompts(self, request: MCPRequest) -> dict[str, Any]:
        """Handle prompts/list request."""
        return {"prompts": []}

    async def run_stdio(self) -> None:
        """
        Run server using stdio transport.

        Reads JSON-RPC messages from stdin and writes responses to stdout.
        """
        get_protocol_logger().info(
            "Starting MCP server with stdio transport", event_type=EventType.SERVER_STARTED
        )

        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=self.settings.max_message_bytes)
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)

        writer_transport, writer_protocol = await loop.connect_write_pipe(
            asyncio.streams.FlowControlMixin, sys.stdout
        )
        writer = asyncio.StreamWriter(writer_transport, writer_protocol, None, loop)

        try:
            await self.serve_stream(reader, writer)
        finally:
            writer.close()
            get_protocol_logger().info("MCP server stopped", event_type=EventType.SERVER_STOPPED)

    async def serve_stream(self, reader: asyncio.StreamReader, writer: Any) -> None:
        """
        Serve JSON-RPC messages from ``reader`` until EOF or shutdown.

        Messages may be newline-delimited or framed with a Content-Length
        header; each response uses the framing of its request. A line longer
        than the reader's limit is discarded and answered with an invalid
        request error.

        Args:
            reader: Source of request bytes.
            writer: Sink with ``write(bytes)`` and ``async drain()``.
        """
        self._running = True

        while self._running:
            line, overflowed = await _read_line(reader)
            if overflowed:
                logger.error("Discarded message longer than the read limit")
                response: Optional[str] = MCPResponse(
                    error=MCPError(RPCErrorCode.INVALID_REQUEST, "Message too large")
                ).to_json()
                await _write_response(writer, response, framed=False)
                continue
            if not line:
                # stdin closed
                break

            header = line.strip()
            if not header:
                continue

            framed = header.lower().startswith(b"content-length:")
            if framed:
                try:
                    content_length = int(header.split(b":", 1)[1].strip())
                    # Skip remaining headers up to the blank line
                    while (await reader.readline()).strip():
                        pass
                    body = await reader.readexactly(content_length)
                except asyncio.IncompleteReadError:
                    logger.error("Input closed inside a framed message")
                    break
                except ValueError as e:
                    logger.error(f"Malformed frame: {e}")
                    response = MCPResponse(
                        error=MCPError(RPCErrorCode.PARSE_ERROR, f"Malformed frame: {e}")
                    ).to_json()
                    await _write_response(writer, response, framed=True)
                    continue
            else:
                body = header

            logger.debug(f"Received: {body[:200]!r}")

            response = await self.handle_message(body)
            if response:
                await _write_response(writer, response, framed=framed)
                logger.debug(f"Sent: {response[:200]}")

    async def run(self) -> None:
        """
        Run the MCP server with configured transport.

        This is the main entry point for starting the server.
        """
        if self.settings.transport == TransportType.STDIO:
            await self.run_stdio()
        elif self.settings.transport == TransportType.SSE:
            await self.run_sse()
        elif self.settings.transport == TransportType.WEBSOCKET:
            await self.run_websocket()
        else:
            raise ValueError(f"Unsupported transport: {self.settings.transport}")

    def create_http_app(self) -> Any:
        """
        Build the FastAPI application used by the SSE transport.

        ``POST /message`` handles one JSON-RPC message; ``GET /sse`` streams
        keep-alive events.
        """
        try:
            from fastapi import FastAPI, Request, Response
            from fastapi.middleware.cors import CORSMiddleware
            from fastapi.responses import StreamingResponse
        except ImportError:
            raise ImportError(
                "FastAPI required for SSE transport. "
                "Install with: pip install collab-protocol[http]"
            )

        app = FastAPI(
            title=self.settings.name,
            version=self.settings.version,
            description=self.settings.description,
        )

        app.add_middleware(
            CORSMiddleware,
            allow_origins=self.settings.allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @app.get("/sse")
        async def sse_endpoint(request: Request) -> StreamingResponse:
            async def event_generator():
                while self._running and not await request.is_disconnected():
                    yield ": ping\n\n"
                    await asyncio.sleep(15)

            return StreamingResponse(event_generator(), media_type="text/event-stream")

        @app.post("/message")
        async def message_endpoint(request: Request) -> Response:
            response = await self.handle_message(await request.body())
            if response is None:
                return Response(status_code=202)
            return Response(content=response, media_type="application/json")

        return app

    async def run_sse(self) -> None:
        """Run server using SSE transport."""
        try:
            import uvicorn
        except ImportError:
            raise ImportError(
                "uvicorn required for SSE transport. "
                "Install with: pip install collab-protocol[http]"
            )

        app = self.create_http_app()
        self._running = True

        get_protocol_logger().info(
            f"Starting MCP server with SSE transport on {self.settings.host}:{self.settings.port}",
            event_type=EventType.SERVER_STARTED,
        )

        config = uvicorn.Config(
            app,
            host=self.settings.host,
            port=self.settings.port,
            log_level=self.settings.log_level.lower(),
        )
        server = uvicorn.Server(config)
        await server.serve()

    async def run_websocket(self) -> None:
        """Run server using WebSocket transport."""
        try:
            import websockets
        except ImportError:
            raise ImportError(
                "websockets required for WebSocket transport. "
                "Install with: pip install collab-protocol[websocket]"
            )

        async def handle_connection(websocket: Any) -> None:
            logger.info(f"WebSocket client connected: {websocket.remote_address}")

            try:
                async for message in websocket:
                    response = await self.handle_message(message)
                    if response:
                        await websocket.send(response)
            except websockets.ConnectionClosed as e:
                logger.info(f"WebSocket connection closed: {e}")
            finally:
                logger.info("WebSocket client disconnected")

        self._running = True
        get_protocol_logger().info(
            f"Starting MCP server with WebSocket transport on "
            f"ws://{self.settings.host}:{self.settings.port}",
            event_type=EventType.SERVER_STARTED,
        )

        async with websockets.serve(
            handle_connection,
            self.settings.host,
            self.settings.port,
        ):
            await asyncio.Future()  # Run forever


async def _read_line(reader: asyncio.StreamReader) -> tuple[bytes, bool]:
    """
    Read one newline-terminated line.

    Returns:
        The line (empty at EOF) and whether it overran the reader's limit.
        An overrun line is consumed up to and including its newline.
    """
    try:
        return await reader.readuntil(b"\n"), False
    except asyncio.IncompleteReadError as e:
        return e.partial, False
    except asyncio.LimitOverrunError as e:
        consumed = e.consumed

    # The oversized line may span several buffer fills
    while True:
        await reader.readexactly(consumed)
        try:
            await reader.readuntil(b"\n")
        except asyncio.IncompleteReadError:
            pass
        except asyncio.LimitOverrunError as e:
            consumed = e.consumed
            continue
        return b"", True


async def _write_response(writer: Any, response: str, framed: bool) -> None:
    response_bytes = response.encode()
    if framed:
        writer.write(f"Content-Length: {len(response_bytes)}\r\n\r\n".encode())
        writer.write(response_bytes)
    else:
        writer.write(response_bytes + b"\n")
    await writer.drain()


def create_mcp_server(
    settings: Optional[MCPSettings] = None,
    protocol: Optional[CollaborationProtocol] = None,
) -> MCPServer:
    """
    Create an MCP server instance.

    Args:
        settings: MCP settings. Uses environment defaults if not provided.
        protocol: Collaboration state. Built from ``settings.collaboration`` if not provided.

    Returns:
        Configured MCPServer instance.

    Example:
        ```python
        settings = MCPSettings()
        settings.server.transport = TransportType.WEBSOCKET
        server = create_mcp_server(settings=settings)

        import asyncio
        asyncio.run(server.run())
        ```
    """
    mcp_settings = settings or get_mcp_settings()
    return MCPServer(
        settings=mcp_settings.server,
        protocol=protocol or create_protocol(mcp_settings.collaboration),
    )


def main() -> None:
    """
    Main entry point for running the MCP server.

    This function is exposed as the 'collab-protocol-mcp' command.
    """
    import argparse

    parser = argparse.ArgumentParser(
        description="Collaboration Protocol MCP Server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--transport",
        choices=[t.value for t in TransportType],
        default="stdio",
        help="Transport type to use",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (for sse/websocket)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8766,
        help="Port to bind to (for sse/websocket)",
    )
    parser.add_argument(
        "--registry-file",
        default=None,
        help="JSON agent catalog replacing the built-in agents",
    )
    parser.add_argument(
        "--strict-agents",
        action="store_true",
        help="Reject agent ids that are not in the registry",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args()

    settings = get_mcp_settings()
    settings.server.transport = TransportType(args.transport)
    settings.server.host = args.host
    settings.server.port = args.port
    settings.server.debug_mode = args.debug
    if args.registry_file:
        settings.collaboration.registry_file = Path(args.registry_file)
    if args.strict_agents:
        settings.collaboration.validate_agent_ids = True

    if args.debug:
        settings.server.log_level = "DEBUG"

    server = create_mcp_server(settings=settings)
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
