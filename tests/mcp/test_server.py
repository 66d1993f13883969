"""Tests for MCP server."""

import asyncio
import json
import os
import subprocess
import sys
from unittest.mock import patch

import pytest


class CollectingWriter:
    """Stream writer stand-in that keeps everything written."""

    def __init__(self):
        self.buffer = bytearray()

    def write(self, data):
        self.buffer.extend(data)

    async def drain(self):
        pass

    def json_lines(self):
        return [json.loads(line) for line in self.buffer.decode().splitlines() if line]


async def _serve(server, payload, limit=64 * 1024):
    """Feed raw bytes to the stream loop and collect what it writes."""
    reader = asyncio.StreamReader(limit=limit)
    reader.feed_data(payload)
    reader.feed_eof()
    writer = CollectingWriter()
    await asyncio.wait_for(server.serve_stream(reader, writer), timeout=5)
    return writer


def _line(message):
    return json.dumps(message).encode() + b"\n"


def _frame(message):
    body = message if isinstance(message, bytes) else json.dumps(message).encode()
    return f"Content-Length: {len(body)}\r\n\r\n".encode() + body


def _unframe(data):
    """Split one Content-Length framed reply off the front of ``data``."""
    header, _, rest = bytes(data).partition(b"\r\n\r\n")
    length = int(header.split(b":", 1)[1])
    return json.loads(rest[:length]), rest[length:]


def _ping(request_id):
    return {"jsonrpc": "2.0", "id": request_id, "method": "ping"}


class TestMCPRequest:
    """Tests for MCPRequest."""

    def test_from_dict(self):
        """Test parsing request from dictionary."""
        from collab_protocol.mcp.server import MCPRequest

        request = MCPRequest.from_dict({
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/list",
            "params": {"cursor": None},
        })

        assert request.jsonrpc == "2.0"
        assert request.id == 1
        assert request.method == "tools/list"
        assert request.params == {"cursor": None}

    def test_non_object_params(self):
        """Test non-object params are treated as empty."""
        from collab_protocol.mcp.server import MCPRequest

        request = MCPRequest.from_dict({"id": 1, "method": "ping", "params": [1, 2]})

        assert request.params == {}


class TestMCPResponse:
    """Tests for MCPResponse."""

    def test_success_response(self):
        """Test success response format."""
        from collab_protocol.mcp.server import MCPResponse

        response = MCPResponse(id=1, result={"tools": []})

        assert response.to_dict() == {"jsonrpc": "2.0", "id": 1, "result": {"tools": []}}

    def test_error_response(self):
        """Test error response format."""
        from collab_protocol.mcp.server import MCPError, MCPResponse

        response = MCPResponse(id=1, error=MCPError(code=-32600, message="Invalid request"))

        result = response.to_dict()

        assert result["error"] == {"code": -32600, "message": "Invalid request"}
        assert "result" not in result

    def test_error_from_exception(self):
        """Test protocol errors map to their JSON-RPC code."""
        from collab_protocol.exceptions import ResourceNotFoundError
        from collab_protocol.mcp.server import MCPError

        error = MCPError.from_exception(ResourceNotFoundError("protocol://x"))

        assert error.code == -32001
        assert error.message == "Resource not found: protocol://x"
        assert error.data["error_code"] == "UNKNOWN_RESOURCE"


class TestServerCapabilities:
    """Tests for ServerCapabilities."""

    def test_all_enabled(self):
        """Test capabilities with tools and resources enabled."""
        from collab_protocol.mcp.server import ServerCapabilities

        assert ServerCapabilities().to_dict() == {"tools": {}, "resources": {}}

    def test_tools_only(self):
        """Test capabilities with resources disabled."""
        from collab_protocol.mcp.server import ServerCapabilities

        assert ServerCapabilities(resources=False).to_dict() == {"tools": {}}


class TestMCPServerLifecycle:
    """Tests for lifecycle methods."""

    @pytest.mark.asyncio
    async def test_initialize(self, mcp_server, rpc):
        """Test initialize returns server info and capabilities."""
        response = await rpc("initialize", {
            "protocolVersion": "2024-11-05",
            "clientInfo": {"name": "test-client", "version": "1.0"},
        })

        result = response["result"]
        assert result["protocolVersion"] == "2024-11-05"
        assert result["serverInfo"] == {"name": "test-mcp-server", "version": "1.0.0-test"}
        assert result["capabilities"] == {"tools": {}, "resources": {}}
        assert mcp_server.initialized is True

    @pytest.mark.asyncio
    async def test_initialized_notification(self, mcp_server):
        """Test notifications produce no response."""
        response = await mcp_server.handle_message(
            json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"})
        )

        assert response is None

    @pytest.mark.asyncio
    async def test_ping(self, rpc):
        """Test ping returns an empty result."""
        response = await rpc("ping")

        assert response["result"] == {}

    @pytest.mark.asyncio
    async def test_shutdown(self, mcp_server, rpc):
        """Test shutdown resets the initialized flag."""
        await rpc("initialize", {})

        response = await rpc("shutdown")

        assert response["result"] == {}
        assert mcp_server.initialized is False

    @pytest.mark.asyncio
    async def test_list_prompts(self, rpc):
        """Test no prompts are published."""
        response = await rpc("prompts/list")

        assert response["result"] == {"prompts": []}


class TestMCPServerErrors:
    """Tests for JSON-RPC error handling."""

    @pytest.mark.asyncio
    async def test_invalid_json(self, mcp_server):
        """Test malformed JSON yields a parse error."""
        response = json.loads(await mcp_server.handle_message("{not json"))

        assert response["id"] is None
        assert response["error"]["code"] == -32700

    @pytest.mark.asyncio
    async def test_missing_method(self, mcp_server):
        """Test a message without a method is an invalid request."""
        response = json.loads(await mcp_server.handle_message(json.dumps({"jsonrpc": "2.0", "id": 4})))

        assert response["id"] == 4
        assert response["error"]["code"] == -32600

    @pytest.mark.asyncio
    async def test_non_object_message(self, mcp_server):
        """Test a JSON array is an invalid request."""
        response = json.loads(await mcp_server.handle_message("[1, 2, 3]"))

        assert response["error"]["code"] == -32600

    @pytest.mark.asyncio
    async def test_unknown_method(self, rpc):
        """Test unknown methods yield method not found."""
        response = await rpc("agents/delete")

        assert response["error"]["code"] == -32601
        assert "agents/delete" in response["error"]["message"]

    @pytest.mark.asyncio
    async def test_unknown_notification_ignored(self, mcp_server):
        """Test unknown notifications produce no response."""
        response = await mcp_server.handle_message(
            json.dumps({"jsonrpc": "2.0", "method": "notifications/cancelled"})
        )

        assert response is None

    @pytest.mark.asyncio
    async def test_unexpected_exception(self, mcp_server, rpc):
        """Test handler crashes are reported as internal errors."""
        with patch.object(
            mcp_server.resource_registry, "read", side_effect=RuntimeError("disk on fire")
        ):
            response = await rpc("resources/read", {"uri": "protocol://agents/registry"})

        assert response["error"]["code"] == -32603
        assert response["error"]["message"] == "disk on fire"

    @pytest.mark.asyncio
    async def test_server_keeps_serving_after_error(self, mcp_server, rpc):
        """Test a failed request does not affect the next one."""
        await mcp_server.handle_message("{bad")

        response = await rpc("ping")

        assert response["result"] == {}


class TestMCPServerTools:
    """Tests for tools methods."""

    @pytest.mark.asyncio
    async def test_list_tools(self, rpc):
        """Test listing tools."""
        response = await rpc("tools/list")

        names = [t["name"] for t in response["result"]["tools"]]
        assert names == ["initiate_collaboration", "send_agent_message"]

    @pytest.mark.asyncio
    async def test_list_tools_disabled(self, mcp_settings, protocol):
        """Test disabled tools are not listed."""
        from collab_protocol.mcp.server import MCPServer

        mcp_settings.server.enable_tools = False
        server = MCPServer(settings=mcp_settings.server, protocol=protocol)

        response = json.loads(
            await server.handle_message(json.dumps({"jsonrpc": "2.0", "id": 1, "method": "tools/list"}))
        )

        assert response["result"] == {"tools": []}

    @pytest.mark.asyncio
    async def test_call_tool(self, rpc, peer_review_args):
        """Test calling a tool returns its content."""
        response = await rpc("tools/call", {
            "name": "initiate_collaboration",
            "arguments": peer_review_args,
        })

        result = response["result"]
        assert "isError" not in result
        assert len(result["content"]) == 2
        assert json.loads(result["content"][1]["text"])["status"] == "initiated"

    @pytest.mark.asyncio
    async def test_call_unknown_tool(self, rpc):
        """Test unknown tools are reported in the result, not as an RPC error."""
        response = await rpc("tools/call", {"name": "unknown_tool", "arguments": {}})

        assert "error" not in response
        assert response["result"]["isError"] is True
        assert "Unknown tool: unknown_tool" in response["result"]["content"][0]["text"]

    @pytest.mark.asyncio
    async def test_call_without_name(self, rpc):
        """Test a call without a tool name is an error result."""
        response = await rpc("tools/call", {"arguments": {}})

        assert response["result"]["isError"] is True

    @pytest.mark.asyncio
    async def test_call_with_invalid_arguments(self, rpc, request_message_args):
        """Test invalid arguments are reported in the result."""
        request_message_args["message_type"] = "gossip"

        response = await rpc("tools/call", {
            "name": "send_agent_message",
            "arguments": request_message_args,
        })

        assert response["result"]["isError"] is True
        text = response["result"]["content"][0]["text"]
        assert text.startswith("Error executing send_agent_message:")
        assert "message_type" in text


class TestMCPServerResources:
    """Tests for resources methods."""

    @pytest.mark.asyncio
    async def test_list_resources(self, rpc):
        """Test listing resources."""
        response = await rpc("resources/list")

        uris = {r["uri"] for r in response["result"]["resources"]}
        assert uris == {"protocol://agents/registry", "protocol://collaborations/active"}

    @pytest.mark.asyncio
    async def test_list_resource_templates(self, rpc):
        """Test listing resource templates."""
        response = await rpc("resources/templates/list")

        templates = {r["uriTemplate"] for r in response["result"]["resourceTemplates"]}
        assert templates == {"protocol://agents/{agent_id}", "protocol://collaborations/{session_id}"}

    @pytest.mark.asyncio
    async def test_read_resource(self, rpc):
        """Test reading the agent registry."""
        response = await rpc("resources/read", {"uri": "protocol://agents/registry"})

        contents = response["result"]["contents"]
        assert len(contents) == 1
        assert contents[0]["uri"] == "protocol://agents/registry"
        assert contents[0]["mimeType"] == "application/json"
        assert "document-processor" in json.loads(contents[0]["text"])

    @pytest.mark.asyncio
    async def test_read_unknown_resource(self, rpc):
        """Test unknown URIs yield a resource-not-found error."""
        response = await rpc("resources/read", {"uri": "protocol://nonexistent"})

        assert response["error"]["code"] == -32001
        assert "protocol://nonexistent" in response["error"]["message"]

    @pytest.mark.asyncio
    async def test_read_without_uri(self, rpc):
        """Test a read without a URI is an invalid params error."""
        response = await rpc("resources/read", {})

        assert response["error"]["code"] == -32602


class TestHTTPApp:
    """Tests for the HTTP app used by the SSE transport."""

    def test_post_message(self, mcp_server):
        """Test JSON-RPC messages can be posted."""
        from fastapi.testclient import TestClient

        client = TestClient(mcp_server.create_http_app())

        response = client.post(
            "/message",
            content=json.dumps({"jsonrpc": "2.0", "id": 7, "method": "tools/list"}),
        )

        assert response.status_code == 200
        assert response.json()["id"] == 7
        assert len(response.json()["result"]["tools"]) == 2

    def test_post_notification(self, mcp_server):
        """Test notifications are accepted without a body."""
        from fastapi.testclient import TestClient

        client = TestClient(mcp_server.create_http_app())

        response = client.post(
            "/message",
            content=json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
        )

        assert response.status_code == 202


    def test_post_invalid_utf8(self, mcp_server):
        """Test a body that is not UTF-8 gets a parse error."""
        from fastapi.testclient import TestClient

        client = TestClient(mcp_server.create_http_app())

        response = client.post("/message", content=b"\xff\xfe garbage")

        assert response.status_code == 200
        assert response.json()["error"]["code"] == -32700


class TestHandleMessageBytes:
    """Tests for raw byte messages."""

    @pytest.mark.asyncio
    async def test_utf8_bytes_accepted(self, mcp_server):
        """Test UTF-8 encoded requests are handled like text."""
        response = json.loads(await mcp_server.handle_message(json.dumps(_ping(1)).encode()))

        assert response == {"jsonrpc": "2.0", "id": 1, "result": {}}

    @pytest.mark.asyncio
    async def test_invalid_utf8(self, mcp_server):
        """Test undecodable bytes yield a parse error."""
        response = json.loads(await mcp_server.handle_message(b"\xff\xfe garbage"))

        assert response["id"] is None
        assert response["error"]["code"] == -32700


class TestStreamTransport:
    """Tests for the stdio message loop."""

    @pytest.mark.asyncio
    async def test_newline_delimited(self, mcp_server):
        """Test each newline-delimited request gets one reply line."""
        payload = (
            _line(_ping(1))
            + b"\n"
            + _line({"jsonrpc": "2.0", "method": "notifications/initialized"})
            + _line({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
        )

        writer = await _serve(mcp_server, payload)

        replies = writer.json_lines()
        assert [r["id"] for r in replies] == [1, 2]
        assert len(replies[1]["result"]["tools"]) == 2

    @pytest.mark.asyncio
    async def test_content_length_framing(self, mcp_server):
        """Test framed requests get framed replies."""
        writer = await _serve(mcp_server, _frame(_ping(5)) + _frame(_ping(6)))

        first, rest = _unframe(writer.buffer)
        second, rest = _unframe(rest)
        assert (first["id"], second["id"]) == (5, 6)
        assert rest == b""

    @pytest.mark.asyncio
    async def test_mixed_framing(self, mcp_server):
        """Test each reply uses the framing of its own request."""
        writer = await _serve(mcp_server, _frame(_ping(1)) + _line(_ping(2)))

        first, rest = _unframe(writer.buffer)
        assert first["id"] == 1
        assert json.loads(rest) == {"jsonrpc": "2.0", "id": 2, "result": {}}

    @pytest.mark.asyncio
    async def test_eof_stops_loop(self, mcp_server):
        """Test the loop returns when input closes."""
        writer = await _serve(mcp_server, b"")

        assert writer.buffer == b""

    @pytest.mark.asyncio
    async def test_last_line_without_newline(self, mcp_server):
        """Test a final request without a trailing newline is still answered."""
        writer = await _serve(mcp_server, json.dumps(_ping(3)).encode())

        assert writer.json_lines()[0]["id"] == 3

    @pytest.mark.asyncio
    async def test_large_request_accepted(self, mcp_server, peer_review_args):
        """Test a request well beyond 64 KiB is served under the default limit."""
        peer_review_args["task_data"] = {"blob": "x" * 70_000}
        request = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {"name": "initiate_collaboration", "arguments": peer_review_args},
        }

        writer = await _serve(
            mcp_server,
            _line(request) + _line(_ping(2)),
            limit=mcp_server.settings.max_message_bytes,
        )

        replies = writer.json_lines()
        assert "isError" not in replies[0]["result"]
        assert replies[1]["id"] == 2

    @pytest.mark.asyncio
    async def test_oversized_line_rejected(self, mcp_server):
        """Test a line over the limit is answered with an error and skipped."""
        big = {"jsonrpc": "2.0", "id": 1, "method": "ping", "params": {"pad": "x" * 5000}}

        writer = await _serve(mcp_server, _line(big) + _line(_ping(2)), limit=1024)

        replies = writer.json_lines()
        assert replies[0]["id"] is None
        assert replies[0]["error"]["code"] == -32600
        assert replies[1] == {"jsonrpc": "2.0", "id": 2, "result": {}}

    @pytest.mark.asyncio
    async def test_oversized_line_at_eof(self, mcp_server):
        """Test an unterminated oversized line is rejected before stopping."""
        writer = await _serve(mcp_server, b"x" * 5000, limit=1024)

        replies = writer.json_lines()
        assert len(replies) == 1
        assert replies[0]["error"]["code"] == -32600

    @pytest.mark.asyncio
    async def test_invalid_utf8_line(self, mcp_server):
        """Test an undecodable line gets a parse error and the loop continues."""
        writer = await _serve(mcp_server, b"\xff\xfe garbage\n" + _line(_ping(2)))

        replies = writer.json_lines()
        assert replies[0]["error"]["code"] == -32700
        assert replies[1]["id"] == 2

    @pytest.mark.asyncio
    async def test_invalid_utf8_frame(self, mcp_server):
        """Test an undecodable framed body gets a framed parse error."""
        writer = await _serve(mcp_server, _frame(b"\xff\xfe garbage") + _frame(_ping(2)))

        first, rest = _unframe(writer.buffer)
        second, _ = _unframe(rest)
        assert first["error"]["code"] == -32700
        assert second["id"] == 2

    @pytest.mark.asyncio
    async def test_malformed_content_length(self, mcp_server):
        """Test a bad Content-Length header gets a parse error and the loop continues."""
        writer = await _serve(mcp_server, b"Content-Length: abc\r\n\r\n" + _line(_ping(2)))

        first, rest = _unframe(writer.buffer)
        assert first["error"]["code"] == -32700
        assert json.loads(rest)["id"] == 2

    @pytest.mark.asyncio
    async def test_truncated_frame_stops_loop(self, mcp_server):
        """Test input closing inside a framed body ends the loop quietly."""
        writer = await _serve(mcp_server, b"Content-Length: 100\r\n\r\n{\"jsonrpc\"")

        assert writer.buffer == b""

    @pytest.mark.asyncio
    async def test_shutdown_stops_loop(self, mcp_server):
        """Test requests after shutdown are not served."""
        payload = _line({"jsonrpc": "2.0", "id": 1, "method": "shutdown"}) + _line(_ping(2))

        writer = await _serve(mcp_server, payload)

        assert [r["id"] for r in writer.json_lines()] == [1]


@pytest.mark.integration
class TestStdioProcess:
    """Tests running the server as a child process over pipes."""

    def test_large_request_and_bad_bytes(self, peer_review_args):
        """Test the stdio server survives large and undecodable input."""
        peer_review_args["task_data"] = {"blob": "x" * 70_000}
        request = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {"name": "initiate_collaboration", "arguments": peer_review_args},
        }
        stdin = _line(request) + b"\xff\xfe garbage\n" + _line(_ping(2))
        env = {**os.environ, "PROTOCOL_MCP_SERVER_LOG_LEVEL": "WARNING"}

        completed = subprocess.run(
            [sys.executable, "-m", "collab_protocol.mcp.server"],
            input=stdin,
            capture_output=True,
            env=env,
            timeout=60,
        )

        assert completed.returncode == 0, completed.stderr.decode()
        replies = [json.loads(line) for line in completed.stdout.decode().splitlines() if line]
        assert replies[0]["id"] == 1
        assert "isError" not in replies[0]["result"]
        assert replies[1]["error"]["code"] == -32700
        assert replies[2] == {"jsonrpc": "2.0", "id": 2, "result": {}}


class TestCreateMCPServer:
    """Tests for server construction helpers."""

    def test_create_from_settings(self, mcp_settings):
        """Test the factory builds collaboration state from settings."""
        from collab_protocol.mcp.server import create_mcp_server

        mcp_settings.collaboration.validate_agent_ids = True

        server = create_mcp_server(settings=mcp_settings)

        assert server.settings.name == "test-mcp-server"
        assert server.protocol.sessions.validate_agent_ids is True

    def test_main_applies_arguments(self, tmp_path):
        """Test command line options reach the server settings."""
        from collab_protocol.config import TransportType, get_mcp_settings
        from collab_protocol.mcp import server as server_module

        catalog = tmp_path / "agents.json"
        catalog.write_text(json.dumps([{
            "id": "solo",
            "name": "Solo Agent",
            "capabilities": ["thinking"],
            "collaboration_preferences": {"preferred_role": "analyst"},
        }]))

        def close_coroutine(coro):
            coro.close()

        argv = [
            "collab-protocol-mcp",
            "--transport", "websocket",
            "--port", "9100",
            "--registry-file", str(catalog),
            "--strict-agents",
        ]
        with patch("sys.argv", argv), patch.object(
            server_module.asyncio, "run", side_effect=close_coroutine
        ) as run:
            server_module.main()

        settings = get_mcp_settings()
        assert run.called
        assert settings.server.transport == TransportType.WEBSOCKET
        assert settings.server.port == 9100
        assert settings.collaboration.registry_file == catalog
        assert settings.collaboration.validate_agent_ids is True
