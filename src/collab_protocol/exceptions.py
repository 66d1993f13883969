"""
Exception hierarchy for the collaboration protocol.

Every error carries a stable ``error_code`` for programmatic handling and the
JSON-RPC ``rpc_code`` the MCP server reports when the error escapes a method
handler. Tool calls never let these escape: they are folded into an
``isError`` tool result instead.
"""

from typing import Any, Optional


class RPCErrorCode:
    """JSON-RPC and MCP error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Custom error codes
    RESOURCE_NOT_FOUND = -32001
    TOOL_NOT_FOUND = -32002


class ProtocolError(Exception):
    """Base exception for collaboration protocol errors."""

    error_code: str = "PROTOCOL_ERROR"
    rpc_code: int = RPCErrorCode.INTERNAL_ERROR
    default_message: str = "Collaboration protocol error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        result: dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(ProtocolError):
    """A required argument is missing or has a value outside its enumeration."""

    error_code = "VALIDATION_ERROR"
    rpc_code = RPCErrorCode.INVALID_PARAMS
    default_message = "Validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        field: Optional[str] = None,
        value: Any = None,
        allowed: Optional[list[str]] = None,
        **kwargs: Any,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]
        if allowed:
            details["allowed"] = allowed
        super().__init__(message, details=details, **kwargs)


class NotFoundError(ProtocolError):
    """A direct lookup referenced an unknown key."""

    error_code = "NOT_FOUND"
    rpc_code = RPCErrorCode.INVALID_PARAMS
    default_message = "Not found"


class AgentNotFoundError(NotFoundError):
    """No agent with the given id is registered."""

    error_code = "AGENT_NOT_FOUND"

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent not found: {agent_id}", details={"agent_id": agent_id})


class SessionNotFoundError(NotFoundError):
    """No collaboration session with the given id exists."""

    error_code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            f"Collaboration not found: {session_id}", details={"session_id": session_id}
        )


class ToolNotFoundError(NotFoundError):
    """The request names a tool outside the published surface."""

    error_code = "UNKNOWN_TOOL"
    rpc_code = RPCErrorCode.TOOL_NOT_FOUND

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}", details={"tool": name})


class ResourceNotFoundError(NotFoundError):
    """The request names a resource URI outside the published surface."""

    error_code = "UNKNOWN_RESOURCE"
    rpc_code = RPCErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, uri: str):
        self.uri = uri
        super().__init__(f"Resource not found: {uri}", details={"uri": uri})


class InternalError(ProtocolError):
    """Unexpected failure while building a response."""

    error_code = "INTERNAL_ERROR"
    rpc_code = RPCErrorCode.INTERNAL_ERROR
    default_message = "Internal error"
