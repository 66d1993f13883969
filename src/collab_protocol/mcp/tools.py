"""
MCP tool definitions for agent collaboration.

Tools in MCP allow clients to perform actions, here starting collaborative
workflows between agents and sending messages from one agent to another.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from collab_protocol.exceptions import ToolNotFoundError
from collab_protocol.logging import get_protocol_logger
from collab_protocol.models import CollaborationType, MessageType
from collab_protocol.protocol import CollaborationProtocol


class MCPToolCategory(str, Enum):
    """Categories of MCP tools."""

    COLLABORATION = "collaboration"
    MESSAGING = "messaging"


@dataclass
class MCPToolParameter:
    """Definition of a tool parameter."""

    name: str
    type: str
    description: str
    required: bool = True
    enum: Optional[list[str]] = None
    items_type: Optional[str] = None  # For array types

    def to_json_schema(self) -> dict[str, Any]:
        """Convert to JSON Schema format."""
        schema: dict[str, Any] = {
            "type": self.type,
            "description": self.description,
        }

        if self.enum:
            schema["enum"] = self.enum
        if self.items_type and self.type == "array":
            schema["items"] = {"type": self.items_type}

        return schema


@dataclass
class MCPToolResult:
    """Result from tool execution."""

    success: bool
    content: list[dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    def to_mcp_format(self) -> dict[str, Any]:
        """Convert to MCP protocol format."""
        if not self.success:
            return {
                "isError": True,
                "content": [
                    {
                        "type": "text",
                        "text": self.error or "Unknown error occurred",
                    }
                ],
            }

        return {
            "content": self.content,
        }

    @property
    def data(self) -> Optional[Any]:
        """Parsed body of the last JSON text item, if any."""
        for item in reversed(self.content):
            try:
                return json.loads(item.get("text", ""))
            except json.JSONDecodeError:
                continue
        return None

    @classmethod
    def text(cls, text: str) -> "MCPToolResult":
        """Create a text result."""
        return cls(
            success=True,
            content=[{"type": "text", "text": text}],
        )

    @classmethod
    def json_result(cls, data: Any, summary: Optional[str] = None) -> "MCPToolResult":
        """Create a JSON result, optionally preceded by a one-line summary."""
        content = []
        if summary is not None:
            content.append({"type": "text", "text": summary})
        content.append(
            {
                "type": "text",
                "text": json.dumps(data, indent=2, default=str),
            }
        )
        return cls(success=True, content=content)

    @classmethod
    def error_result(cls, error: str) -> "MCPToolResult":
        """Create an error result."""
        return cls(success=False, error=error)


@dataclass
class MCPTool:
    """Definition of an MCP tool."""

    name: str
    description: str
    parameters: list[MCPToolParameter]
    handler: Callable[..., MCPToolResult]
    category: MCPToolCategory = MCPToolCategory.COLLABORATION

    def to_mcp_format(self) -> dict[str, Any]:
        """Convert to MCP protocol format."""
        properties = {}
        required = []

        for param in self.parameters:
            properties[param.name] = param.to_json_schema()
            if param.required:
                required.append(param.name)

        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        }

    async def execute(self, arguments: dict[str, Any]) -> MCPToolResult:
        """
        Execute the tool with given arguments.

        Any failure, including a missing required parameter, is returned as
        an error result instead of being raised.

        Args:
            arguments: Dictionary of argument names to values.

        Returns:
            MCPToolResult with the execution result.
        """
        logger = get_protocol_logger()
        logger.log_tool_called(self.name, arguments)

        try:
            kwargs = {}
            for param in self.parameters:
                if param.name in arguments:
                    kwargs[param.name] = arguments[param.name]
                elif param.required:
                    raise ValueError(f"Missing required parameter: {param.name}")

            result = self.handler(**kwargs)

            if not isinstance(result, MCPToolResult):
                # Wrap non-MCPToolResult returns
                if isinstance(result, (dict, list)):
                    result = MCPToolResult.json_result(result)
                else:
                    result = MCPToolResult.text(str(result))

        except Exception as e:
            logger.log_tool_completed(self.name, success=False, error=str(e))
            return MCPToolResult.error_result(f"Error executing {self.name}: {e}")

        logger.log_tool_completed(self.name, success=result.success, error=result.error)
        return result


class MCPToolRegistry:
    """Registry of available MCP tools."""

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._tools: dict[str, MCPTool] = {}

    def register(self, tool: MCPTool) -> None:
        """
        Register a tool.

        Args:
            tool: MCPTool to register.
        """
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[MCPTool]:
        """
        Get a tool by name.

        Args:
            name: Tool name.

        Returns:
            MCPTool if found, None otherwise.
        """
        return self._tools.get(name)

    def list_tools(
        self, category: Optional[MCPToolCategory] = None
    ) -> list[MCPTool]:
        """
        List all tools, optionally filtered by category.

        Args:
            category: Optional category filter.

        Returns:
            List of MCPTool objects.
        """
        tools = list(self._tools.values())
        if category:
            tools = [t for t in tools if t.category == category]
        return tools

    async def call(self, name: str, arguments: Optional[dict[str, Any]] = None) -> MCPToolResult:
        """
        Call a tool by name.

        An unknown name yields an error result rather than an exception.

        Args:
            name: Tool name.
            arguments: Tool arguments.

        Returns:
            MCPToolResult from the tool, or an error result.
        """
        tool = self.get(name)
        if tool is None:
            return MCPToolResult.error_result(
                f"Error executing {name}: {ToolNotFoundError(name).message}"
            )
        if not isinstance(arguments, dict):
            arguments = {}
        return await tool.execute(arguments)

    def to_mcp_format(self) -> list[dict[str, Any]]:
        """
        Convert all tools to MCP protocol format.

        Returns:
            List of tool definitions in MCP format.
        """
        return [t.to_mcp_format() for t in self._tools.values()]


def create_protocol_tools(protocol: CollaborationProtocol) -> MCPToolRegistry:
    """
    Create the collaboration tools bound to a protocol instance.

    Args:
        protocol: Registry, sessions and router the tools operate on.

    Returns:
        MCPToolRegistry with the collaboration tools.
    """
    registry = MCPToolRegistry()

    registry.register(
        MCPTool(
            name="initiate_collaboration",
            description="Start a collaborative workflow between agents",
            parameters=[
                MCPToolParameter(
                    name="collaboration_type",
                    type="string",
                    description="Type of collaboration",
                    enum=[t.value for t in CollaborationType],
                ),
                MCPToolParameter(
                    name="requesting_agent",
                    type="string",
                    description="Agent requesting collaboration",
                ),
                MCPToolParameter(
                    name="target_agents",
                    type="array",
                    description="Agents to collaborate with",
                    items_type="string",
                ),
                MCPToolParameter(
                    name="task_data",
                    type="object",
                    description="Data for the collaborative task",
                ),
            ],
            handler=lambda **kwargs: _initiate_collaboration(protocol, **kwargs),
            category=MCPToolCategory.COLLABORATION,
        )
    )

    registry.register(
        MCPTool(
            name="send_agent_message",
            description="Send a message between agents in collaboration",
            parameters=[
                MCPToolParameter(
                    name="from_agent",
                    type="string",
                    description="Sending agent",
                ),
                MCPToolParameter(
                    name="to_agent",
                    type="string",
                    description="Receiving agent",
                ),
                MCPToolParameter(
                    name="message_type",
                    type="string",
                    description="Type of message",
                    enum=[t.value for t in MessageType],
                ),
                MCPToolParameter(
                    name="content",
                    type="object",
                    description="Message content",
                ),
                MCPToolParameter(
                    name="session_id",
                    type="string",
                    description="Collaboration to record the message in",
                    required=False,
                ),
            ],
            handler=lambda **kwargs: _send_agent_message(protocol, **kwargs),
            category=MCPToolCategory.MESSAGING,
        )
    )

    return registry


# Tool handlers


def _initiate_collaboration(
    protocol: CollaborationProtocol,
    collaboration_type: Any,
    requesting_agent: Any,
    target_agents: Any,
    task_data: Any,
) -> MCPToolResult:
    """Open a collaboration session."""
    session = protocol.sessions.initiate_collaboration(
        collaboration_type=collaboration_type,
        requesting_agent=requesting_agent,
        target_agents=target_agents,
        task_data=task_data,
    )

    return MCPToolResult.json_result(
        {
            "success": True,
            "collaboration_id": session.id,
            "collaboration_type": session.type.value,
            "participants": session.participants,
            "status": session.status.value,
        },
        summary=(
            f"Collaboration initiated: {session.type.value} between "
            f"{session.requesting_agent} and {', '.join(session.target_agents)}"
        ),
    )


def _send_agent_message(
    protocol: CollaborationProtocol,
    from_agent: Any,
    to_agent: Any,
    message_type: Any,
    content: Any,
    session_id: Optional[str] = None,
) -> MCPToolResult:
    """Route a message and acknowledge it."""
    receipt = protocol.router.send_message(
        from_agent=from_agent,
        to_agent=to_agent,
        message_type=message_type,
        content=content,
        session_id=session_id,
    )

    body = {
        "success": True,
        "message_id": receipt.id,
        "from_agent": receipt.from_agent,
        "to_agent": receipt.to_agent,
        "message_type": receipt.message_type.value,
        "timestamp": receipt.model_dump(mode="json")["timestamp"],
    }
    if receipt.session_id is not None:
        body["session_id"] = receipt.session_id

    return MCPToolResult.json_result(
        body,
        summary=(
            f"Message sent: {receipt.from_agent} → {receipt.to_agent} "
            f"({receipt.message_type.value})"
        ),
    )
