"""
MCP resource definitions for introspecting collaboration state.

Resources expose read-only, point-in-time views of the agent registry and
the collaboration session table.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from collab_protocol.exceptions import ResourceNotFoundError
from collab_protocol.protocol import CollaborationProtocol

JSON_MIME_TYPE = "application/json"


@dataclass
class ResourceContent:
    """Content returned from a resource."""

    uri: str
    mime_type: str
    text: str

    def to_mcp_format(self) -> dict[str, Any]:
        """Convert to MCP protocol format."""
        return {
            "uri": self.uri,
            "mimeType": self.mime_type,
            "text": self.text,
        }


@dataclass
class MCPResource:
    """Definition of an MCP resource.

    A ``uri`` containing ``{param}`` segments is a template; matching
    segments of the requested URI are passed to the handler as keyword
    arguments.
    """

    uri: str
    name: str
    description: str
    handler: Callable[..., Any]
    mime_type: str = JSON_MIME_TYPE
    annotations: dict[str, Any] = field(default_factory=dict)

    @property
    def is_template(self) -> bool:
        return "{" in self.uri

    def to_mcp_format(self) -> dict[str, Any]:
        """Convert to MCP protocol format for listing."""
        result: dict[str, Any] = {
            "uriTemplate" if self.is_template else "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }
        if self.annotations:
            result["annotations"] = self.annotations
        return result

    def match(self, uri: str) -> Optional[dict[str, str]]:
        """Return template parameters if ``uri`` matches this resource, else None."""
        if not self.is_template:
            return {} if uri == self.uri else None

        pattern = re.escape(self.uri)
        pattern = re.sub(r"\\{([^}]+)\\}", r"(?P<\1>[^/]+)", pattern)
        found = re.fullmatch(pattern, uri)
        return found.groupdict() if found else None

    async def read(self, uri: Optional[str] = None, **kwargs: Any) -> ResourceContent:
        """Read the resource content, serializing dict/list results as JSON."""
        uri = uri or self.uri
        result = self.handler(**kwargs)
        if isinstance(result, ResourceContent):
            return result
        if isinstance(result, (dict, list)):
            return ResourceContent(
                uri=uri,
                mime_type=JSON_MIME_TYPE,
                text=json.dumps(result, indent=2, default=str),
            )
        return ResourceContent(uri=uri, mime_type="text/plain", text=str(result))


class ResourceRegistry:
    """Registry of available MCP resources."""

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._resources: dict[str, MCPResource] = {}
        self._templates: dict[str, MCPResource] = {}

    def register(self, resource: MCPResource) -> None:
        """
        Register a resource.

        Args:
            resource: MCPResource to register.
        """
        if resource.is_template:
            self._templates[resource.uri] = resource
        else:
            self._resources[resource.uri] = resource

    def resolve(self, uri: str) -> tuple[MCPResource, dict[str, str]]:
        """
        Find the resource serving ``uri``.

        Exact URIs win over templates.

        Returns:
            The resource and its template parameters.

        Raises:
            ResourceNotFoundError: If no resource serves the URI.
        """
        if uri in self._resources:
            return self._resources[uri], {}

        for resource in self._templates.values():
            params = resource.match(uri)
            if params is not None:
                return resource, params

        raise ResourceNotFoundError(uri)

    def get(self, uri: str) -> Optional[MCPResource]:
        """Get the resource serving ``uri``, or None."""
        try:
            return self.resolve(uri)[0]
        except ResourceNotFoundError:
            return None

    async def read(self, uri: str) -> ResourceContent:
        """
        Read a resource by URI.

        Raises:
            ResourceNotFoundError: If no resource serves the URI, or a
                template lookup finds no matching record.
        """
        resource, params = self.resolve(uri)
        return await resource.read(uri=uri, **params)

    def list_resources(self) -> list[MCPResource]:
        """
        List all registered resources.

        Returns:
            List of all registered MCPResource objects.
        """
        return list(self._resources.values()) + list(self._templates.values())

    def to_mcp_format(self) -> list[dict[str, Any]]:
        """
        Convert concrete resources to MCP protocol format.

        Templates are listed separately by ``templates_to_mcp_format``.
        """
        return [r.to_mcp_format() for r in self._resources.values()]

    def templates_to_mcp_format(self) -> list[dict[str, Any]]:
        """Convert resource templates to MCP protocol format."""
        return [r.to_mcp_format() for r in self._templates.values()]


def create_protocol_resources(protocol: CollaborationProtocol) -> ResourceRegistry:
    """
    Create the introspection resources bound to a protocol instance.

    Args:
        protocol: Registry and sessions to expose.

    Returns:
        ResourceRegistry with the registry and session views.
    """
    registry = ResourceRegistry()

    registry.register(
        MCPResource(
            uri="protocol://agents/registry",
            name="Agent Registry",
            description="Registry of all collaborative agents and their capabilities",
            handler=protocol.registry.snapshot,
        )
    )

    registry.register(
        MCPResource(
            uri="protocol://collaborations/active",
            name="Active Collaborations",
            description="Currently active collaborative workflows",
            handler=protocol.sessions.snapshot,
        )
    )

    registry.register(
        MCPResource(
            uri="protocol://agents/{agent_id}",
            name="Agent",
            description="A single registered agent by id",
            handler=lambda agent_id: _get_agent(protocol, agent_id),
        )
    )

    registry.register(
        MCPResource(
            uri="protocol://collaborations/{session_id}",
            name="Collaboration",
            description="A single collaboration session by id, including its messages",
            handler=lambda session_id: _get_session(protocol, session_id),
        )
    )

    return registry


# Resource handlers


def _get_agent(protocol: CollaborationProtocol, agent_id: str) -> dict[str, Any]:
    """Serialize one agent."""
    if not protocol.registry.has_agent(agent_id):
        raise ResourceNotFoundError(f"protocol://agents/{agent_id}")
    return protocol.registry.get_agent(agent_id).model_dump(mode="json")


def _get_session(protocol: CollaborationProtocol, session_id: str) -> dict[str, Any]:
    """Serialize one session."""
    if not protocol.sessions.has_session(session_id):
        raise ResourceNotFoundError(f"protocol://collaborations/{session_id}")
    return protocol.sessions.get_session(session_id).model_dump(mode="json")
