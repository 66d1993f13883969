"""
Process-scoped collaboration state.

Bundles the agent registry, the session manager and the message router
behind one object so callers never reach for module-level globals.
"""

from dataclasses import dataclass
from typing import Optional

from collab_protocol.config import CollaborationSettings, get_mcp_settings
from collab_protocol.models import Clock, IdFactory, new_id, utc_now
from collab_protocol.registry import AgentRegistry, create_registry
from collab_protocol.router import MessageRouter
from collab_protocol.sessions import SessionManager


@dataclass
class CollaborationProtocol:
    """Registry, session table and router for one process."""

    registry: AgentRegistry
    sessions: SessionManager
    router: MessageRouter


def create_protocol(
    settings: Optional[CollaborationSettings] = None,
    registry: Optional[AgentRegistry] = None,
    id_factory: IdFactory = new_id,
    clock: Clock = utc_now,
) -> CollaborationProtocol:
    """
    Create the collaboration state for a process.

    Args:
        settings: Collaboration settings. Uses environment defaults if not provided.
        registry: Agent registry. Built from ``settings.registry_file`` or the
            built-in catalog if not provided.
        id_factory: Source of session and message ids.
        clock: Source of timestamps.

    Returns:
        Initialized CollaborationProtocol.
    """
    settings = settings or get_mcp_settings().collaboration
    if registry is None:
        registry = create_registry(settings.registry_file)

    sessions = SessionManager(
        registry=registry,
        id_factory=id_factory,
        clock=clock,
        validate_agent_ids=settings.validate_agent_ids,
        max_sessions=settings.max_sessions,
    )
    router = MessageRouter(sessions, id_factory=id_factory, clock=clock)
    return CollaborationProtocol(registry=registry, sessions=sessions, router=router)
