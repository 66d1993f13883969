"""
Collaboration session manager.

Creates collaboration sessions among a requesting agent and its targets and
holds them in memory, keyed by id, for the lifetime of the process. Sessions
are never completed, cancelled or removed.
"""

import copy
from typing import Any, Optional

from collab_protocol.exceptions import InternalError, SessionNotFoundError, ValidationError
from collab_protocol.logging import get_protocol_logger
from collab_protocol.models import (
    AgentMessage,
    Clock,
    CollaborationRequest,
    CollaborationSession,
    IdFactory,
    SessionStatus,
    new_id,
    utc_now,
    validate_arguments,
)
from collab_protocol.registry import AgentRegistry

# Ids that would be shadowed by the protocol://collaborations/active listing
RESERVED_SESSION_IDS = frozenset({"active"})


class SessionManager:
    """
    Owner of the session table.

    The table is only mutated through ``initiate_collaboration`` (insert
    under a fresh id) and ``append_message``.

    Example:
        ```python
        manager = SessionManager()
        session = manager.initiate_collaboration(
            collaboration_type="peer_review",
            requesting_agent="construction-specialist",
            target_agents=["quality-reviewer"],
            task_data={"doc": "report-1"},
        )
        manager.get_session(session.id).participants
        ```
    """

    def __init__(
        self,
        registry: Optional[AgentRegistry] = None,
        id_factory: IdFactory = new_id,
        clock: Clock = utc_now,
        validate_agent_ids: bool = False,
        max_sessions: int = 0,
    ):
        """
        Initialize the session manager.

        Args:
            registry: Agent registry used when ``validate_agent_ids`` is set.
            id_factory: Source of fresh session ids.
            clock: Source of creation timestamps.
            validate_agent_ids: Reject agent ids missing from ``registry``.
            max_sessions: Refuse new sessions beyond this many (0 = unlimited).
        """
        if validate_agent_ids and registry is None:
            raise ValueError("validate_agent_ids requires a registry")

        self.registry = registry
        self._id_factory = id_factory
        self._clock = clock
        self.validate_agent_ids = validate_agent_ids
        self.max_sessions = max_sessions
        self._sessions: dict[str, CollaborationSession] = {}
        self._logger = get_protocol_logger()

    def __len__(self) -> int:
        return len(self._sessions)

    def initiate_collaboration(
        self,
        collaboration_type: Any = None,
        requesting_agent: Any = None,
        target_agents: Any = None,
        task_data: Any = None,
    ) -> CollaborationSession:
        """
        Start a collaborative workflow.

        Args:
            collaboration_type: One of peer_review, enhancement, validation, delegation.
            requesting_agent: Id of the initiating agent.
            target_agents: Ids of the agents to collaborate with (may be empty).
            task_data: Opaque task payload, stored verbatim.

        Returns:
            A detached copy of the stored CollaborationSession.

        Raises:
            ValidationError: If an argument is missing or invalid, or the
                session table is full. Nothing is stored.
            InternalError: If the id factory returns an id already in use
                or reserved.
        """
        arguments = {
            "collaboration_type": collaboration_type,
            "requesting_agent": requesting_agent,
            "target_agents": target_agents,
            "task_data": task_data,
        }
        request = validate_arguments(
            CollaborationRequest, {k: v for k, v in arguments.items() if v is not None}
        )

        if self.validate_agent_ids:
            self.check_agents([request.requesting_agent, *request.target_agents])

        if self.max_sessions and len(self._sessions) >= self.max_sessions:
            raise ValidationError(
                f"Session limit reached ({self.max_sessions} active collaborations)"
            )

        session_id = self._id_factory()
        if session_id in self._sessions:
            raise InternalError(f"Generated collaboration id already in use: {session_id}")
        if session_id in RESERVED_SESSION_IDS:
            raise InternalError(f"Generated collaboration id is reserved: {session_id}")

        session = CollaborationSession(
            id=session_id,
            type=request.collaboration_type,
            requesting_agent=request.requesting_agent,
            target_agents=list(request.target_agents),
            task_data=copy.deepcopy(request.task_data),
            status=SessionStatus.INITIATED,
            created_date=self._clock(),
        )
        self._sessions[session_id] = session

        with self._logger.span(session_id=session_id):
            self._logger.log_session_initiated(
                session_id=session_id,
                collaboration_type=session.type.value,
                participants=session.participants,
            )
        return session.model_copy(deep=True)

    def get_session(self, session_id: str) -> CollaborationSession:
        """
        Get a detached copy of a session by id.

        Changing the copy does not affect the stored session.

        Raises:
            SessionNotFoundError: If no such session exists.
        """
        return self._get(session_id).model_copy(deep=True)

    def has_session(self, session_id: str) -> bool:
        return session_id in self._sessions

    def list_active_sessions(self) -> dict[str, CollaborationSession]:
        """Return detached copies of all sessions keyed by id."""
        return {
            session_id: session.model_copy(deep=True)
            for session_id, session in self._sessions.items()
        }

    def append_message(self, session_id: str, message: AgentMessage) -> None:
        """
        Append a message to a session's history.

        Raises:
            SessionNotFoundError: If no such session exists.
        """
        self._get(session_id).messages.append(message)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        """Point-in-time view of all sessions as JSON-ready dictionaries."""
        return {
            session_id: session.model_dump(mode="json")
            for session_id, session in self._sessions.items()
        }

    def _get(self, session_id: str) -> CollaborationSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def check_agents(self, agent_ids: list[str]) -> None:
        """Raise ValidationError if any id is missing from the registry."""
        missing = self.registry.unknown_agents(agent_ids)
        if missing:
            raise ValidationError(
                f"Unknown agent(s): {', '.join(missing)}",
                field="agents",
                value=missing,
            )
