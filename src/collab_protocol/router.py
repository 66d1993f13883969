"""
Message router.

Validates and timestamps inter-agent messages and returns a delivery
receipt. Transmission to the recipient agent's process is an external
concern; this router only accepts and records.
"""

from typing import Any, Optional

from collab_protocol.exceptions import ValidationError
from collab_protocol.logging import get_protocol_logger
from collab_protocol.models import (
    AgentMessage,
    Clock,
    IdFactory,
    MessageReceipt,
    MessageRequest,
    new_id,
    utc_now,
    validate_arguments,
)
from collab_protocol.sessions import SessionManager


class MessageRouter:
    """
    Accepts messages between agents.

    Messages sent without a session id are acknowledged and then dropped.
    Messages sent with a session id are appended to that session's history.
    """

    def __init__(
        self,
        sessions: SessionManager,
        id_factory: IdFactory = new_id,
        clock: Clock = utc_now,
    ):
        """
        Initialize the router.

        Args:
            sessions: Session manager holding the histories messages bind to.
            id_factory: Source of fresh message ids.
            clock: Source of send timestamps.
        """
        self.sessions = sessions
        self._id_factory = id_factory
        self._clock = clock
        self._logger = get_protocol_logger()

    def send_message(
        self,
        from_agent: Any = None,
        to_agent: Any = None,
        message_type: Any = None,
        content: Any = None,
        session_id: Optional[str] = None,
    ) -> MessageReceipt:
        """
        Accept a message from one agent to another.

        Args:
            from_agent: Sending agent id.
            to_agent: Receiving agent id.
            message_type: One of request, response, enhancement, validation.
            content: Opaque message payload.
            session_id: Optional collaboration to record the message in.

        Returns:
            MessageReceipt confirming acceptance.

        Raises:
            ValidationError: If an argument is missing or invalid, or
                ``session_id`` names an unknown collaboration.
        """
        arguments = {
            "from_agent": from_agent,
            "to_agent": to_agent,
            "message_type": message_type,
            "content": content,
            "session_id": session_id,
        }
        request = validate_arguments(
            MessageRequest, {k: v for k, v in arguments.items() if v is not None}
        )

        if self.sessions.validate_agent_ids:
            self.sessions.check_agents([request.from_agent, request.to_agent])

        if request.session_id is not None and not self.sessions.has_session(request.session_id):
            raise ValidationError(
                f"Unknown collaboration: {request.session_id}",
                field="session_id",
                value=request.session_id,
            )

        message = AgentMessage(
            id=self._id_factory(),
            from_agent=request.from_agent,
            to_agent=request.to_agent,
            message_type=request.message_type,
            content=request.content,
            timestamp=self._clock(),
            session_id=request.session_id,
        )

        if message.session_id is not None:
            self.sessions.append_message(message.session_id, message)

        with self._logger.span(session_id=message.session_id):
            self._logger.log_message_sent(
                message_id=message.id,
                from_agent=message.from_agent,
                to_agent=message.to_agent,
                message_type=message.message_type.value,
                session_id=message.session_id,
            )
        return message.receipt()
