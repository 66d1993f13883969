"""
Data models for the collaboration protocol.

All models use Pydantic for validation and serialization. Closed
enumerations are ``str`` enums so their values travel unchanged through the
JSON surfaces.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional, TypeVar
from uuid import uuid4

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from collab_protocol.exceptions import ValidationError

IdFactory = Callable[[], str]
Clock = Callable[[], datetime]

ModelT = TypeVar("ModelT", bound=BaseModel)


def new_id() -> str:
    """Return a random 128-bit identifier."""
    return str(uuid4())


def utc_now() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


class AgentStatus(str, Enum):
    """Availability of a registered agent."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class CollaborationRole(str, Enum):
    """Advisory role an agent prefers to play in a collaboration."""

    DATA_PROVIDER = "data_provider"
    ANALYST = "analyst"
    VALIDATOR = "validator"
    DATA_ENHANCER = "data_enhancer"


class CollaborationType(str, Enum):
    """Kinds of collaborative workflow."""

    PEER_REVIEW = "peer_review"
    ENHANCEMENT = "enhancement"
    VALIDATION = "validation"
    DELEGATION = "delegation"


class MessageType(str, Enum):
    """Types of inter-agent messages."""

    REQUEST = "request"
    RESPONSE = "response"
    ENHANCEMENT = "enhancement"
    VALIDATION = "validation"


class SessionStatus(str, Enum):
    """Lifecycle state of a collaboration session."""

    INITIATED = "initiated"


class CollaborationPreferences(BaseModel):
    """How an agent prefers to take part in collaborations."""

    model_config = ConfigDict(frozen=True)

    preferred_role: CollaborationRole


class Agent(BaseModel):
    """Identity and capability descriptor of a specialist agent."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Unique agent key")
    name: str = Field(..., description="Display label")
    capabilities: tuple[str, ...] = Field(default=(), description="Capability tags")
    status: AgentStatus = Field(default=AgentStatus.ACTIVE)
    collaboration_preferences: CollaborationPreferences


class AgentMessage(BaseModel):
    """One directed communication between two agents."""

    model_config = ConfigDict(frozen=True)

    id: str
    from_agent: str
    to_agent: str
    message_type: MessageType
    content: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime
    session_id: Optional[str] = None

    def receipt(self) -> "MessageReceipt":
        """Build the delivery receipt acknowledging this message."""
        return MessageReceipt(
            id=self.id,
            from_agent=self.from_agent,
            to_agent=self.to_agent,
            message_type=self.message_type,
            timestamp=self.timestamp,
            session_id=self.session_id,
        )


class MessageReceipt(BaseModel):
    """Acknowledgment that a message was accepted for delivery."""

    model_config = ConfigDict(frozen=True)

    id: str
    from_agent: str
    to_agent: str
    message_type: MessageType
    timestamp: datetime
    session_id: Optional[str] = None


class CollaborationSession(BaseModel):
    """A coordinated task spanning a requesting agent and its targets."""

    id: str
    type: CollaborationType
    requesting_agent: str
    target_agents: list[str] = Field(default_factory=list)
    task_data: dict[str, Any] = Field(default_factory=dict)
    status: SessionStatus = SessionStatus.INITIATED
    created_date: datetime
    messages: list[AgentMessage] = Field(default_factory=list)

    @property
    def participants(self) -> list[str]:
        """Requesting agent followed by the targets, order and duplicates kept."""
        return [self.requesting_agent, *self.target_agents]


# Argument models for the two mutating operations


class CollaborationRequest(BaseModel):
    """Validated arguments of ``initiate_collaboration``."""

    collaboration_type: CollaborationType
    requesting_agent: str = Field(..., min_length=1)
    target_agents: list[str]
    task_data: dict[str, Any]


class MessageRequest(BaseModel):
    """Validated arguments of ``send_agent_message``."""

    from_agent: str = Field(..., min_length=1)
    to_agent: str = Field(..., min_length=1)
    message_type: MessageType
    content: dict[str, Any]
    session_id: Optional[str] = Field(default=None, min_length=1)


def validate_arguments(model: type[ModelT], arguments: dict[str, Any]) -> ModelT:
    """
    Validate raw arguments against an argument model.

    Args:
        model: Pydantic model describing the arguments.
        arguments: Raw argument mapping from the caller.

    Returns:
        Validated model instance.

    Raises:
        ValidationError: If a field is missing or invalid. Only the first
            problem is reported.
    """
    try:
        return model.model_validate(arguments)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        if first["type"] == "missing":
            message = f"Missing required parameter: {field}"
        elif first["type"] == "enum":
            allowed = first.get("ctx", {}).get("expected", "")
            message = f"Invalid value for {field}: {first.get('input')!r} (expected {allowed})"
        else:
            message = f"Invalid value for {field}: {first['msg']}"
        value = None if first["type"] == "missing" else first.get("input")
        raise ValidationError(message, field=field, value=value) from e
