"""
Shared fixtures for collaboration protocol tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from collab_protocol.config import CollaborationSettings, reset_mcp_settings
from collab_protocol.protocol import create_protocol
from collab_protocol.registry import create_default_registry
from collab_protocol.router import MessageRouter
from collab_protocol.sessions import SessionManager


class SequentialIds:
    """Deterministic id factory: prefix-1, prefix-2, ..."""

    def __init__(self, prefix: str = "id"):
        self.prefix = prefix
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return f"{self.prefix}-{self.count}"


class SteppingClock:
    """Clock that advances one second per reading."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    """Isolate tests from PROTOCOL_* environment variables and cached settings."""
    import os

    for key in list(os.environ):
        if key.startswith("PROTOCOL_"):
            monkeypatch.delenv(key, raising=False)
    reset_mcp_settings()
    yield
    reset_mcp_settings()


@pytest.fixture
def id_factory():
    """Deterministic id factory."""
    return SequentialIds()


@pytest.fixture
def clock():
    """Deterministic clock."""
    return SteppingClock()


@pytest.fixture
def registry():
    """Registry of the built-in platform agents."""
    return create_default_registry()


@pytest.fixture
def session_manager(registry):
    """Session manager with random ids and the real clock."""
    return SessionManager(registry=registry)


@pytest.fixture
def router(session_manager):
    """Message router bound to the session manager fixture."""
    return MessageRouter(session_manager)


@pytest.fixture
def protocol():
    """Complete collaboration state with default settings."""
    return create_protocol(CollaborationSettings())


@pytest.fixture
def strict_protocol():
    """Collaboration state that rejects unknown agent ids."""
    return create_protocol(CollaborationSettings(validate_agent_ids=True))


@pytest.fixture
def peer_review_args():
    """Arguments of a typical peer review collaboration."""
    return {
        "collaboration_type": "peer_review",
        "requesting_agent": "construction-specialist",
        "target_agents": ["quality-reviewer"],
        "task_data": {"doc": "report-1"},
    }


@pytest.fixture
def request_message_args():
    """Arguments of a typical request message."""
    return {
        "from_agent": "document-processor",
        "to_agent": "construction-specialist",
        "message_type": "request",
        "content": {"field": "address"},
    }
