"""
Structured logging for collaboration protocol operations.

Provides JSON-formatted logging with trace IDs so that session creation,
message routing and tool dispatch can be correlated. Output goes to stderr
because stdout carries the stdio transport.
"""

import json
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterator
from uuid import uuid4

from collab_protocol.config import get_mcp_settings


class EventType(str, Enum):
    """Types of events that can be logged."""

    # Collaboration events
    SESSION_INITIATED = "session.initiated"
    MESSAGE_SENT = "message.sent"

    # MCP surface events
    TOOL_CALLED = "tool.called"
    TOOL_COMPLETED = "tool.completed"
    TOOL_FAILED = "tool.failed"
    RESOURCE_READ = "resource.read"

    # Server lifecycle
    SERVER_STARTED = "server.started"
    SERVER_STOPPED = "server.stopped"
    ERROR = "error"


@dataclass
class LogContext:
    """Context for structured logging."""

    trace_id: str = field(default_factory=lambda: str(uuid4()))
    span_id: str = field(default_factory=lambda: str(uuid4())[:8])
    parent_span_id: str | None = None
    session_id: str | None = None

    def child_span(self) -> "LogContext":
        """Create a child span context."""
        return LogContext(
            trace_id=self.trace_id,
            span_id=str(uuid4())[:8],
            parent_span_id=self.span_id,
            session_id=self.session_id,
        )


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in ("event_type", "trace_id", "span_id", "session_id", "data", "error"):
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["error"] = str(record.exc_info[1])
            log_data["stack_trace"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ProtocolLogger:
    """
    Structured logger for collaboration protocol operations.

    Wraps a standard library logger and attaches the current trace context
    and event type to every record.
    """

    def __init__(
        self,
        name: str = "collab_protocol",
        level: str | None = None,
        json_output: bool | None = None,
    ):
        """
        Initialize the protocol logger.

        Args:
            name: Logger name.
            level: Log level (defaults to server settings).
            json_output: Whether to use JSON formatting (defaults to server settings).
        """
        self.logger = logging.getLogger(name)
        self._context: LogContext | None = None

        settings = get_mcp_settings().server
        log_level = level or ("DEBUG" if settings.debug_mode else settings.log_level)
        if json_output is None:
            json_output = settings.json_logs
        self.logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            if json_output:
                handler.setFormatter(JSONFormatter())
            else:
                handler.setFormatter(
                    logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
                )
            self.logger.addHandler(handler)

    def get_context(self) -> LogContext:
        """Get the current logging context, creating one if needed."""
        if self._context is None:
            self._context = LogContext()
        return self._context

    @contextmanager
    def span(self, session_id: str | None = None) -> Iterator[LogContext]:
        """Run a block under a child span, optionally bound to a session."""
        parent = self.get_context()
        child = parent.child_span()
        if session_id is not None:
            child.session_id = session_id
        old_context = self._context
        self._context = child
        try:
            yield child
        finally:
            self._context = old_context

    def _log(
        self,
        level: int,
        message: str,
        event_type: EventType | str | None = None,
        data: dict | None = None,
        error: str | None = None,
        exc_info: bool = False,
    ) -> None:
        context = self.get_context()
        extra = {
            "trace_id": context.trace_id,
            "span_id": context.span_id,
            "session_id": context.session_id,
        }
        if event_type:
            extra["event_type"] = event_type.value if isinstance(event_type, EventType) else event_type
        if data:
            extra["data"] = data
        if error:
            extra["error"] = error

        self.logger.log(level, message, extra=extra, exc_info=exc_info)

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message."""
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message."""
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        """Log error message."""
        self._log(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        """Log error message with the active exception's traceback."""
        self._log(logging.ERROR, message, exc_info=True, **kwargs)

    # Convenience methods for common events

    def log_session_initiated(
        self,
        session_id: str,
        collaboration_type: str,
        participants: list[str],
    ) -> None:
        """Log creation of a collaboration session."""
        self.info(
            f"Collaboration initiated: {collaboration_type}",
            event_type=EventType.SESSION_INITIATED,
            data={
                "session_id": session_id,
                "collaboration_type": collaboration_type,
                "participants": participants,
            },
        )

    def log_message_sent(
        self,
        message_id: str,
        from_agent: str,
        to_agent: str,
        message_type: str,
        session_id: str | None = None,
    ) -> None:
        """Log inter-agent message."""
        self.debug(
            f"Message: {from_agent} -> {to_agent}",
            event_type=EventType.MESSAGE_SENT,
            data={
                "message_id": message_id,
                "from_agent": from_agent,
                "to_agent": to_agent,
                "message_type": message_type,
                "session_id": session_id,
            },
        )

    def log_tool_called(self, tool_name: str, args: dict) -> None:
        """Log tool invocation."""
        # Truncate large args
        truncated_args = {k: str(v)[:100] for k, v in args.items()}
        self.debug(
            f"Tool called: {tool_name}",
            event_type=EventType.TOOL_CALLED,
            data={"tool_name": tool_name, "args": truncated_args},
        )

    def log_tool_completed(self, tool_name: str, success: bool, error: str | None = None) -> None:
        """Log tool completion."""
        level = logging.DEBUG if success else logging.WARNING
        self._log(
            level,
            f"Tool completed: {tool_name} (success={success})",
            event_type=EventType.TOOL_COMPLETED if success else EventType.TOOL_FAILED,
            data={"tool_name": tool_name, "success": success},
            error=error,
        )


# Global logger instance
_protocol_logger: ProtocolLogger | None = None


def get_protocol_logger() -> ProtocolLogger:
    """Get the global protocol logger instance."""
    global _protocol_logger
    if _protocol_logger is None:
        _protocol_logger = ProtocolLogger()
    return _protocol_logger


def configure_protocol_logging(
    level: str = "INFO",
    json_output: bool = True,
) -> ProtocolLogger:
    """
    Configure protocol logging.

    Replaces any handler installed by an earlier configuration.

    Args:
        level: Log level.
        json_output: Whether to use JSON formatting.

    Returns:
        Configured ProtocolLogger instance.
    """
    global _protocol_logger
    logging.getLogger("collab_protocol").handlers.clear()
    _protocol_logger = ProtocolLogger(level=level, json_output=json_output)
    return _protocol_logger
