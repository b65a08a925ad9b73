"""Automation sessions: orchestration loop, tool dispatch, session state and errors."""

# exceptions first: the environment and model layers import it while this package initializes
from .exceptions import (
    ActionError,
    ApiError,
    AttachError,
    ConfigurationError,
    DriverError,
    LocateParseError,
    ParseError,
    SessionStateError,
    TabPilotError,
    UnsafeNavigationError,
    UnsupportedKeyError,
)
from .memory import ActionHistoryEntry, ConversationMemory
from .orchestrator import SessionOrchestrator
from .session import Session, SessionStatus, SessionTable
from .tool_executor import ToolDispatcher, ToolResult
from .utils import init_logging

__all__ = [
    "ActionError",
    "ActionHistoryEntry",
    "ApiError",
    "AttachError",
    "ConfigurationError",
    "ConversationMemory",
    "DriverError",
    "LocateParseError",
    "ParseError",
    "Session",
    "SessionOrchestrator",
    "SessionStateError",
    "SessionStatus",
    "SessionTable",
    "TabPilotError",
    "ToolDispatcher",
    "ToolResult",
    "UnsafeNavigationError",
    "UnsupportedKeyError",
    "init_logging",
]
