"""Run configuration, status distribution and chat transcripts."""

from .chat_history import CHAT_HISTORY_MAP, ChatEntry, ChatHistoryStore
from .config import AutomationConfig, StatusConfig, VerbosityLevel
from .status import CallbackChannel, CLIChannel, QueueChannel, StatusManager, StatusUpdate

__all__ = [
    "AutomationConfig",
    "CHAT_HISTORY_MAP",
    "CallbackChannel",
    "ChatEntry",
    "ChatHistoryStore",
    "CLIChannel",
    "QueueChannel",
    "StatusConfig",
    "StatusManager",
    "StatusUpdate",
    "VerbosityLevel",
]
