"""
Per-tab chat transcript.

The transcript is what a side panel would show: the user's goals, the
assistant's replies and one line per executed action. It is keyed by the
tab where the task started, so it survives hand-off to a new tab.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Literal, Optional

logger = logging.getLogger(__name__)

ChatEntryType = Literal["user", "assistant", "action"]

WELCOME_MESSAGE = "What would you like me to do?"

# Status -> transcript entry type. Statuses not listed are not recorded.
CHAT_HISTORY_MAP: Dict[str, ChatEntryType] = {
    "executing": "action",
    "completed": "assistant",
    "error": "assistant",
    "stopped": "assistant",
    "waiting_for_user": "assistant",
}


@dataclass
class ChatEntry:
    type: ChatEntryType
    content: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, str]:
        data = asdict(self)
        data.pop("timestamp")
        return data


def welcome_entry() -> ChatEntry:
    return ChatEntry(type="assistant", content=WELCOME_MESSAGE)


class ChatHistoryStore:
    """In-memory chat transcripts keyed by origin tab id."""

    def __init__(self):
        self._entries: Dict[int, List[ChatEntry]] = {}

    def get(self, tab_id: int) -> List[ChatEntry]:
        """Return the transcript, or just the welcome entry if nothing was recorded."""
        entries = self._entries.get(tab_id)
        if not entries:
            return [welcome_entry()]
        return list(entries)

    def add(self, tab_id: int, entry: ChatEntry) -> None:
        entries = self._entries.get(tab_id)
        if not entries:
            # First write persists the welcome entry ahead of the new one.
            entries = [welcome_entry()]
            self._entries[tab_id] = entries
        entries.append(entry)

    def record_status(self, tab_id: int, status: str, message: str) -> Optional[ChatEntry]:
        """Append a transcript entry for a status update, if the status is recorded."""
        entry_type = CHAT_HISTORY_MAP.get(status)
        if entry_type is None or not message:
            return None
        entry = ChatEntry(type=entry_type, content=message)
        self.add(tab_id, entry)
        return entry

    def clear(self, tab_id: int) -> None:
        self._entries.pop(tab_id, None)
        logger.debug(f"Cleared chat history for tab {tab_id}")

    def __contains__(self, tab_id: int) -> bool:
        return tab_id in self._entries
