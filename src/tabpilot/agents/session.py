"""
Per-tab session state.

A :class:`Session` is everything one automation run owns: the goal, the
conversation with the reasoning model, the action history and the perception
cache. Sessions live in a :class:`SessionTable` keyed by the tab currently
under automation; when that tab opens a popup the entry is relocated to the
new tab and the same object keeps running there.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional

from tabpilot.agents.memory import ActionHistoryEntry, ConversationMemory
from tabpilot.environment.perception import PerceptionCache

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    WAITING_FOR_USER = "waiting_for_user"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self not in (SessionStatus.IDLE, SessionStatus.RUNNING)


@dataclass
class Session:
    """State of one automation run."""

    tab_id: int
    origin_tab_id: int
    goal: Optional[str] = None
    running: bool = False
    status: SessionStatus = SessionStatus.IDLE
    memory: ConversationMemory = field(default_factory=ConversationMemory)
    history: List[ActionHistoryEntry] = field(default_factory=list)
    cache: PerceptionCache = field(default_factory=PerceptionCache)

    # Carried from one decision to the next iteration's perception step
    pending_question: Optional[str] = None
    vision_focus: Optional[str] = None

    iteration: int = 0
    result: Optional[str] = None

    def reset(self, goal: str) -> None:
        """Start a fresh run on this tab, dropping the previous conversation."""
        self.goal = goal
        self.memory = ConversationMemory()
        self.history = []
        self.cache = PerceptionCache()
        self.pending_question = None
        self.vision_focus = None
        self.iteration = 0
        self.result = None

    def record(self, entry: ActionHistoryEntry) -> None:
        self.history.append(entry)

    def mark_last_failed(self) -> bool:
        """Flag the most recent history entry as failed. Returns False if there is none."""
        if not self.history:
            return False
        self.history[-1].success = False
        return True

    def to_status(self) -> Dict[str, object]:
        return {
            "isRunning": self.running,
            "currentGoal": self.goal if self.running else None,
            "actionCount": len(self.history),
            "status": self.status.value,
            "tabId": self.tab_id,
            "originTabId": self.origin_tab_id,
        }


class SessionTable:
    """Sessions keyed by the tab they currently automate."""

    def __init__(self):
        self._sessions: Dict[int, Session] = {}

    def get(self, tab_id: int) -> Optional[Session]:
        return self._sessions.get(tab_id)

    def get_or_create(self, tab_id: int) -> Session:
        session = self._sessions.get(tab_id)
        if session is None:
            session = Session(tab_id=tab_id, origin_tab_id=tab_id)
            self._sessions[tab_id] = session
        return session

    def relocate(self, old_tab_id: int, new_tab_id: int) -> Optional[Session]:
        """
        Move the session under ``old_tab_id`` to ``new_tab_id``.

        The session object itself is preserved (conversation, history and
        origin tab included); only its key and ``tab_id`` change. Any session
        already stored under ``new_tab_id`` is replaced.
        """
        session = self._sessions.pop(old_tab_id, None)
        if session is None:
            return None
        replaced = self._sessions.get(new_tab_id)
        if replaced is not None:
            logger.debug(f"Replacing idle session on tab {new_tab_id} during hand-off")
        session.tab_id = new_tab_id
        self._sessions[new_tab_id] = session
        return session

    def remove(self, tab_id: int) -> Optional[Session]:
        return self._sessions.pop(tab_id, None)

    def find_by_origin(self, origin_tab_id: int) -> Optional[Session]:
        for session in self._sessions.values():
            if session.origin_tab_id == origin_tab_id:
                return session
        return None

    def __contains__(self, tab_id: int) -> bool:
        return tab_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))
