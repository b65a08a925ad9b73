"""
Status update definitions.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from tabpilot.environment.geometry import BoundingBox

Status = Literal[
    "analyzing",
    "reasoning",
    "executing",
    "vision",
    "pointing",
    "completed",
    "error",
    "stopped",
    "waiting_for_user",
]

TERMINAL_STATUSES = ("completed", "error", "stopped", "waiting_for_user")


@dataclass
class StatusUpdate:
    """One progress report from an automation session."""
    tab_id: int
    status: Status
    iteration: int
    message: str
    origin_tab_id: Optional[int] = field(default=None, kw_only=True)
    screenshot: Optional[str] = field(default=None, kw_only=True)
    page_description: Optional[str] = field(default=None, kw_only=True)
    boxes: Optional[List[BoundingBox]] = field(default=None, kw_only=True)
    point_x: Optional[float] = field(default=None, kw_only=True)  # percent of viewport width
    point_y: Optional[float] = field(default=None, kw_only=True)  # percent of viewport height
    action: Optional[Dict[str, Any]] = field(default=None, kw_only=True)
    reasoning: Optional[str] = field(default=None, kw_only=True)
    confidence: Optional[float] = field(default=None, kw_only=True)
    timestamp: float = field(default_factory=time.time, kw_only=True)

    @property
    def history_key(self) -> int:
        """Chat history is kept per origin tab, which survives tab hand-off."""
        return self.origin_tab_id if self.origin_tab_id is not None else self.tab_id

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
