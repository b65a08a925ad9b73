"""
StatusManager for recording and distributing status updates.
"""

import logging
from collections import deque
from typing import Deque, Dict, List, Optional

from tabpilot.coordination.chat_history import ChatHistoryStore
from tabpilot.coordination.config import StatusConfig
from tabpilot.coordination.status.channels import ChannelAdapter
from tabpilot.coordination.status.events import StatusUpdate

logger = logging.getLogger(__name__)


class StatusManager:
    """
    Distributes status updates to output channels.

    Every update is also appended to the chat transcript of its origin tab
    when its status is one that the transcript records.
    """

    def __init__(
        self,
        config: Optional[StatusConfig] = None,
        chat_history: Optional[ChatHistoryStore] = None,
        max_updates_per_tab: int = 200,
    ):
        self.config = config or StatusConfig()
        self.chat_history = chat_history if chat_history is not None else ChatHistoryStore()
        self.channels: List[ChannelAdapter] = []
        self.max_updates_per_tab = max_updates_per_tab
        self.tab_updates: Dict[int, Deque[StatusUpdate]] = {}

    def add_channel(self, channel: ChannelAdapter) -> None:
        """Add output channel."""
        self.channels.append(channel)
        logger.info(f"Added channel: {channel.name}")

    async def publish(self, update: StatusUpdate) -> None:
        """Record the update and forward it to all enabled channels."""
        key = update.history_key
        if key not in self.tab_updates:
            self.tab_updates[key] = deque(maxlen=self.max_updates_per_tab)
        self.tab_updates[key].append(update)

        self.chat_history.record_status(key, update.status, update.message)

        for channel in self.channels:
            if not channel.is_enabled():
                continue
            try:
                await channel.send(update)
            except Exception as e:
                logger.debug(f"Channel {channel.name} failed: {e}")

    def updates_for(self, tab_id: int) -> List[StatusUpdate]:
        return list(self.tab_updates.get(tab_id, ()))

    def last_update(self, tab_id: int) -> Optional[StatusUpdate]:
        updates = self.tab_updates.get(tab_id)
        return updates[-1] if updates else None

    async def shutdown(self):
        """Clean shutdown."""
        for channel in self.channels:
            await channel.close()
