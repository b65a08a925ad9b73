"""
Output channels for status updates.
"""

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Union

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

from tabpilot.coordination.config import StatusConfig, VerbosityLevel
from tabpilot.coordination.status.events import StatusUpdate

STATUS_STYLES = {
    "analyzing": "info",
    "reasoning": "info",
    "vision": "vision",
    "pointing": "vision",
    "executing": "action",
    "completed": "success",
    "error": "error",
    "stopped": "warning",
    "waiting_for_user": "prompt",
}

THEME = Theme(
    {
        "info": "bright_cyan",
        "vision": "magenta",
        "action": "bright_blue bold",
        "success": "bright_green bold",
        "error": "bright_red bold",
        "warning": "bright_yellow",
        "prompt": "bright_green bold",
        "timestamp": "dim white",
        "reasoning": "dim",
    }
)


class ChannelAdapter(ABC):
    """Base class for output channels."""

    def __init__(self, name: str, enabled: bool = True):
        self.name = name
        self.enabled = enabled

    def is_enabled(self) -> bool:
        return self.enabled

    @abstractmethod
    async def send(self, update: StatusUpdate) -> None:
        """Send update to channel."""
        pass

    async def close(self) -> None:
        """Close channel resources."""
        pass


class CLIChannel(ChannelAdapter):
    """
    Terminal output channel with verbosity-aware formatting.
    """

    def __init__(self, config: StatusConfig, console: Optional[Console] = None):
        super().__init__("cli", config.cli_output)
        self.config = config
        self.console = console or Console(theme=THEME, no_color=not config.cli_colors)
        self.start_time: float = time.time()

    def should_print(self, update: StatusUpdate) -> bool:
        verbosity = self.config.verbosity
        if update.is_terminal:
            return True
        if verbosity == VerbosityLevel.QUIET:
            return False
        if update.status == "executing":
            return True
        return verbosity >= VerbosityLevel.VERBOSE

    async def send(self, update: StatusUpdate) -> None:
        """Format and print status update based on verbosity."""
        if not self.should_print(update):
            return

        prefix = ""
        if self.config.show_timings:
            elapsed = time.time() - self.start_time
            prefix = f"[timestamp][{elapsed:6.2f}s][/timestamp] "

        style = STATUS_STYLES.get(update.status, "info")
        label = update.status.replace("_", " ")
        self.console.print(
            f"{prefix}[{style}]{label:<16}[/{style}] tab {update.tab_id} #{update.iteration}  {escape(update.message)}",
            highlight=False,
        )

        if self.config.show_reasoning and update.reasoning:
            self.console.print(f"    [reasoning]{escape(update.reasoning)}[/reasoning]", highlight=False)

        if self.config.show_boxes and update.boxes:
            for box in update.boxes:
                label = box.label or "(unlabeled)"
                self.console.print(
                    f"    [vision]box[/vision] {escape(label)} ({box.x1}, {box.y1}) - ({box.x2}, {box.y2})",
                    highlight=False,
                )


class CallbackChannel(ChannelAdapter):
    """Forwards every update to a sync or async callable."""

    def __init__(
        self,
        callback: Callable[[StatusUpdate], Union[None, Awaitable[None]]],
        name: str = "callback",
    ):
        super().__init__(name)
        self.callback = callback

    async def send(self, update: StatusUpdate) -> None:
        result = self.callback(update)
        if inspect.isawaitable(result):
            await result


class QueueChannel(ChannelAdapter):
    """Pushes updates onto an asyncio queue for a consumer task."""

    def __init__(self, queue: Optional[asyncio.Queue] = None, name: str = "queue"):
        super().__init__(name)
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()

    async def send(self, update: StatusUpdate) -> None:
        await self.queue.put(update)
