"""
Action execution.

Turns a validated action into driver calls. Invalid arguments are not
exceptions at this layer: they come back as ``ActionOutcome(success=False,
message="Error: ...")`` so the reasoning model can read and correct them.
Driver failures (``DriverError``) propagate to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from tabpilot.agents.exceptions import ActionError, UnsafeNavigationError
from tabpilot.environment.actions import (
    Action,
    AskUserAction,
    ClickAction,
    DoneAction,
    NavigateAction,
    PressAction,
    ScrollAction,
    TypeAction,
    WaitAction,
    format_duration,
    parse_action,
)
from tabpilot.environment.cdp_driver import CDPDriver
from tabpilot.environment.overlay import OverlayChannel
from tabpilot.environment.perception import PerceptionCache
from tabpilot.environment.tabs import TabRegistry
from tabpilot.environment.utils import is_unsafe_url

logger = logging.getLogger(__name__)

ASK_USER_ACK = "Waiting for user response..."
DONE_ACK = "Task marked as complete."

# Seconds between stop checks during a wait
WAIT_SLICE = 0.1


@dataclass
class ActionOutcome:
    success: bool
    message: str


class ActionExecutor:
    """
    Executes browser actions on a tab.

    Args:
        driver: CDP driver for input events
        tabs: Tab registry, used for navigation
        overlay: Overlay channel; mutating actions run with the overlay hidden
        navigation_delay: Seconds to let a navigation settle
        default_wait_ms: Duration of a ``wait`` action without one
    """

    def __init__(
        self,
        driver: CDPDriver,
        tabs: TabRegistry,
        overlay: OverlayChannel,
        navigation_delay: float = 2.0,
        default_wait_ms: int = 1000,
    ):
        self.driver = driver
        self.tabs = tabs
        self.overlay = overlay
        self.navigation_delay = navigation_delay
        self.default_wait_ms = default_wait_ms

    async def execute(
        self,
        tab_id: int,
        action: Union[Action, Dict[str, Any]],
        cache: Optional[PerceptionCache] = None,
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> ActionOutcome:
        """
        Execute one action.

        ``cache`` is emptied as soon as a click, Enter press, scroll or
        navigation is dispatched, whether or not it then succeeds.
        A ``wait`` ends early once ``should_continue`` returns False.

        Raises:
            DriverError: If a CDP command or navigation fails
        """
        cache = cache if cache is not None else PerceptionCache()
        try:
            if isinstance(action, dict):
                action = parse_action(action)
            message = await self._dispatch(tab_id, action, cache, should_continue)
        except ActionError as e:
            logger.info(f"Rejected action on tab {tab_id}: {e.message}")
            return ActionOutcome(success=False, message=e.as_result())
        return ActionOutcome(success=True, message=message)

    async def _dispatch(
        self,
        tab_id: int,
        action: Action,
        cache: PerceptionCache,
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> str:
        if isinstance(action, ClickAction):
            return await self._click(tab_id, action, cache)
        if isinstance(action, TypeAction):
            return await self._type(tab_id, action)
        if isinstance(action, PressAction):
            return await self._press(tab_id, action, cache)
        if isinstance(action, ScrollAction):
            return await self._scroll(tab_id, action, cache)
        if isinstance(action, WaitAction):
            return await self._wait(action, should_continue)
        if isinstance(action, NavigateAction):
            return await self._navigate(tab_id, action, cache)
        if isinstance(action, AskUserAction):
            return ASK_USER_ACK
        if isinstance(action, DoneAction):
            return DONE_ACK
        raise ActionError(f"Unknown action {type(action).__name__}")

    async def _click(self, tab_id: int, action: ClickAction, cache: PerceptionCache) -> str:
        if action.x is None or action.y is None:
            raise ActionError(
                "Error: click requires x and y coordinates. Use find_element first to get coordinates.",
                action="click",
            )

        target = action.target or cache.last_found_element or f"({action.x}, {action.y})"
        try:
            async with self.overlay.hidden(tab_id):
                await self.driver.dispatch_click(tab_id, action.x, action.y)
        finally:
            cache.invalidate()

        await self.overlay.flash_click(tab_id, action.x, action.y)
        return f"Clicked on {target}"

    async def _type(self, tab_id: int, action: TypeAction) -> str:
        if not action.text:
            raise ActionError("Error: type requires text parameter", action="type")

        async with self.overlay.hidden(tab_id):
            await self.driver.dispatch_type(tab_id, action.text)
        return f'Typed: "{action.text}"'

    async def _press(self, tab_id: int, action: PressAction, cache: PerceptionCache) -> str:
        if not action.key:
            raise ActionError(
                "Error: press requires key parameter (e.g. Enter, Escape, Tab, ArrowDown, ControlOrMeta+a)",
                action="press",
            )

        try:
            async with self.overlay.hidden(tab_id):
                await self.driver.dispatch_key(tab_id, action.key)
        finally:
            if action.invalidates_perception():
                cache.invalidate()
        return f"Pressed: {action.key}"

    async def _scroll(self, tab_id: int, action: ScrollAction, cache: PerceptionCache) -> str:
        if not action.direction:
            raise ActionError(
                "Error: scroll requires direction parameter (up, down, left, right)",
                action="scroll",
            )

        try:
            async with self.overlay.hidden(tab_id):
                await self.driver.dispatch_scroll(tab_id, action.direction)
        finally:
            cache.invalidate()
        return f"Scrolled {action.direction}"

    async def _wait(self, action: WaitAction, should_continue: Optional[Callable[[], bool]] = None) -> str:
        duration = action.duration if action.duration is not None else self.default_wait_ms
        if duration < 0:
            raise ActionError("Error: wait duration must not be negative", action="wait")
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration / 1000
        started = loop.time()
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            if should_continue is not None and not should_continue():
                elapsed = (loop.time() - started) * 1000
                return f"Wait interrupted after {format_duration(round(elapsed))}ms"
            await asyncio.sleep(min(WAIT_SLICE, remaining))
        return f"Waited {format_duration(duration)}ms"

    async def _navigate(self, tab_id: int, action: NavigateAction, cache: PerceptionCache) -> str:
        url = (action.url or "").strip()
        if not url:
            raise ActionError("Error: navigate requires url parameter", action="navigate")
        if is_unsafe_url(url):
            logger.warning(f"Blocked navigation to unsafe URL: {url[:100]}")
            raise UnsafeNavigationError(url)

        try:
            await self.tabs.navigate(tab_id, url)
            await asyncio.sleep(self.navigation_delay)
        finally:
            cache.invalidate(clear_analysis=True)
        return f"Navigated to {url}"
