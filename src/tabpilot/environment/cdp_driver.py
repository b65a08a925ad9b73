"""
Chrome DevTools Protocol driver.

Every primitive the automation loop needs (mouse, keyboard, wheel, ready-state
polling, screenshots, accessibility tree) goes through one ``CDPSession`` per
tab. Sessions are opened lazily on first use and kept in a per-driver table so
a tab is never attached twice.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from tabpilot.agents.exceptions import ActionError, AttachError, DriverError
from tabpilot.environment.keys import build_key_events
from tabpilot.environment.tabs import TabRegistry
from tabpilot.environment.utils import is_internal_url

logger = logging.getLogger(__name__)

SCROLL_DELTA = 500
# Wheel events need a position; document-level scrolling ignores it.
SCROLL_ORIGIN = (400, 300)

SCREENSHOT_FORMAT = "jpeg"
SCREENSHOT_QUALITY = 85


class CDPDriver:
    """
    Thin async wrapper over CDP commands for the tabs of one browser context.

    Args:
        tabs: Registry used to resolve tab ids to pages
        keystroke_delay: Seconds between characters in :meth:`dispatch_type`
        ready_timeout: Default timeout for :meth:`wait_for_ready`
        ready_poll_interval: Seconds between ``document.readyState`` polls
        ready_settle_delay: Extra wait after the page reports ``complete``
        platform: ``sys.platform`` value used to resolve ``ControlOrMeta``
    """

    def __init__(
        self,
        tabs: TabRegistry,
        keystroke_delay: float = 0.05,
        ready_timeout: float = 5.0,
        ready_poll_interval: float = 0.1,
        ready_settle_delay: float = 0.2,
        platform: Optional[str] = None,
    ):
        self.tabs = tabs
        self.keystroke_delay = keystroke_delay
        self.ready_timeout = ready_timeout
        self.ready_poll_interval = ready_poll_interval
        self.ready_settle_delay = ready_settle_delay
        self.platform = platform

        self._sessions: Dict[int, Any] = {}
        self._attach_locks: Dict[int, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def is_attached(self, tab_id: int) -> bool:
        return tab_id in self._sessions

    async def attach(self, tab_id: int):
        """
        Return the CDP session for ``tab_id``, opening it on first use.

        Raises:
            AttachError: If the tab shows a browser-internal page or the
                session cannot be opened
        """
        session = self._sessions.get(tab_id)
        if session is not None:
            return session

        lock = self._attach_locks.setdefault(tab_id, asyncio.Lock())
        async with lock:
            session = self._sessions.get(tab_id)
            if session is not None:
                return session

            page = self.tabs.get(tab_id)
            if page is None:
                raise AttachError(tab_id=tab_id)

            url = page.url
            if is_internal_url(url):
                raise AttachError(tab_id=tab_id, url=url)

            try:
                session = await page.context.new_cdp_session(page)
            except Exception as e:
                raise AttachError(tab_id=tab_id, url=url, cause=e) from e

            self._sessions[tab_id] = session
            logger.debug(f"Attached debugger to tab {tab_id} ({url})")
            return session

    def forget(self, tab_id: int) -> None:
        """Drop the table entry for a closed tab. The browser detaches on its own."""
        self._sessions.pop(tab_id, None)
        self._attach_locks.pop(tab_id, None)

    async def detach_all(self) -> None:
        """Detach every open session (used on shutdown)."""
        sessions = list(self._sessions.items())
        self._sessions.clear()
        self._attach_locks.clear()
        for tab_id, session in sessions:
            try:
                await session.detach()
            except Exception as e:
                logger.debug(f"Detach from tab {tab_id} failed: {e}")

    async def send(self, tab_id: int, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send one CDP command, attaching first if needed."""
        session = await self.attach(tab_id)
        try:
            result = await session.send(method, params or {})
        except Exception as e:
            raise DriverError(
                f"CDP command {method} failed: {e}",
                tab_id=tab_id,
                command=method,
                cause=e,
            ) from e
        return result or {}

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    async def dispatch_click(self, tab_id: int, x: float, y: float) -> None:
        """Left-button press and release at CSS pixel ``(x, y)``."""
        for event_type in ("mousePressed", "mouseReleased"):
            await self.send(
                tab_id,
                "Input.dispatchMouseEvent",
                {"type": event_type, "x": x, "y": y, "button": "left", "clickCount": 1},
            )

    async def dispatch_type(self, tab_id: int, text: str) -> None:
        """Insert ``text`` one character at a time."""
        for char in text:
            await self.send(tab_id, "Input.dispatchKeyEvent", {"type": "char", "text": char})
            await asyncio.sleep(self.keystroke_delay)

    async def dispatch_key(self, tab_id: int, key: str) -> None:
        """
        Press a named key or ``+``-combination such as ``ControlOrMeta+a``.

        Raises:
            UnsupportedKeyError: Before any event is sent, if a part of the
                combination is unknown
        """
        events = build_key_events(key, self.platform)
        await self.attach(tab_id)
        for params in events:
            await self.send(tab_id, "Input.dispatchKeyEvent", params)

    async def dispatch_scroll(self, tab_id: int, direction: str) -> None:
        """Scroll by one fixed wheel step: ``up``, ``down``, ``left`` or ``right``."""
        deltas = {
            "up": (0, -SCROLL_DELTA),
            "down": (0, SCROLL_DELTA),
            "left": (-SCROLL_DELTA, 0),
            "right": (SCROLL_DELTA, 0),
        }
        if direction not in deltas:
            raise ActionError(
                f"Invalid scroll direction: {direction}. Use up, down, left or right.",
                action="scroll",
                invalid_params={"direction": direction},
            )

        delta_x, delta_y = deltas[direction]
        x, y = SCROLL_ORIGIN
        await self.send(
            tab_id,
            "Input.dispatchMouseEvent",
            {"type": "mouseWheel", "x": x, "y": y, "deltaX": delta_x, "deltaY": delta_y},
        )

    # ------------------------------------------------------------------
    # Page state
    # ------------------------------------------------------------------

    async def evaluate(self, tab_id: int, expression: str) -> Any:
        """Evaluate ``expression`` in the page and return its value."""
        result = await self.send(
            tab_id,
            "Runtime.evaluate",
            {"expression": expression, "returnByValue": True},
        )
        if result.get("exceptionDetails"):
            details = result["exceptionDetails"]
            raise DriverError(
                f"Evaluation failed: {details.get('text', 'exception thrown')}",
                tab_id=tab_id,
                command="Runtime.evaluate",
            )
        return (result.get("result") or {}).get("value")

    async def wait_for_ready(self, tab_id: int, timeout: Optional[float] = None) -> bool:
        """
        Best-effort wait for ``document.readyState == "complete"``.

        Never raises: attach failures, evaluation errors and timeouts are
        logged and the call returns.

        Returns:
            True if the page reported ``complete`` before the timeout
        """
        timeout = self.ready_timeout if timeout is None else timeout

        try:
            await self.attach(tab_id)
        except AttachError as e:
            logger.warning(f"Failed to attach debugger for page ready check: {e}")
            return False

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            try:
                state = await self.evaluate(tab_id, "document.readyState")
            except DriverError as e:
                logger.warning(f"Error checking page ready state: {e}")
                return False

            if state == "complete":
                await asyncio.sleep(self.ready_settle_delay)
                return True
            await asyncio.sleep(self.ready_poll_interval)

        logger.debug(f"Tab {tab_id} not ready after {timeout:.1f}s, continuing anyway")
        return False

    async def capture_screenshot(self, tab_id: int) -> str:
        """Capture the viewport as a base64-encoded JPEG."""
        result = await self.send(
            tab_id,
            "Page.captureScreenshot",
            {"format": SCREENSHOT_FORMAT, "quality": SCREENSHOT_QUALITY},
        )
        data = result.get("data")
        if not data:
            raise DriverError(
                "Screenshot returned no data",
                tab_id=tab_id,
                command="Page.captureScreenshot",
            )
        return data

    async def fetch_accessibility_tree(self, tab_id: int) -> List[Dict[str, Any]]:
        """Return the flat node list of ``Accessibility.getFullAXTree``."""
        result = await self.send(tab_id, "Accessibility.getFullAXTree")
        return result.get("nodes", [])
