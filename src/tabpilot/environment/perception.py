"""
Perception: screenshot capture and vision queries for one tab.

A :class:`PerceptionCache` holds the most recent screenshot together with the
viewport it was taken at. Coordinates returned by the vision model are only
meaningful against that pair, so the cache is emptied by every action that may
change the page (see ``BaseAction.invalidates_perception``).
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from tabpilot.agents.exceptions import ActionError
from tabpilot.environment.accessibility import format_accessibility_tree
from tabpilot.environment.cdp_driver import CDPDriver
from tabpilot.environment.geometry import Viewport, point_to_pixels
from tabpilot.environment.overlay import OverlayChannel
from tabpilot.environment.tabs import TabRegistry
from tabpilot.environment.utils import is_internal_url
from tabpilot.models.vision import BoxCallback, VisionAnalysis, VisionClient

logger = logging.getLogger(__name__)

NO_SCREENSHOT_MESSAGE = "Error: No screenshot available. Call capture_screenshot first."


class _NoPerception:
    """Returned by :meth:`PerceptionAdapter.capture` on pages that cannot be captured."""

    def __repr__(self) -> str:
        return "NO_PERCEPTION"

    def __bool__(self) -> bool:
        return False


NO_PERCEPTION = _NoPerception()


@dataclass
class PerceptionCache:
    """The screenshot and viewport the next locate/click must be planned against."""

    screenshot: Optional[str] = None
    viewport: Optional[Viewport] = None
    last_analysis: Optional[str] = None
    last_found_element: Optional[str] = None

    def has_snapshot(self) -> bool:
        return self.screenshot is not None and self.viewport is not None

    def store(self, screenshot: str, viewport: Viewport) -> None:
        self.screenshot = screenshot
        self.viewport = viewport

    def invalidate(self, clear_analysis: bool = False) -> None:
        self.screenshot = None
        self.viewport = None
        self.last_found_element = None
        if clear_analysis:
            self.last_analysis = None


@dataclass(frozen=True)
class Snapshot:
    url: str
    screenshot: str
    viewport: Viewport


class PerceptionAdapter:
    """Captures screenshots and routes vision queries for the tabs of one browser."""

    def __init__(
        self,
        driver: CDPDriver,
        tabs: TabRegistry,
        overlay: OverlayChannel,
        vision: VisionClient,
        overlay_hide_delay: float = 0.05,
    ):
        self.driver = driver
        self.tabs = tabs
        self.overlay = overlay
        self.vision = vision
        self.overlay_hide_delay = overlay_hide_delay

    async def capture(self, tab_id: int, cache: PerceptionCache) -> Union[Snapshot, _NoPerception]:
        """
        Capture the tab into ``cache``.

        Returns ``NO_PERCEPTION`` without touching the debugger when the tab
        shows a browser-internal page.

        Raises:
            DriverError: If the screenshot or viewport lookup fails
        """
        url = self.tabs.get_url(tab_id)
        if is_internal_url(url):
            logger.debug(f"Skipping screenshot for internal URL: {url!r}")
            return NO_PERCEPTION

        await self.driver.wait_for_ready(tab_id)

        async with self.overlay.hidden(tab_id):
            if self.overlay_hide_delay:
                await asyncio.sleep(self.overlay_hide_delay)
            screenshot = await self.driver.capture_screenshot(tab_id)

        viewport = await self.overlay.get_viewport(tab_id)
        cache.store(screenshot, viewport)
        logger.debug(f"Captured tab {tab_id} at {viewport}")
        return Snapshot(url=url, screenshot=screenshot, viewport=viewport)

    async def analyze(
        self,
        screenshot: str,
        focus_hint: Optional[str] = None,
        on_boxes: Optional[BoxCallback] = None,
        stream: Optional[bool] = None,
    ) -> VisionAnalysis:
        return await self.vision.analyze(screenshot, focus_hint, on_boxes=on_boxes, stream=stream)

    async def locate(self, cache: PerceptionCache, description: str) -> Tuple[int, int]:
        """
        Find ``description`` in the cached screenshot and return pixel coordinates.

        Raises:
            ActionError: If the cache holds no screenshot
            LocateParseError: If the vision model returns no point
        """
        if not cache.has_snapshot():
            raise ActionError(NO_SCREENSHOT_MESSAGE, action="find_element")

        norm_x, norm_y = await self.vision.point(cache.screenshot, description)
        x, y = point_to_pixels(norm_x, norm_y, cache.viewport)
        logger.debug(f"Located {description!r}: normalized ({norm_x}, {norm_y}) -> pixels ({x}, {y})")
        cache.last_found_element = description
        return x, y

    async def ask(self, screenshot: str, question: str) -> str:
        return await self.vision.ask(screenshot, question)

    async def accessibility_tree(self, tab_id: int) -> str:
        nodes = await self.driver.fetch_accessibility_tree(tab_id)
        return format_accessibility_tree(nodes)
