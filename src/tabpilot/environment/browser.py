"""
Browser bootstrap.

Launches Chromium through Playwright and wires the per-browser collaborators
(tab registry, CDP driver, overlay channel) together.
"""

import logging
from typing import Dict, Optional

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from tabpilot.environment.cdp_driver import CDPDriver
from tabpilot.environment.overlay import OverlayChannel
from tabpilot.environment.tabs import TabRegistry

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT = {"width": 1280, "height": 720}


class BrowserEnvironment:
    """A launched browser context plus the objects that drive its tabs."""

    def __init__(
        self,
        playwright: Optional[Playwright],
        browser: Optional[Browser],
        context: BrowserContext,
        keystroke_delay: float = 0.05,
        ready_timeout: float = 5.0,
    ):
        self.playwright = playwright
        self.browser = browser
        self.context = context
        self.tabs = TabRegistry()
        self.driver = CDPDriver(self.tabs, keystroke_delay=keystroke_delay, ready_timeout=ready_timeout)
        self.overlay = OverlayChannel(self.tabs)

        # The debugger goes away with the tab; only the table entry needs dropping.
        self.tabs.on_tab_closed(self.driver.forget)
        self.tabs.watch(context)

    @classmethod
    async def create(
        cls,
        headless: bool = False,
        viewport: Optional[Dict[str, int]] = None,
        channel: Optional[str] = None,
        keystroke_delay: float = 0.05,
        ready_timeout: float = 5.0,
    ) -> "BrowserEnvironment":
        """
        Launch Chromium and open a browser context.

        Parameters:
            headless: Whether to launch the browser in headless mode
            viewport: Viewport dimensions for new pages
            channel: Browser channel (e.g. ``"chrome"``); bundled Chromium if None
        """
        playwright = await async_playwright().start()
        launch_kwargs = {"headless": headless}
        if channel:
            launch_kwargs["channel"] = channel
        browser = await playwright.chromium.launch(**launch_kwargs)
        context = await browser.new_context(viewport=viewport or DEFAULT_VIEWPORT)
        logger.info(f"Launched browser (headless={headless}, channel={channel or 'chromium'})")
        return cls(
            playwright,
            browser,
            context,
            keystroke_delay=keystroke_delay,
            ready_timeout=ready_timeout,
        )

    async def new_tab(self, url: Optional[str] = None) -> int:
        """Open a page and return its tab id."""
        page = await self.context.new_page()
        tab_id = self.tabs.register(page)
        if url:
            await self.tabs.navigate(tab_id, url)
        return tab_id

    async def close(self) -> None:
        await self.driver.detach_all()
        try:
            await self.context.close()
            if self.browser is not None:
                await self.browser.close()
        finally:
            if self.playwright is not None:
                await self.playwright.stop()
