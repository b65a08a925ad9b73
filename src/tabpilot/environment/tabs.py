"""
Tab registry.

Playwright pages have no stable numeric identity, so every page the browser
context opens is registered here under an integer tab id. The registry also
turns Playwright's ``page``/``close`` events into the two notifications the
orchestrator cares about: a tab opened by another tab, and a tab closed.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from tabpilot.agents.exceptions import DriverError

logger = logging.getLogger(__name__)

TabOpenedListener = Callable[[int, int], Union[None, Awaitable[None]]]
TabClosedListener = Callable[[int], Union[None, Awaitable[None]]]


class TabRegistry:
    """Maps integer tab ids to Playwright pages and fans out tab lifecycle events."""

    def __init__(self, navigation_timeout_ms: int = 30000):
        self.navigation_timeout_ms = navigation_timeout_ms
        self._pages: Dict[int, Any] = {}
        self._ids: Dict[int, int] = {}  # id(page) -> tab id
        self._next_id = 1
        self._opened_listeners: List[TabOpenedListener] = []
        self._closed_listeners: List[TabClosedListener] = []

    def __contains__(self, tab_id: int) -> bool:
        return tab_id in self._pages

    def __len__(self) -> int:
        return len(self._pages)

    @property
    def tab_ids(self) -> List[int]:
        return list(self._pages)

    def on_tab_opened(self, listener: TabOpenedListener) -> None:
        """Register ``listener(opener_tab_id, new_tab_id)``."""
        self._opened_listeners.append(listener)

    def on_tab_closed(self, listener: TabClosedListener) -> None:
        """Register ``listener(tab_id)``."""
        self._closed_listeners.append(listener)

    def watch(self, context) -> None:
        """Register the context's existing pages and follow new ones."""
        for page in context.pages:
            self.register(page)
        context.on("page", self._handle_new_page)

    def register(self, page) -> int:
        """Assign a tab id to ``page`` (idempotent)."""
        existing = self._ids.get(id(page))
        if existing is not None:
            return existing

        tab_id = self._next_id
        self._next_id += 1
        self._pages[tab_id] = page
        self._ids[id(page)] = tab_id

        async def on_close(_page):
            await self._handle_close(tab_id)

        page.on("close", on_close)
        logger.debug(f"Registered tab {tab_id}: {page.url}")
        return tab_id

    def tab_id_for(self, page) -> Optional[int]:
        if page is None:
            return None
        return self._ids.get(id(page))

    def get(self, tab_id: int):
        return self._pages.get(tab_id)

    def page(self, tab_id: int):
        """Return the page for ``tab_id`` or raise ``DriverError`` if it is not open."""
        page = self._pages.get(tab_id)
        if page is None:
            raise DriverError(f"Tab {tab_id} is not open", tab_id=tab_id, command="tabs.get")
        return page

    def get_url(self, tab_id: int) -> str:
        return self.page(tab_id).url or ""

    async def navigate(self, tab_id: int, url: str) -> None:
        """Point the tab at ``url``. Returns once the navigation has committed."""
        page = self.page(tab_id)
        try:
            await page.goto(url, wait_until="commit", timeout=self.navigation_timeout_ms)
        except Exception as e:
            raise DriverError(
                f"Navigation to {url} failed: {e}",
                tab_id=tab_id,
                command="Page.navigate",
                cause=e,
            ) from e

    async def _handle_new_page(self, page) -> None:
        tab_id = self.register(page)
        try:
            opener = await page.opener()
        except Exception as e:
            logger.debug(f"Could not resolve opener for tab {tab_id}: {e}")
            return

        opener_id = self.tab_id_for(opener)
        if opener_id is None:
            return

        logger.info(f"Tab {opener_id} opened tab {tab_id}")
        for listener in list(self._opened_listeners):
            await _notify(listener, opener_id, tab_id)

    async def _handle_close(self, tab_id: int) -> None:
        page = self._pages.pop(tab_id, None)
        if page is None:
            return
        self._ids.pop(id(page), None)
        logger.debug(f"Tab {tab_id} closed")
        for listener in list(self._closed_listeners):
            await _notify(listener, tab_id)


async def _notify(listener: Callable, *args) -> None:
    try:
        result = listener(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error(f"Tab listener {getattr(listener, '__name__', listener)} failed: {e}", exc_info=True)
