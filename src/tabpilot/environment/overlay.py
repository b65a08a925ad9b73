"""
On-page overlay channel.

A small script injected with ``page.evaluate`` draws detected boxes and click
markers over the page and reports the viewport size. The agent talks to it
with typed messages (``GET_VIEWPORT``, ``HIDE_OVERLAY``, ``SHOW_OVERLAY``,
``ADD_BOXES``, ``CLEAR_BOXES``, ``FLASH_CLICK``). Overlay failures are logged
and never interrupt automation.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from tabpilot.agents.exceptions import DriverError
from tabpilot.environment.geometry import BoundingBox, Viewport
from tabpilot.environment.tabs import TabRegistry

logger = logging.getLogger(__name__)

OVERLAY_SCRIPT = """
(message) => {
  if (!window.__tabpilotOverlay) {
    const root = document.createElement('div');
    root.id = '__tabpilot-overlay';
    root.style.cssText = 'position:fixed;inset:0;pointer-events:none;z-index:2147483647;';
    document.documentElement.appendChild(root);

    const drawBox = (box) => {
      const el = document.createElement('div');
      el.className = '__tabpilot-box';
      el.style.cssText = 'position:absolute;border:2px solid #4f8cff;border-radius:3px;' +
        'background:rgba(79,140,255,0.08);box-sizing:border-box;';
      el.style.left = (box.x1 / 10) + '%';
      el.style.top = (box.y1 / 10) + '%';
      el.style.width = ((box.x2 - box.x1) / 10) + '%';
      el.style.height = ((box.y2 - box.y1) / 10) + '%';
      if (box.label) {
        const tag = document.createElement('span');
        tag.textContent = box.label;
        tag.style.cssText = 'position:absolute;top:-18px;left:0;font:11px sans-serif;' +
          'color:#fff;background:#4f8cff;padding:1px 4px;border-radius:2px;white-space:nowrap;';
        el.appendChild(tag);
      }
      root.appendChild(el);
    };

    window.__tabpilotOverlay = {
      handle(msg) {
        switch (msg.type) {
          case 'GET_VIEWPORT':
            return { width: window.innerWidth, height: window.innerHeight };
          case 'HIDE_OVERLAY':
            root.style.display = 'none';
            return true;
          case 'SHOW_OVERLAY':
            root.style.display = '';
            return true;
          case 'ADD_BOXES':
            (msg.boxes || []).forEach(drawBox);
            return true;
          case 'CLEAR_BOXES':
            root.querySelectorAll('.__tabpilot-box').forEach((el) => el.remove());
            return true;
          case 'FLASH_CLICK': {
            const dot = document.createElement('div');
            dot.style.cssText = 'position:absolute;width:24px;height:24px;margin:-12px 0 0 -12px;' +
              'border-radius:50%;background:rgba(255,80,80,0.6);transition:opacity 0.6s;';
            dot.style.left = msg.x + 'px';
            dot.style.top = msg.y + 'px';
            root.appendChild(dot);
            setTimeout(() => { dot.style.opacity = '0'; }, 200);
            setTimeout(() => dot.remove(), 900);
            return true;
          }
          default:
            return null;
        }
      },
    };
  }
  return window.__tabpilotOverlay.handle(message);
}
"""


class OverlayChannel:
    """Sends overlay messages to a tab's page."""

    def __init__(self, tabs: TabRegistry, enabled: bool = True):
        self.tabs = tabs
        self.enabled = enabled

    async def send(self, tab_id: int, message: Dict[str, Any]) -> Optional[Any]:
        """Deliver ``message`` to the overlay. Returns its reply, or None on failure."""
        if not self.enabled:
            return None

        page = self.tabs.get(tab_id)
        if page is None:
            return None

        try:
            return await page.evaluate(OVERLAY_SCRIPT, message)
        except Exception as e:
            logger.warning(f"Failed to send {message.get('type')} to tab {tab_id}: {e}")
            return None

    async def get_viewport(self, tab_id: int) -> Viewport:
        """
        Report the tab's viewport size in CSS pixels.

        Falls back to the page's configured viewport when the overlay is
        unavailable.

        Raises:
            DriverError: If neither source reports a size
        """
        reply = await self.send(tab_id, {"type": "GET_VIEWPORT"})
        if isinstance(reply, dict) and reply.get("width") and reply.get("height"):
            return Viewport(width=int(reply["width"]), height=int(reply["height"]))

        page = self.tabs.get(tab_id)
        size = getattr(page, "viewport_size", None) if page is not None else None
        if size:
            return Viewport(width=int(size["width"]), height=int(size["height"]))

        raise DriverError("Could not determine viewport size", tab_id=tab_id, command="GET_VIEWPORT")

    @asynccontextmanager
    async def hidden(self, tab_id: int):
        """Hide the overlay for the duration of the block, restoring it on exit."""
        await self.send(tab_id, {"type": "HIDE_OVERLAY"})
        try:
            yield
        finally:
            await self.send(tab_id, {"type": "SHOW_OVERLAY"})

    async def add_boxes(self, tab_id: int, boxes: List[BoundingBox]) -> None:
        if boxes:
            await self.send(tab_id, {"type": "ADD_BOXES", "boxes": [box.to_dict() for box in boxes]})

    async def clear_boxes(self, tab_id: int) -> None:
        await self.send(tab_id, {"type": "CLEAR_BOXES"})

    async def flash_click(self, tab_id: int, x: float, y: float) -> None:
        await self.send(tab_id, {"type": "FLASH_CLICK", "x": x, "y": y})
