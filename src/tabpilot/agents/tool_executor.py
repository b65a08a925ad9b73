"""
Tool dispatch for the tool-calling decision protocol.

Every tool call from the reasoning model is answered with a plain string.
Nothing raised by a tool reaches the orchestrator: failures become
``"Error: ..."`` or ``"Failed to ...: ..."`` results that the model reads and
reacts to. State shared between calls (the screenshot, its viewport and the
last located element) lives in the session's ``PerceptionCache``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from tabpilot.agents.exceptions import ActionError, DriverError, ParseError, TabPilotError
from tabpilot.environment.action_executor import ASK_USER_ACK, DONE_ACK, ActionExecutor
from tabpilot.environment.actions import EXECUTABLE_ACTION_TYPES, ClickAction, describe_action, parse_action
from tabpilot.environment.overlay import OverlayChannel
from tabpilot.environment.perception import NO_SCREENSHOT_MESSAGE, PerceptionAdapter, PerceptionCache
from tabpilot.environment.tabs import TabRegistry
from tabpilot.environment.utils import is_internal_url
from tabpilot.models import tools
from tabpilot.models.response_models import ToolCall

logger = logging.getLogger(__name__)

CANNOT_CAPTURE_RESULT = (
    "Cannot capture screenshot on this page. Use execute_action with navigate to go to a website first."
)
CANNOT_READ_TREE_RESULT = (
    "Cannot get accessibility tree on this page. Use execute_action with navigate to go to a website first."
)

# Verb used in "Failed to <verb>: ..." when the driver fails mid-action
FAILURE_VERBS = {
    "click": "click",
    "type": "type",
    "press": "press key",
    "scroll": "scroll",
    "wait": "wait",
    "navigate": "navigate",
}

StatusCallback = Callable[..., Awaitable[None]]
StopCheck = Callable[[], bool]


@dataclass
class ToolResult:
    """What a tool call produced."""

    content: str
    success: bool = True
    action: Optional[Dict[str, Any]] = None  # recorded in the action history when set
    terminal: Optional[str] = None  # "completed" or "waiting_for_user"


async def _no_status(status: str, message: str, **fields) -> None:
    return None


def _failure_message(error: Exception) -> str:
    if isinstance(error, TabPilotError):
        return error.message
    return str(error) or type(error).__name__


class ToolDispatcher:
    """
    Routes tool calls to the perception adapter and action executor.

    Args:
        perception: Screenshot capture and vision queries
        executor: Browser action execution
        overlay: Overlay channel, for drawing and clearing boxes
        tabs: Tab registry, for URL checks
        stream_vision: Stream analyze_page responses
    """

    def __init__(
        self,
        perception: PerceptionAdapter,
        executor: ActionExecutor,
        overlay: OverlayChannel,
        tabs: TabRegistry,
        stream_vision: bool = True,
    ):
        self.perception = perception
        self.executor = executor
        self.overlay = overlay
        self.tabs = tabs
        self.stream_vision = stream_vision

        self._handlers = {
            tools.CAPTURE_SCREENSHOT: self._capture_screenshot,
            tools.ANALYZE_PAGE: self._analyze_page,
            tools.GET_A11Y_TREE: self._get_a11y_tree,
            tools.FIND_ELEMENT: self._find_element,
            tools.EXECUTE_ACTION: self._execute_action,
            tools.ASK_USER: self._ask_user,
            tools.COMPLETE: self._complete,
        }

    async def dispatch_call(
        self,
        tab_id: int,
        tool_call: ToolCall,
        cache: PerceptionCache,
        on_status: Optional[StatusCallback] = None,
        should_continue: Optional[StopCheck] = None,
    ) -> ToolResult:
        """Decode a tool call's arguments and dispatch it."""
        try:
            args = tool_call.parse_arguments()
        except ParseError as e:
            logger.warning(f"Bad arguments for {tool_call.name}: {e.message}")
            return ToolResult(f"Error: {e.message}", success=False)
        return await self.dispatch(tab_id, tool_call.name, args, cache, on_status, should_continue)

    async def dispatch(
        self,
        tab_id: int,
        name: str,
        args: Dict[str, Any],
        cache: PerceptionCache,
        on_status: Optional[StatusCallback] = None,
        should_continue: Optional[StopCheck] = None,
    ) -> ToolResult:
        """
        Run the named tool. ``should_continue`` lets a long ``wait`` end early.
        """
        handler = self._handlers.get(name)
        if handler is None:
            logger.warning(f"Unknown tool requested: {name}")
            return ToolResult(f'Error: Unknown tool "{name}"', success=False)

        logger.debug(f"Dispatching {name} on tab {tab_id} with {args}")
        return await handler(tab_id, args, cache, on_status or _no_status, should_continue)

    async def _capture_screenshot(
        self, tab_id, args, cache: PerceptionCache, on_status, should_continue=None
    ) -> ToolResult:
        await on_status("analyzing", "Capturing screenshot...")
        try:
            snapshot = await self.perception.capture(tab_id, cache)
        except DriverError as e:
            cache.invalidate()
            return ToolResult(f"Failed to capture screenshot: {e.message}", success=False)

        if not snapshot:
            return ToolResult(CANNOT_CAPTURE_RESULT, success=False)
        return ToolResult(f"Screenshot captured. Viewport: {snapshot.viewport}")

    async def _analyze_page(self, tab_id, args, cache: PerceptionCache, on_status, should_continue=None) -> ToolResult:
        if not cache.has_snapshot():
            return ToolResult(NO_SCREENSHOT_MESSAGE, success=False)

        prompt = args.get("prompt") or None
        await on_status("analyzing", prompt or "Analyzing page...")
        await self.overlay.clear_boxes(tab_id)

        async def draw(boxes):
            await self.overlay.add_boxes(tab_id, boxes)

        try:
            analysis = await self.perception.analyze(
                cache.screenshot, prompt, on_boxes=draw, stream=self.stream_vision
            )
        except (TabPilotError, ValueError) as e:
            logger.warning(f"Page analysis failed on tab {tab_id}: {_failure_message(e)}")
            return ToolResult(f"Failed to analyze page: {_failure_message(e)}", success=False)

        cache.last_analysis = analysis.page_state
        await on_status(
            "vision",
            "Page analyzed",
            screenshot=cache.screenshot,
            page_description=analysis.page_state,
            boxes=analysis.boxes,
        )
        return ToolResult(analysis.page_state)

    async def _get_a11y_tree(self, tab_id, args, cache, on_status, should_continue=None) -> ToolResult:
        await on_status("analyzing", "Getting accessibility tree...")
        try:
            url = self.tabs.get_url(tab_id)
            if is_internal_url(url):
                return ToolResult(CANNOT_READ_TREE_RESULT, success=False)
            tree = await self.perception.accessibility_tree(tab_id)
        except DriverError as e:
            return ToolResult(f"Failed to get accessibility tree: {e.message}", success=False)
        return ToolResult(tree)

    async def _find_element(self, tab_id, args, cache: PerceptionCache, on_status, should_continue=None) -> ToolResult:
        if not cache.has_snapshot():
            return ToolResult(NO_SCREENSHOT_MESSAGE, success=False)

        target = args.get("target") or args.get("query")
        if not target:
            return ToolResult("Error: find_element requires target parameter", success=False)

        await on_status("analyzing", f"Finding: {target}")
        viewport = cache.viewport
        screenshot = cache.screenshot
        try:
            x, y = await self.perception.locate(cache, target)
        except (TabPilotError, ValueError) as e:
            return ToolResult(f"Failed to find element: {_failure_message(e)}", success=False)

        await on_status(
            "pointing",
            target,
            screenshot=screenshot,
            point_x=x / viewport.width * 100,
            point_y=y / viewport.height * 100,
        )
        return ToolResult(f"Element found at coordinates: x={x}, y={y}")

    async def _execute_action(
        self, tab_id, args, cache: PerceptionCache, on_status, should_continue=None
    ) -> ToolResult:
        await self.overlay.clear_boxes(tab_id)

        try:
            action = parse_action(args, allowed=EXECUTABLE_ACTION_TYPES)
        except ActionError as e:
            return ToolResult(e.as_result(), success=False, action=dict(args))

        if action.needs_snapshot and is_internal_url(self.tabs.get_url(tab_id)):
            return ToolResult(
                f"Error: Cannot {action.action} on this page. "
                "Use execute_action with navigate to go to a website first.",
                success=False,
                action=action.to_dict(),
            )

        if isinstance(action, ClickAction) and not action.target and cache.last_found_element:
            action = action.model_copy(update={"target": cache.last_found_element})

        await on_status("executing", describe_action(action), action=action.to_dict())
        try:
            outcome = await self.executor.execute(tab_id, action, cache, should_continue=should_continue)
        except DriverError as e:
            verb = FAILURE_VERBS.get(action.action, action.action)
            logger.warning(f"{action.action} failed on tab {tab_id}: {e.message}")
            return ToolResult(f"Failed to {verb}: {e.message}", success=False, action=action.to_dict())

        return ToolResult(outcome.message, success=outcome.success, action=action.to_dict())

    async def _ask_user(self, tab_id, args, cache, on_status, should_continue=None) -> ToolResult:
        prompt = args.get("prompt") or "I need your input to continue."
        return ToolResult(
            ASK_USER_ACK,
            action={"action": "ask_user", "prompt": prompt},
            terminal="waiting_for_user",
        )

    async def _complete(self, tab_id, args, cache, on_status, should_continue=None) -> ToolResult:
        result = args.get("result") or "Task complete."
        return ToolResult(
            DONE_ACK,
            action={"action": "done", "result": result},
            terminal="completed",
        )
