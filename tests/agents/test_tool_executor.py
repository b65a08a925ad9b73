"""
Tests for the tabpilot.agents.tool_executor module.

This module tests:
- Argument decoding and unknown tools
- Screenshot capture, page analysis and the accessibility tree
- Vision endpoints answering with a non-JSON body
- Element location and the pointing status
- Action execution through execute_action
- The terminal ask_user and complete tools
"""

from unittest.mock import AsyncMock, Mock

import pytest
from aiohttp import test_utils, web

from conftest import FakeContext, FakePage, ready_session
from tabpilot.agents.exceptions import ApiError, LocateParseError
from tabpilot.agents.tool_executor import CANNOT_CAPTURE_RESULT, CANNOT_READ_TREE_RESULT, ToolDispatcher
from tabpilot.environment.action_executor import ASK_USER_ACK, DONE_ACK, ActionExecutor
from tabpilot.environment.geometry import BoundingBox, Viewport
from tabpilot.environment.perception import NO_SCREENSHOT_MESSAGE, PerceptionAdapter, PerceptionCache
from tabpilot.models.response_models import ToolCall
from tabpilot.models.models import ModelConfig
from tabpilot.models.vision import VisionAnalysis, VisionClient


@pytest.fixture
def vision():
    vision = Mock()
    vision.analyze = AsyncMock(return_value=VisionAnalysis(page_state="A search page with a results list"))
    vision.point = AsyncMock(return_value=(500, 500))
    vision.ask = AsyncMock(return_value="Yes")
    return vision


@pytest.fixture
def dispatcher(driver, tabs, overlay, vision):
    perception = PerceptionAdapter(driver, tabs, overlay, vision, overlay_hide_delay=0)
    executor = ActionExecutor(driver, tabs, overlay, navigation_delay=0)
    return ToolDispatcher(perception, executor, overlay, tabs, stream_vision=False)


@pytest.fixture
def cache():
    return PerceptionCache()


@pytest.fixture
def captured():
    cache = PerceptionCache()
    cache.store("c2NyZWVu", Viewport(width=1000, height=800))
    return cache


# =============================================================================
# Dispatch Tests
# =============================================================================

class TestDispatch:
    """Tests for routing and argument decoding."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, dispatcher, cache):
        """Test unknown tools are answered with an error."""
        result = await dispatcher.dispatch(1, "hover", {}, cache)

        assert result.content == 'Error: Unknown tool "hover"'
        assert not result.success

    @pytest.mark.asyncio
    async def test_bad_arguments(self, dispatcher, cache):
        """Test undecodable arguments are answered with an error."""
        call = ToolCall(id="c1", function={"name": "find_element", "arguments": "{not json"})

        result = await dispatcher.dispatch_call(1, call, cache)

        assert result.content.startswith("Error: Invalid arguments for tool find_element")
        assert not result.success

    @pytest.mark.asyncio
    async def test_dispatch_call_decodes_arguments(self, dispatcher, captured):
        """Test JSON arguments reach the handler."""
        call = ToolCall(id="c1", function={"name": "find_element", "arguments": '{"target": "Search"}'})

        result = await dispatcher.dispatch_call(1, call, captured)

        assert result.content == "Element found at coordinates: x=500, y=400"


# =============================================================================
# Observation Tool Tests
# =============================================================================

class TestObservationTools:
    """Tests for capture_screenshot, analyze_page and get_a11y_tree."""

    @pytest.mark.asyncio
    async def test_capture(self, dispatcher, cache):
        """Test a capture fills the cache and reports the viewport."""
        on_status = AsyncMock()

        result = await dispatcher.dispatch(1, "capture_screenshot", {}, cache, on_status)

        assert result.content == "Screenshot captured. Viewport: 1000x800"
        assert result.action is None
        assert cache.screenshot == "c2NyZWVu"
        on_status.assert_awaited_once_with("analyzing", "Capturing screenshot...")

    @pytest.mark.asyncio
    async def test_capture_internal_page(self, dispatcher, page, cache):
        """Test browser-internal pages cannot be captured."""
        page.url = "chrome://newtab/"

        result = await dispatcher.dispatch(1, "capture_screenshot", {}, cache)

        assert result.content == CANNOT_CAPTURE_RESULT
        assert not result.success
        assert page.session.sent == []

    @pytest.mark.asyncio
    async def test_capture_driver_failure(self, dispatcher, page, captured):
        """Test a failed screenshot empties the cache and is reported."""
        page.session.responses["Page.captureScreenshot"] = RuntimeError("boom")

        result = await dispatcher.dispatch(1, "capture_screenshot", {}, captured)

        assert result.content.startswith("Failed to capture screenshot:")
        assert "Page.captureScreenshot" in result.content
        assert not captured.has_snapshot()

    @pytest.mark.asyncio
    async def test_analyze_requires_screenshot(self, dispatcher, cache, vision):
        """Test analyze_page refuses to run without a screenshot."""
        result = await dispatcher.dispatch(1, "analyze_page", {"prompt": "List buttons"}, cache)

        assert result.content == NO_SCREENSHOT_MESSAGE
        vision.analyze.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_analyze(self, dispatcher, page, captured, vision):
        """Test analysis draws boxes as they arrive and reports the description."""
        boxes = [BoundingBox(x1=10, y1=20, x2=30, y2=40, label="Search")]

        async def analyze(screenshot, focus_hint, on_boxes=None, stream=None):
            await on_boxes(boxes)
            return VisionAnalysis(page_state="A search box", boxes=boxes)

        vision.analyze.side_effect = analyze
        on_status = AsyncMock()

        result = await dispatcher.dispatch(1, "analyze_page", {"prompt": "List inputs"}, captured, on_status)

        assert result.content == "A search box"
        assert captured.last_analysis == "A search box"
        assert page.overlay_types() == ["CLEAR_BOXES", "ADD_BOXES"]
        status, message = on_status.await_args_list[-1].args
        assert (status, message) == ("vision", "Page analyzed")
        assert on_status.await_args_list[-1].kwargs["boxes"] == boxes

    @pytest.mark.asyncio
    async def test_analyze_failure(self, dispatcher, captured, vision):
        """Test vision API errors become a tool result."""
        vision.analyze.side_effect = ApiError("overloaded", status=503)

        result = await dispatcher.dispatch(1, "analyze_page", {}, captured)

        assert result.content == "Failed to analyze page: overloaded"
        assert not result.success

    @pytest.mark.asyncio
    async def test_vision_gateway_returns_html(self, driver, tabs, overlay, captured):
        """Test an HTML 200 from the vision endpoint becomes failed tool results."""
        async def bad_gateway(request):
            return web.Response(text="<html>bad gateway page</html>", content_type="text/html")

        app = web.Application()
        app.router.add_post("/chat/completions", bad_gateway)
        server = test_utils.TestServer(app)
        await server.start_server()
        config = ModelConfig(role="vision", name="isaac-0.1", base_url=str(server.make_url("/")), api_key="test")
        vision = VisionClient(config, stream=False)
        try:
            perception = PerceptionAdapter(driver, tabs, overlay, vision, overlay_hide_delay=0)
            executor = ActionExecutor(driver, tabs, overlay, navigation_delay=0)
            dispatcher = ToolDispatcher(perception, executor, overlay, tabs, stream_vision=False)

            analyzed = await dispatcher.dispatch(1, "analyze_page", {"prompt": "List buttons"}, captured)
            found = await dispatcher.dispatch(1, "find_element", {"target": "Search"}, captured)
        finally:
            await vision.cleanup()
            await server.close()

        assert analyzed.content == "Failed to analyze page: Invalid JSON response"
        assert not analyzed.success
        assert found.content == "Failed to find element: Invalid JSON response"
        assert captured.has_snapshot()

    @pytest.mark.asyncio
    async def test_analyze_decode_error(self, dispatcher, captured, vision):
        """Test a decode error raised by the vision client becomes a tool result."""
        vision.analyze.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")

        result = await dispatcher.dispatch(1, "analyze_page", {}, captured)

        assert result.content == "Failed to analyze page: Expecting value: line 1 column 1 (char 0)"
        assert not result.success

    @pytest.mark.asyncio
    async def test_a11y_tree(self, dispatcher, page, cache):
        """Test the accessibility tree does not need a screenshot."""
        page.session.responses["Accessibility.getFullAXTree"] = {
            "nodes": [{"nodeId": "1", "role": {"value": "button"}, "name": {"value": "OK"}}]
        }

        result = await dispatcher.dispatch(1, "get_a11y_tree", {}, cache)

        assert result.content == 'button "OK"'

    @pytest.mark.asyncio
    async def test_a11y_tree_internal_page(self, dispatcher, page, cache):
        """Test internal pages have no readable tree."""
        page.url = "about:blank"

        result = await dispatcher.dispatch(1, "get_a11y_tree", {}, cache)

        assert result.content == CANNOT_READ_TREE_RESULT


# =============================================================================
# find_element Tests
# =============================================================================

class TestFindElement:
    """Tests for find_element."""

    @pytest.mark.asyncio
    async def test_requires_screenshot(self, dispatcher, cache):
        """Test locating needs a cached screenshot."""
        result = await dispatcher.dispatch(1, "find_element", {"target": "Search"}, cache)

        assert result.content == NO_SCREENSHOT_MESSAGE

    @pytest.mark.asyncio
    async def test_requires_target(self, dispatcher, captured):
        """Test a target is required."""
        result = await dispatcher.dispatch(1, "find_element", {}, captured)

        assert result.content == "Error: find_element requires target parameter"

    @pytest.mark.asyncio
    async def test_pointing_status(self, dispatcher, captured):
        """Test the pointing status carries the point as viewport percentages."""
        on_status = AsyncMock()

        result = await dispatcher.dispatch(1, "find_element", {"query": "Search"}, captured, on_status)

        assert result.content == "Element found at coordinates: x=500, y=400"
        assert captured.last_found_element == "Search"
        pointing = on_status.await_args_list[-1]
        assert pointing.args == ("pointing", "Search")
        assert pointing.kwargs["point_x"] == 50.0
        assert pointing.kwargs["point_y"] == 50.0

    @pytest.mark.asyncio
    async def test_unparseable_point(self, dispatcher, captured, vision):
        """Test a vision reply without coordinates is reported."""
        vision.point.side_effect = LocateParseError("I cannot see it")

        result = await dispatcher.dispatch(1, "find_element", {"target": "Logout"}, captured)

        assert result.content == (
            "Failed to find element: Could not parse coordinates from vision model response: I cannot see it"
        )
        assert not result.success


# =============================================================================
# execute_action Tests
# =============================================================================

class TestExecuteAction:
    """Tests for execute_action."""

    @pytest.mark.asyncio
    async def test_click_uses_last_found_element(self, dispatcher, page, captured):
        """Test a click at found coordinates is described by the found target."""
        await dispatcher.dispatch(1, "find_element", {"target": "Search"}, captured)
        on_status = AsyncMock()

        result = await dispatcher.dispatch(
            1, "execute_action", {"action": "click", "x": 500, "y": 400}, captured, on_status
        )

        assert result.content == "Clicked on Search"
        assert result.action == {"action": "click", "target": "Search", "x": 500, "y": 400}
        assert not captured.has_snapshot()
        on_status.assert_awaited_once()
        assert on_status.await_args.args == ("executing", "Click: Search")
        pressed = page.session.params_for("Input.dispatchMouseEvent")[0]
        assert (pressed["x"], pressed["y"]) == (500, 400)

    @pytest.mark.asyncio
    async def test_unknown_action(self, dispatcher, cache):
        """Test terminal and unknown actions are not executable."""
        result = await dispatcher.dispatch(1, "execute_action", {"action": "done"}, cache)

        assert result.content.startswith('Error: Unknown action "done". Valid actions: click')
        assert result.action == {"action": "done"}
        assert not result.success

    @pytest.mark.asyncio
    async def test_internal_page_rejects_page_actions(self, dispatcher, page, cache):
        """Test click/type/press/scroll are refused on internal pages."""
        page.url = "chrome://newtab/"

        result = await dispatcher.dispatch(1, "execute_action", {"action": "type", "text": "hi"}, cache)

        assert result.content == (
            "Error: Cannot type on this page. Use execute_action with navigate to go to a website first."
        )
        assert page.session.sent == []

    @pytest.mark.asyncio
    async def test_navigate_from_internal_page(self, dispatcher, page, cache):
        """Test navigation is allowed anywhere."""
        page.url = "chrome://newtab/"

        result = await dispatcher.dispatch(
            1, "execute_action", {"action": "navigate", "url": "https://example.org"}, cache
        )

        assert result.content == "Navigated to https://example.org"
        assert page.url == "https://example.org"

    @pytest.mark.asyncio
    async def test_validation_error_result(self, dispatcher, cache):
        """Test executor rejections are returned as unsuccessful results."""
        result = await dispatcher.dispatch(1, "execute_action", {"action": "click"}, cache)

        assert result.content.startswith("Error: click requires x and y coordinates")
        assert not result.success

    @pytest.mark.asyncio
    async def test_driver_failure(self, dispatcher, page, cache):
        """Test a failing CDP command is reported with the action's verb."""
        page.session.responses["Input.dispatchKeyEvent"] = RuntimeError("boom")

        result = await dispatcher.dispatch(1, "execute_action", {"action": "press", "key": "Enter"}, cache)

        assert result.content.startswith("Failed to press key:")
        assert result.action == {"action": "press", "key": "Enter"}
        assert not result.success


# =============================================================================
# Terminal Tool Tests
# =============================================================================

class TestTerminalTools:
    """Tests for ask_user and complete."""

    @pytest.mark.asyncio
    async def test_ask_user(self, dispatcher, cache):
        """Test ask_user ends the run waiting for the user."""
        result = await dispatcher.dispatch(1, "ask_user", {"prompt": "Enter the 2FA code"}, cache)

        assert result.content == ASK_USER_ACK
        assert result.terminal == "waiting_for_user"
        assert result.action == {"action": "ask_user", "prompt": "Enter the 2FA code"}

    @pytest.mark.asyncio
    async def test_complete_default_result(self, dispatcher, cache):
        """Test complete without a summary uses a default."""
        result = await dispatcher.dispatch(1, "complete", {}, cache)

        assert result.content == DONE_ACK
        assert result.terminal == "completed"
        assert result.action == {"action": "done", "result": "Task complete."}

    @pytest.mark.asyncio
    async def test_second_tab(self, driver, tabs, overlay, vision, cache):
        """Test calls are routed to the requested tab."""
        other = FakePage(url="https://example.org/", context=FakeContext(ready_session()))
        tab_id = tabs.register(other)
        perception = PerceptionAdapter(driver, tabs, overlay, vision, overlay_hide_delay=0)
        dispatcher = ToolDispatcher(perception, ActionExecutor(driver, tabs, overlay, navigation_delay=0), overlay, tabs)

        await dispatcher.dispatch(tab_id, "capture_screenshot", {}, cache)

        assert "Page.captureScreenshot" in other.session.methods()
