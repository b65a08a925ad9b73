"""
Shared fakes for the tabpilot test suite.

Playwright pages and CDP sessions are replaced by small in-memory fakes that
record every command and overlay message they receive.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from tabpilot.environment.cdp_driver import CDPDriver
from tabpilot.environment.overlay import OverlayChannel
from tabpilot.environment.tabs import TabRegistry
from tabpilot.models.response_models import HarmonizedResponse, ResponseMetadata, ToolCall


class FakeCDPSession:
    """Records ``send`` calls; replies come from ``responses`` keyed by CDP method."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses: Dict[str, Any] = responses or {}
        self.sent: List[Tuple[str, Dict[str, Any]]] = []
        self.detached = False

    async def send(self, method: str, params: Optional[Dict[str, Any]] = None):
        self.sent.append((method, params or {}))
        response = self.responses.get(method)
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(params or {})
        return response

    async def detach(self):
        self.detached = True

    def methods(self) -> List[str]:
        return [method for method, _ in self.sent]

    def params_for(self, method: str) -> List[Dict[str, Any]]:
        return [params for sent_method, params in self.sent if sent_method == method]


class FakeContext:
    def __init__(self, session: Optional[FakeCDPSession] = None, fail: Optional[Exception] = None):
        self.session = session or FakeCDPSession()
        self.fail = fail
        self.new_session_calls = 0
        self.pages: List["FakePage"] = []
        self.handlers: Dict[str, List[Callable]] = {}

    async def new_cdp_session(self, page):
        self.new_session_calls += 1
        if self.fail is not None:
            raise self.fail
        return self.session

    def on(self, event: str, handler: Callable) -> None:
        self.handlers.setdefault(event, []).append(handler)


class FakePage:
    """
    Minimal stand-in for ``playwright.async_api.Page``.

    Overlay messages passed to ``evaluate`` are recorded in ``overlay_messages``;
    ``GET_VIEWPORT`` answers with ``viewport_reply``.
    """

    def __init__(
        self,
        url: str = "https://example.com/",
        context: Optional[FakeContext] = None,
        viewport_reply: Optional[Dict[str, int]] = None,
        viewport_size: Optional[Dict[str, int]] = None,
        opener: Optional["FakePage"] = None,
    ):
        self.url = url
        self.context = context or FakeContext()
        self.viewport_reply = viewport_reply if viewport_reply is not None else {"width": 1000, "height": 800}
        self.viewport_size = viewport_size
        self._opener = opener
        self.overlay_messages: List[Dict[str, Any]] = []
        self.evaluate_error: Optional[Exception] = None
        self.goto_calls: List[Tuple[str, Dict[str, Any]]] = []
        self.goto_error: Optional[Exception] = None
        self.handlers: Dict[str, List[Callable]] = {}

    @property
    def session(self) -> FakeCDPSession:
        return self.context.session

    async def evaluate(self, script: str, arg: Any = None):
        if self.evaluate_error is not None:
            raise self.evaluate_error
        self.overlay_messages.append(arg)
        if isinstance(arg, dict) and arg.get("type") == "GET_VIEWPORT":
            return self.viewport_reply
        return True

    async def goto(self, url: str, **kwargs):
        self.goto_calls.append((url, kwargs))
        if self.goto_error is not None:
            raise self.goto_error
        self.url = url

    async def opener(self):
        return self._opener

    def on(self, event: str, handler: Callable) -> None:
        self.handlers.setdefault(event, []).append(handler)

    async def close(self):
        for handler in self.handlers.get("close", []):
            await handler(self)

    def overlay_types(self) -> List[str]:
        return [message.get("type") for message in self.overlay_messages if isinstance(message, dict)]


def ready_session(**responses) -> FakeCDPSession:
    """A session whose page reports ``document.readyState == "complete"``."""
    defaults = {
        "Runtime.evaluate": {"result": {"type": "string", "value": "complete"}},
        "Page.captureScreenshot": {"data": "c2NyZWVu"},
    }
    defaults.update(responses)
    return FakeCDPSession(defaults)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def page():
    """A regular web page backed by a ready CDP session."""
    return FakePage(context=FakeContext(ready_session()))


@pytest.fixture
def tabs(page):
    """A tab registry with ``page`` registered as tab 1."""
    registry = TabRegistry()
    registry.register(page)
    return registry


@pytest.fixture
def driver(tabs):
    return CDPDriver(
        tabs,
        keystroke_delay=0,
        ready_timeout=0.5,
        ready_poll_interval=0,
        ready_settle_delay=0,
        platform="linux",
    )


@pytest.fixture
def overlay(tabs):
    return OverlayChannel(tabs)


class FakeModelAdapter:
    """
    Stand-in for ``OpenAICompatibleAdapter``.

    ``arun`` returns ``responses`` in order (exceptions are raised);
    ``astream`` yields ``deltas``.
    """

    def __init__(self, responses: Optional[List[Any]] = None, deltas: Optional[List[str]] = None):
        self.responses = list(responses or [])
        self.deltas = list(deltas or [])
        self.calls: List[Tuple[List[Dict[str, Any]], Dict[str, Any]]] = []
        self.cleaned_up = False

    async def arun(self, messages, **kwargs):
        self.calls.append((messages, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def astream(self, messages, **kwargs):
        self.calls.append((messages, kwargs))
        for delta in self.deltas:
            yield delta

    async def cleanup(self):
        self.cleaned_up = True


def make_response(content: Optional[str] = None, tool_calls: Optional[List[Dict[str, Any]]] = None):
    """Build a HarmonizedResponse; ``tool_calls`` are ``{"id", "name", "arguments"}`` dicts."""
    calls = [
        ToolCall(id=call["id"], function={"name": call["name"], "arguments": call.get("arguments", "{}")})
        for call in tool_calls or []
    ]
    return HarmonizedResponse(
        content=content,
        tool_calls=calls,
        metadata=ResponseMetadata(provider="test", model="test-model"),
    )
