"""
Tests for the tabpilot.models.adapters package and response models.

This module tests:
- Request payload construction
- Response harmonization, including tool calls
- Streaming delta extraction
- API error classification
- Non-JSON bodies on a 200 response
"""

import asyncio
import time

import pytest
from aiohttp import test_utils, web

from tabpilot.agents.exceptions import ApiError, ParseError
from tabpilot.models.adapters import OpenAICompatibleAdapter, chat_message, image_part, text_part
from tabpilot.models.response_models import ToolCall


@pytest.fixture
def adapter():
    return OpenAICompatibleAdapter(
        model_name="gpt-4o-mini",
        base_url="https://api.openai.com/v1/",
        api_key="sk-test",
        provider="openai",
    )


# =============================================================================
# Message Helper Tests
# =============================================================================

class TestMessageHelpers:
    """Tests for message part helpers."""

    def test_image_part(self):
        """Test screenshots are sent as JPEG data URLs."""
        assert image_part("abc") == {
            "type": "image_url",
            "image_url": {"url": "data:image/jpeg;base64,abc"},
        }

    def test_chat_message(self):
        """Test user is the default role."""
        assert chat_message([text_part("hi")]) == {"role": "user", "content": [{"type": "text", "text": "hi"}]}
        assert chat_message("rules", "system")["role"] == "system"


# =============================================================================
# Payload Tests
# =============================================================================

class TestPayload:
    """Tests for request payloads."""

    def test_endpoint_strips_trailing_slash(self, adapter):
        """Test the endpoint URL is built from the base URL."""
        assert adapter.get_endpoint_url() == "https://api.openai.com/v1/chat/completions"

    def test_passthrough_params(self, adapter):
        """Test only known, non-null parameters are sent."""
        payload = adapter.format_request_payload(
            [chat_message("hi")], temperature=0.2, tool_choice="auto", max_tokens=None, foo="bar"
        )

        assert payload == {
            "model": "gpt-4o-mini",
            "messages": [{"role": "user", "content": "hi"}],
            "temperature": 0.2,
            "tool_choice": "auto",
        }

    def test_default_params(self):
        """Test default parameters are merged under call parameters."""
        adapter = OpenAICompatibleAdapter(
            model_name="m", base_url="http://x", default_params={"temperature": 0.5, "max_tokens": 10}
        )

        payload = adapter.format_request_payload([], temperature=0.0)

        assert payload["temperature"] == 0.0
        assert payload["max_tokens"] == 10
        assert "Authorization" not in adapter.get_headers()


# =============================================================================
# Response Tests
# =============================================================================

class TestHarmonizeResponse:
    """Tests for response harmonization."""

    def test_content_response(self, adapter):
        """Test a plain content response."""
        raw = {
            "id": "chatcmpl-1",
            "model": "gpt-4o-mini",
            "choices": [{"message": {"role": "assistant", "content": "Hello"}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 5, "completion_tokens": 2},
        }

        response = adapter.harmonize_response(raw, time.time())

        assert response.content == "Hello"
        assert not response.has_tool_calls()
        assert response.metadata.usage.total_tokens == 7
        assert response.metadata.finish_reason == "stop"

    def test_tool_call_response(self, adapter):
        """Test tool calls are parsed and rendered back for the history."""
        raw = {
            "choices": [{
                "message": {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [{
                        "id": "call_1",
                        "type": "function",
                        "function": {"name": "find_element", "arguments": '{"target": "Search"}'},
                    }],
                },
            }],
        }

        response = adapter.harmonize_response(raw, time.time())

        assert response.tool_calls[0].name == "find_element"
        assert response.tool_calls[0].parse_arguments() == {"target": "Search"}
        assert response.to_message_dict() == {
            "role": "assistant",
            "content": None,
            "tool_calls": [{
                "id": "call_1",
                "type": "function",
                "function": {"name": "find_element", "arguments": '{"target": "Search"}'},
            }],
        }

    def test_stream_delta(self, adapter):
        """Test text is collected from every choice delta."""
        event = {"choices": [{"delta": {"content": "<point_"}}, {"delta": {}}]}

        assert adapter.extract_stream_delta(event) == "<point_"
        assert adapter.extract_stream_delta({"choices": []}) == ""


# =============================================================================
# ToolCall Tests
# =============================================================================

class TestToolCall:
    """Tests for ToolCall argument decoding."""

    def test_missing_arguments(self):
        """Test absent arguments decode to an empty dict."""
        call = ToolCall(id="1", function={"name": "capture_screenshot"})

        assert call.parse_arguments() == {}

    def test_invalid_json(self):
        """Test invalid JSON raises ParseError naming the tool."""
        call = ToolCall(id="1", function={"name": "find_element", "arguments": "{target:"})

        with pytest.raises(ParseError) as exc_info:
            call.parse_arguments()

        assert exc_info.value.message.startswith("Invalid arguments for tool find_element")

    def test_non_object(self):
        """Test arguments must decode to an object."""
        call = ToolCall(id="1", function={"name": "complete", "arguments": "[1, 2]"})

        with pytest.raises(ParseError):
            call.parse_arguments()

    def test_requires_name(self):
        """Test a function without a name is rejected."""
        with pytest.raises(ValueError):
            ToolCall(id="1", function={"arguments": "{}"})


# =============================================================================
# Error Classification Tests
# =============================================================================

class TestApiErrors:
    """Tests for API error handling."""

    def test_server_error_is_retriable(self, adapter):
        """Test 5xx responses are retriable."""
        with pytest.raises(ApiError) as exc_info:
            adapter.handle_api_error(status=503, body={"error": {"message": "overloaded"}})

        error = exc_info.value
        assert error.is_retriable
        assert error.status == 503
        assert error.message == "overloaded"
        assert error.classification == "service_unavailable"

    def test_client_errors_are_not_retriable(self, adapter):
        """Test 4xx responses are classified and not retriable."""
        cases = {401: "authentication_failed", 404: "invalid_model", 429: "rate_limit", 400: "invalid_request"}
        for status, classification in cases.items():
            with pytest.raises(ApiError) as exc_info:
                adapter.handle_api_error(status=status, body="bad")

            assert exc_info.value.classification == classification
            assert not exc_info.value.is_retriable

    def test_insufficient_quota(self, adapter):
        """Test quota exhaustion is told apart from rate limiting."""
        with pytest.raises(ApiError) as exc_info:
            adapter.handle_api_error(status=429, body={"error": {"message": "quota", "type": "insufficient_quota"}})

        assert exc_info.value.classification == "insufficient_credits"

    def test_network_error(self, adapter):
        """Test transport failures are network errors without a status."""
        with pytest.raises(ApiError) as exc_info:
            adapter.handle_api_error(error=asyncio.TimeoutError())

        assert exc_info.value.status is None
        assert exc_info.value.classification == "network_error"
        assert not exc_info.value.is_retriable


# =============================================================================
# Transport Tests
# =============================================================================

class TestTransport:
    """Tests for requests against a local server."""

    @staticmethod
    async def serve(body: str, content_type: str):
        async def handler(request):
            return web.Response(text=body, content_type=content_type)

        app = web.Application()
        app.router.add_post("/chat/completions", handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        return server

    @pytest.mark.asyncio
    async def test_html_body_is_api_error(self):
        """Test a 200 HTML page from a proxy raises ApiError instead of a decode error."""
        server = await self.serve("<html>bad gateway page</html>", "text/html")
        adapter = OpenAICompatibleAdapter(model_name="m", base_url=str(server.make_url("/")))
        try:
            with pytest.raises(ApiError) as exc_info:
                await adapter.arun([chat_message("hi")])
        finally:
            await adapter.cleanup()
            await server.close()

        assert exc_info.value.status == 200
        assert exc_info.value.message == "Invalid JSON response"
        assert not exc_info.value.is_retriable

    @pytest.mark.asyncio
    async def test_non_object_body_is_api_error(self):
        """Test a JSON body that is not an object is rejected."""
        server = await self.serve("[1, 2]", "application/json")
        adapter = OpenAICompatibleAdapter(model_name="m", base_url=str(server.make_url("/")))
        try:
            with pytest.raises(ApiError):
                await adapter.arun([chat_message("hi")])
        finally:
            await adapter.cleanup()
            await server.close()

    @pytest.mark.asyncio
    async def test_json_body(self):
        """Test a regular completion is harmonized."""
        body = '{"choices": [{"message": {"role": "assistant", "content": "(10, 20)"}}]}'
        server = await self.serve(body, "application/json")
        adapter = OpenAICompatibleAdapter(model_name="m", base_url=str(server.make_url("/")))
        try:
            response = await adapter.arun([chat_message("hi")])
        finally:
            await adapter.cleanup()
            await server.close()

        assert response.content == "(10, 20)"
