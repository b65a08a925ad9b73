"""
Tests for the tabpilot.models.reasoning module.

This module tests:
- Decision parsing, including the single-action form and truncation
- Rejection of malformed decisions
- Request parameters for both decision protocols
"""

import json

import pytest

from conftest import FakeModelAdapter, make_response
from tabpilot.agents.exceptions import ParseError
from tabpilot.environment.actions import ClickAction, NavigateAction, TypeAction
from tabpilot.models.models import ModelConfig
from tabpilot.models.reasoning import ReasoningClient, parse_decision
from tabpilot.models.tools import ACTION_DECISION_FORMAT, AUTOMATION_TOOLS, TOOL_NAMES


@pytest.fixture
def config():
    return ModelConfig(role="reasoning", name="gpt-4o-mini", provider="openai", api_key="sk", temperature=0.1)


def decision_json(**overrides):
    data = {
        "reasoning": "Search for the product",
        "actions": [
            {"action": "click", "target": "Search box", "text": None, "key": None, "prompt": None,
             "direction": None, "duration": None, "url": None, "result": None},
            {"action": "type", "target": None, "text": "running shoes", "key": None, "prompt": None,
             "direction": None, "duration": None, "url": None, "result": None},
        ],
        "visionFocus": "search results",
        "question": None,
        "confidence": 0.8,
    }
    data.update(overrides)
    return json.dumps(data)


# =============================================================================
# parse_decision Tests
# =============================================================================

class TestParseDecision:
    """Tests for parse_decision."""

    def test_full_decision(self):
        """Test a schema-conformant decision parses into typed actions."""
        decision = parse_decision(decision_json())

        assert decision.reasoning == "Search for the product"
        assert isinstance(decision.actions[0], ClickAction)
        assert isinstance(decision.actions[1], TypeAction)
        assert decision.actions[1].text == "running shoes"
        assert decision.vision_focus == "search results"
        assert decision.confidence == 0.8

    def test_single_action(self):
        """Test a lone 'action' object is accepted."""
        decision = parse_decision('{"reasoning": "go", "action": {"action": "navigate", "url": "https://example.com"}}')

        assert len(decision.actions) == 1
        assert isinstance(decision.actions[0], NavigateAction)

    def test_truncates_to_max_actions(self):
        """Test extra chained actions are dropped."""
        actions = [{"action": "scroll", "direction": "down"}] * 5

        decision = parse_decision(json.dumps({"reasoning": "", "actions": actions}), max_actions=3)

        assert len(decision.actions) == 3

    def test_code_fence(self):
        """Test a fenced JSON block is unwrapped."""
        content = '```json\n{"actions": [{"action": "done", "result": "ok"}]}\n```'

        assert parse_decision(content).actions[0].result == "ok"

    def test_invalid_json(self):
        """Test non-JSON content raises ParseError."""
        with pytest.raises(ParseError) as exc_info:
            parse_decision("I will click the button.")

        assert exc_info.value.raw_content == "I will click the button."

    def test_empty(self):
        """Test empty content raises ParseError."""
        with pytest.raises(ParseError):
            parse_decision("   ")

    def test_not_an_object(self):
        """Test a JSON array is rejected."""
        with pytest.raises(ParseError):
            parse_decision("[]")

    def test_no_actions(self):
        """Test at least one action is required."""
        with pytest.raises(ParseError):
            parse_decision('{"reasoning": "nothing to do", "actions": []}')

    def test_unknown_action(self):
        """Test unknown action names are rejected."""
        with pytest.raises(ParseError):
            parse_decision('{"actions": [{"action": "hover"}]}')


# =============================================================================
# ReasoningClient Tests
# =============================================================================

class TestReasoningClient:
    """Tests for ReasoningClient."""

    @pytest.mark.asyncio
    async def test_decide(self, config):
        """Test structured decisions use the strict response format."""
        content = decision_json()
        adapter = FakeModelAdapter(responses=[make_response(content)])
        client = ReasoningClient(config, adapter=adapter)

        decision, raw = await client.decide([{"role": "user", "content": "Goal: buy shoes"}])

        assert raw == content
        assert len(decision.actions) == 2
        _, params = adapter.calls[0]
        assert params["response_format"] == ACTION_DECISION_FORMAT
        assert params["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_call_tools(self, config):
        """Test tool calling offers every automation tool."""
        response = make_response(tool_calls=[{"id": "c1", "name": "capture_screenshot"}])
        adapter = FakeModelAdapter(responses=[response])
        client = ReasoningClient(config, adapter=adapter)

        result = await client.call_tools([{"role": "user", "content": "hi"}])

        assert result.has_tool_calls()
        _, params = adapter.calls[0]
        assert params["tools"] == AUTOMATION_TOOLS
        assert params["tool_choice"] == "auto"
        assert [tool["function"]["name"] for tool in AUTOMATION_TOOLS] == list(TOOL_NAMES)
