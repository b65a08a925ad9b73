"""
Reasoning model client.

Supports both decision protocols: a strict JSON ``action_decision`` object
describing one to three chained actions, and OpenAI-style tool calling with
``AUTOMATION_TOOLS``.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tabpilot.agents.exceptions import ParseError
from tabpilot.environment.actions import Action
from tabpilot.models.models import ModelConfig
from tabpilot.models.response_models import HarmonizedResponse
from tabpilot.models.tools import ACTION_DECISION_FORMAT, AUTOMATION_TOOLS

logger = logging.getLogger(__name__)

MAX_CHAINED_ACTIONS = 3

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class ActionDecision(BaseModel):
    """One structured decision from the reasoning model."""

    model_config = ConfigDict(populate_by_name=True)

    reasoning: str = ""
    actions: List[Action] = Field(..., min_length=1)
    vision_focus: Optional[str] = Field(None, alias="visionFocus")
    question: Optional[str] = None
    confidence: Optional[float] = None


def parse_decision(content: str, max_actions: int = MAX_CHAINED_ACTIONS) -> ActionDecision:
    """
    Parse the reasoning model's JSON decision.

    A single ``action`` object is accepted in place of ``actions``. Decisions
    with more than ``max_actions`` actions are truncated.

    Raises:
        ParseError: If the content is not valid JSON or not a valid decision
    """
    if not content or not content.strip():
        raise ParseError("Empty response from reasoning model", raw_content=content)

    text = content.strip()
    fenced = _CODE_FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(
            f"Invalid JSON from reasoning model: {content[:500]}",
            raw_content=content,
        ) from e

    if not isinstance(data, dict):
        raise ParseError("Reasoning model decision must be a JSON object", raw_content=content)

    if not data.get("actions") and isinstance(data.get("action"), dict):
        data["actions"] = [data["action"]]

    actions = data.get("actions")
    if isinstance(actions, list) and len(actions) > max_actions:
        logger.warning(f"Decision proposed {len(actions)} actions, keeping the first {max_actions}")
        data["actions"] = actions[:max_actions]

    try:
        return ActionDecision.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Invalid decision from reasoning model: {e}", raw_content=content) from e


class ReasoningClient:
    """Async client for the reasoning model."""

    def __init__(self, config: ModelConfig, adapter=None):
        self.config = config
        self.adapter = adapter or config.create_adapter()

    def _params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {"temperature": self.config.temperature}
        if self.config.max_tokens:
            params["max_completion_tokens"] = self.config.max_tokens
        return params

    async def decide(
        self, messages: List[Dict[str, Any]], max_actions: int = MAX_CHAINED_ACTIONS
    ) -> Tuple[ActionDecision, str]:
        """
        Request a structured decision.

        Returns:
            The parsed decision and the raw assistant content, which the
            caller appends to the conversation
        """
        response = await self.adapter.arun(
            messages, response_format=ACTION_DECISION_FORMAT, **self._params()
        )
        content = response.content or ""
        logger.debug(f"Reasoning response: {content[:500]}")
        return parse_decision(content, max_actions=max_actions), content

    async def call_tools(
        self, messages: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]] = None
    ) -> HarmonizedResponse:
        """Request a tool-calling completion."""
        response = await self.adapter.arun(
            messages,
            tools=tools or AUTOMATION_TOOLS,
            tool_choice="auto",
            **self._params(),
        )
        logger.debug(
            f"Reasoning response: {len(response.tool_calls)} tool call(s), "
            f"content={(response.content or '')[:200]!r}"
        )
        return response

    async def cleanup(self):
        await self.adapter.cleanup()
