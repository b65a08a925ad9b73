"""
Pydantic models for harmonized chat-completion responses.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from tabpilot.agents.exceptions import ParseError


class ToolCall(BaseModel):
    """Represents a tool/function call."""
    id: str
    type: str = "function"
    function: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("function")
    @classmethod
    def validate_function(cls, v):
        """Ensure function has required fields."""
        if "name" not in v:
            raise ValueError("Function must have 'name' field")
        if "arguments" not in v or v["arguments"] is None:
            v["arguments"] = "{}"
        return v

    @property
    def name(self) -> str:
        return self.function["name"]

    def parse_arguments(self) -> Dict[str, Any]:
        """
        Decode the call's arguments.

        Raises:
            ParseError: If the arguments are not a JSON object
        """
        arguments = self.function.get("arguments")
        if isinstance(arguments, dict):
            return arguments
        if not arguments or not str(arguments).strip():
            return {}
        try:
            decoded = json.loads(arguments)
        except json.JSONDecodeError as e:
            raise ParseError(
                f"Invalid arguments for tool {self.name}: {e}",
                raw_content=str(arguments),
            ) from e
        if not isinstance(decoded, dict):
            raise ParseError(
                f"Arguments for tool {self.name} must be a JSON object",
                raw_content=str(arguments),
            )
        return decoded

    def to_message_dict(self) -> Dict[str, Any]:
        arguments = self.function.get("arguments")
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": arguments},
        }


class UsageInfo(BaseModel):
    """Token usage information."""
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None

    @model_validator(mode="after")
    def calculate_total(self):
        """Calculate total tokens if not provided."""
        if self.total_tokens is None:
            self.total_tokens = (self.prompt_tokens or 0) + (self.completion_tokens or 0)
        return self


class ResponseMetadata(BaseModel):
    """Metadata about the API response."""
    model_config = ConfigDict(extra="allow")

    provider: str
    model: str
    request_id: Optional[str] = None
    created: Optional[int] = None
    usage: Optional[UsageInfo] = None
    finish_reason: Optional[str] = None
    response_time: Optional[float] = None
    streamed: bool = False


class HarmonizedResponse(BaseModel):
    """
    Standardized chat-completion response.
    Both the vision and the reasoning clients consume this shape.
    """
    model_config = ConfigDict(extra="allow")

    role: str = "assistant"
    content: Optional[str] = None
    tool_calls: List[ToolCall] = Field(default_factory=list)
    reasoning: Optional[str] = None
    metadata: ResponseMetadata

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        """Ensure role is valid."""
        valid_roles = ["assistant", "user", "system", "tool"]
        if v not in valid_roles:
            raise ValueError(f"Role must be one of {valid_roles}, got {v}")
        return v

    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    def to_message_dict(self) -> Dict[str, Any]:
        """Render as an assistant message for the next request's history."""
        message: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [tc.to_message_dict() for tc in self.tool_calls]
        return message
