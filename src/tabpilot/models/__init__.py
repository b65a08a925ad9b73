"""Model configuration and clients for the vision and reasoning models."""

from .models import ModelConfig
from .reasoning import ActionDecision, ReasoningClient, parse_decision
from .response_models import HarmonizedResponse, ResponseMetadata, ToolCall, UsageInfo
from .tools import ACTION_DECISION_FORMAT, AUTOMATION_TOOLS
from .vision import VisionAnalysis, VisionClient

__all__ = [
    "ACTION_DECISION_FORMAT",
    "AUTOMATION_TOOLS",
    "ActionDecision",
    "HarmonizedResponse",
    "ModelConfig",
    "ReasoningClient",
    "ResponseMetadata",
    "ToolCall",
    "UsageInfo",
    "VisionAnalysis",
    "VisionClient",
    "parse_decision",
]
