"""
tabpilot - browser automation orchestrator

Drives one browser tab at a time toward a natural-language goal by
alternating between perceiving the page with a vision model and deciding the
next action with a reasoning model, then executing that action through the
Chrome DevTools Protocol.
"""

__version__ = "0.1.0"

# Session layer (imports the exception hierarchy first)
from .agents import (
    SessionOrchestrator,
    SessionStatus,
    TabPilotError,
    init_logging,
)

# Model configuration
from .models import ModelConfig, ReasoningClient, VisionClient

# Coordination
from .coordination import AutomationConfig, StatusConfig, StatusManager

# Browser
from .environment.browser import BrowserEnvironment

__all__ = [
    "AutomationConfig",
    "BrowserEnvironment",
    "ModelConfig",
    "ReasoningClient",
    "SessionOrchestrator",
    "SessionStatus",
    "StatusConfig",
    "StatusManager",
    "TabPilotError",
    "VisionClient",
    "init_logging",
    "__version__",
]
