"""
Configuration classes for automation sessions and status output.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Literal

from tabpilot.agents.exceptions import ConfigurationError


class VerbosityLevel(IntEnum):
    """Verbosity levels for status output."""
    QUIET = 0     # Terminal states only
    NORMAL = 1    # Actions and terminal states
    VERBOSE = 2   # Everything, including vision output and reasoning


@dataclass
class AutomationConfig:
    """Limits and pacing for the automation loop."""
    max_iterations: int = 50
    max_retries: int = 3           # attempts per failure streak
    retry_delay: float = 1.0       # seconds, fixed

    iteration_delay: float = 0.5   # between iterations
    action_delay: float = 0.3      # between chained actions
    navigation_delay: float = 2.0  # after a navigate action

    # "tools": the model calls AUTOMATION_TOOLS one at a time
    # "json": the model returns one action_decision object per iteration
    protocol: Literal["tools", "json"] = "tools"

    history_window: int = 10       # recent actions shown to the model
    max_chained_actions: int = 3
    stream_vision: bool = True

    keystroke_delay: float = 0.05
    ready_timeout: float = 5.0

    def __post_init__(self):
        if self.protocol not in ("tools", "json"):
            raise ConfigurationError(
                f"Unknown decision protocol '{self.protocol}'. Use 'tools' or 'json'.",
                config_field="protocol",
            )
        if self.max_iterations < 1:
            raise ConfigurationError("max_iterations must be at least 1", config_field="max_iterations")
        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be at least 1", config_field="max_retries")
        if not 1 <= self.max_chained_actions <= 3:
            raise ConfigurationError(
                "max_chained_actions must be between 1 and 3",
                config_field="max_chained_actions",
            )


@dataclass
class StatusConfig:
    """Configuration for status updates."""
    verbosity: VerbosityLevel = VerbosityLevel.NORMAL

    cli_output: bool = True
    cli_colors: bool = True
    show_reasoning: bool = True
    show_boxes: bool = False
    show_timings: bool = True

    @classmethod
    def from_verbosity(cls, level: int) -> "StatusConfig":
        """Create StatusConfig from verbosity level."""
        level = VerbosityLevel(level)
        return cls(
            verbosity=level,
            show_reasoning=level >= VerbosityLevel.NORMAL,
            show_boxes=level >= VerbosityLevel.VERBOSE,
        )
