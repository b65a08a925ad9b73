"""Status updates and the channels that display them."""

from .channels import CallbackChannel, ChannelAdapter, CLIChannel, QueueChannel
from .events import TERMINAL_STATUSES, StatusUpdate
from .manager import StatusManager

__all__ = [
    "CallbackChannel",
    "ChannelAdapter",
    "CLIChannel",
    "QueueChannel",
    "StatusManager",
    "StatusUpdate",
    "TERMINAL_STATUSES",
]
