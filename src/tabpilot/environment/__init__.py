"""Browser-side layer: CDP driver, key handling, overlay and tab bookkeeping."""

from .accessibility import format_accessibility_tree
from .actions import (
    Action,
    AskUserAction,
    ClickAction,
    DoneAction,
    NavigateAction,
    PressAction,
    ScrollAction,
    TypeAction,
    WaitAction,
    describe_action,
    parse_action,
)
from .box_parser import StreamingBoxParser, parse_boxes
from .cdp_driver import CDPDriver
from .geometry import BoundingBox, Viewport
from .keys import build_key_events, resolve_key_combo
from .overlay import OverlayChannel
from .tabs import TabRegistry
from .utils import is_internal_url, is_unsafe_url

__all__ = [
    "Action",
    "AskUserAction",
    "BoundingBox",
    "CDPDriver",
    "ClickAction",
    "DoneAction",
    "NavigateAction",
    "OverlayChannel",
    "PressAction",
    "ScrollAction",
    "StreamingBoxParser",
    "TabRegistry",
    "TypeAction",
    "Viewport",
    "WaitAction",
    "build_key_events",
    "describe_action",
    "format_accessibility_tree",
    "is_internal_url",
    "is_unsafe_url",
    "parse_action",
    "parse_boxes",
    "resolve_key_combo",
]
