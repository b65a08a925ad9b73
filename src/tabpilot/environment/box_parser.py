"""
Parsing of the vision model's tagged output.

Boxes are reported inline as::

    <point_box mention="Search">(120,40)(480,90)</point_box>

and may be grouped::

    <collection mention="Cart"> <point_box>(10,10)(50,50)</point_box> </collection>

A box without its own ``mention`` takes the label of the nearest enclosing
labeled collection. Incomplete tags never match, so the same parser works on
a partial streamed response and simply picks them up once they close.
"""

import re
from typing import List, Optional, Tuple

from tabpilot.environment.geometry import BoundingBox

_TOKEN_RE = re.compile(
    r'<collection(?:\s+mention="(?P<collection>[^"]*)")?\s*>'
    r"|(?P<close></collection\s*>)"
    r'|<point_box(?:\s+mention="(?P<mention>[^"]*)")?>'
    r"\s*\(\s*(?P<x1>\d+)\s*,\s*(?P<y1>\d+)\s*\)"
    r"\s*\(\s*(?P<x2>\d+)\s*,\s*(?P<y2>\d+)\s*\)"
    r"\s*</point_box>"
)

_POINT_RE = re.compile(r"(\d+)\s*,\s*(\d+)")


def parse_boxes(text: str) -> List[BoundingBox]:
    """Parse every complete ``point_box`` in ``text``, in order of appearance."""
    boxes: List[BoundingBox] = []
    collections: List[Optional[str]] = []

    for match in _TOKEN_RE.finditer(text):
        if match.group("close") is not None:
            if collections:
                collections.pop()
        elif match.group("x1") is not None:
            label = match.group("mention") or next(
                (name for name in reversed(collections) if name), None
            )
            boxes.append(
                BoundingBox(
                    x1=int(match.group("x1")),
                    y1=int(match.group("y1")),
                    x2=int(match.group("x2")),
                    y2=int(match.group("y2")),
                    label=label,
                )
            )
        else:
            collections.append(match.group("collection") or None)

    return boxes


def parse_point(text: str) -> Optional[Tuple[int, int]]:
    """Return the first ``x,y`` integer pair in ``text``, or None."""
    match = _POINT_RE.search(text or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


class StreamingBoxParser:
    """
    Incremental box parser for streamed vision responses.

    Each :meth:`feed` re-scans the accumulated text and returns only the boxes
    completed since the previous call. After the stream ends, :attr:`boxes`
    equals ``parse_boxes(text)`` for the full text.
    """

    def __init__(self):
        self._text = ""
        self._emitted = 0
        self.boxes: List[BoundingBox] = []

    @property
    def text(self) -> str:
        return self._text

    def feed(self, delta: str) -> List[BoundingBox]:
        if not delta:
            return []
        self._text += delta
        # Every tag ends with ">", so nothing new can complete without one.
        if ">" not in delta:
            return []

        self.boxes = parse_boxes(self._text)
        new_boxes = self.boxes[self._emitted:]
        self._emitted = len(self.boxes)
        return new_boxes
