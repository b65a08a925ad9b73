"""
Coordinate types shared by perception and execution.

The vision model reports positions in a normalized 0-1000 space that is
independent of the browser window. Values are converted to CSS pixels only
at the point of use, with the viewport captured alongside the screenshot.
"""

from typing import Optional, Tuple

from pydantic import BaseModel, Field

NORMALIZED_SCALE = 1000


class Viewport(BaseModel):
    """CSS pixel dimensions of the visible page area."""

    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


def to_pixels(x: float, y: float, viewport: Viewport) -> Tuple[float, float]:
    """Convert a normalized point to (unrounded) pixel coordinates."""
    return (
        x / NORMALIZED_SCALE * viewport.width,
        y / NORMALIZED_SCALE * viewport.height,
    )


def to_normalized(x: float, y: float, viewport: Viewport) -> Tuple[int, int]:
    """Inverse of :func:`to_pixels`, rounded to the nearest normalized unit."""
    return (
        round(x / viewport.width * NORMALIZED_SCALE),
        round(y / viewport.height * NORMALIZED_SCALE),
    )


def point_to_pixels(x: int, y: int, viewport: Viewport) -> Tuple[int, int]:
    """Convert a normalized point to the integer pixel position used for clicks."""
    px, py = to_pixels(x, y, viewport)
    return round(px), round(py)


class BoundingBox(BaseModel):
    """A labeled rectangle in normalized 0-1000 coordinates."""

    x1: int
    y1: int
    x2: int
    y2: int
    label: Optional[str] = None

    def to_pixels(self, viewport: Viewport) -> Tuple[float, float, float, float]:
        left, top = to_pixels(self.x1, self.y1, viewport)
        right, bottom = to_pixels(self.x2, self.y2, viewport)
        return left, top, right, bottom

    def center(self) -> Tuple[float, float]:
        return (self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2

    def to_dict(self) -> dict:
        return self.model_dump(exclude_none=True)
