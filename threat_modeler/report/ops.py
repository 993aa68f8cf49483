"""Positioned draw operations produced by the layout engine.

Coordinates are millimetres from the top-left corner of the page. Text y is
the baseline; rectangle and image y is the top edge.
"""

from dataclasses import dataclass

Color = tuple[int, int, int]

BLACK: Color = (0, 0, 0)


@dataclass(frozen=True)
class TextOp:
    """A single line of text."""

    x: float
    y: float
    text: str
    font: str
    size: float
    color: Color = BLACK
    role: str = "body"


@dataclass(frozen=True)
class LineOp:
    """A straight rule."""

    x1: float
    y1: float
    x2: float
    y2: float
    color: Color = BLACK
    width: float = 0.3
    role: str = "rule"


@dataclass(frozen=True)
class RectOp:
    """A rounded rectangle, stroked and optionally filled."""

    x: float
    y: float
    width: float
    height: float
    radius: float = 0.0
    stroke: Color = BLACK
    fill: Color | None = None
    role: str = "border"

    @property
    def bottom(self) -> float:
        return self.y + self.height


@dataclass(frozen=True)
class ImageOp:
    """An embedded raster image scaled to the given box."""

    x: float
    y: float
    width: float
    height: float
    data: bytes
    role: str = "image"

    @property
    def bottom(self) -> float:
        return self.y + self.height


DrawOp = TextOp | LineOp | RectOp | ImageOp


@dataclass(frozen=True)
class Page:
    """One rendered page: its 1-based number and draw operations in order."""

    number: int
    ops: tuple[DrawOp, ...]

    def texts(self, role: str | None = None) -> list[str]:
        """Text of every text op, optionally filtered by role."""
        return [op.text for op in self.ops if isinstance(op, TextOp) and (role is None or op.role == role)]

    def with_role(self, role: str) -> list[DrawOp]:
        return [op for op in self.ops if op.role == role]
