"""Page geometry and the cursor-tracking layout context.

The context is a small builder used inside a single render call: it holds
the pages laid out so far and the vertical cursor on the current page, and
decides page breaks from measured heights before anything is drawn.
"""

from dataclasses import dataclass

from .metrics import FONT_REGULAR, FontMetrics, wrap_text
from .ops import BLACK, Color, DrawOp, Page, TextOp

# Baseline sits this far down a line box, as a fraction of the line height
BASELINE_RATIO = 0.8


class LayoutError(Exception):
    """Error laying out a document."""

    pass


@dataclass(frozen=True)
class PageGeometry:
    """Page size and margins in millimetres.

    Line height for a font size in points is ``size / line_height_divisor``.
    Defaults are A4 portrait with 20 mm margins.
    """

    width: float = 210.0
    height: float = 297.0
    margin_top: float = 20.0
    margin_bottom: float = 20.0
    margin_left: float = 20.0
    margin_right: float = 20.0
    line_height_divisor: float = 2.8

    def __post_init__(self):
        if self.line_height_divisor <= 0:
            raise LayoutError("line_height_divisor must be positive")
        if self.content_width <= 0 or self.printable_height <= 0:
            raise LayoutError(
                f"Margins leave no printable area on a {self.width}x{self.height} page"
            )

    @property
    def content_width(self) -> float:
        return self.width - self.margin_left - self.margin_right

    @property
    def content_bottom(self) -> float:
        """Lowest y any content may reach."""
        return self.height - self.margin_bottom

    @property
    def printable_height(self) -> float:
        return self.content_bottom - self.margin_top

    def line_height(self, font_size: float) -> float:
        return font_size / self.line_height_divisor


class LayoutContext:
    """Pages under construction and the cursor on the last one."""

    def __init__(self, geometry: PageGeometry, metrics: FontMetrics | None = None):
        self.geometry = geometry
        self.metrics = metrics or FontMetrics()
        self._pages: list[list[DrawOp]] = []
        self.cursor_y = geometry.margin_top
        self.new_page()

    @property
    def page_count(self) -> int:
        return len(self._pages)

    @property
    def remaining(self) -> float:
        """Vertical space left on the current page."""
        return self.geometry.content_bottom - self.cursor_y

    @property
    def at_page_top(self) -> bool:
        return self.cursor_y <= self.geometry.margin_top

    def new_page(self) -> None:
        self._pages.append([])
        self.cursor_y = self.geometry.margin_top

    def fits(self, height: float) -> bool:
        return self.cursor_y + height <= self.geometry.content_bottom

    def ensure_space(self, height: float) -> bool:
        """Break to a new page unless ``height`` fits below the cursor.

        A fresh page is never broken again, so a block taller than the
        printable area is left for the caller to split.

        Returns:
            True if a page break was emitted.
        """
        if self.fits(height) or self.at_page_top:
            return False
        self.new_page()
        return True

    def advance(self, dy: float) -> None:
        """Move the cursor down, never past the bottom margin."""
        self.cursor_y = min(self.cursor_y + dy, self.geometry.content_bottom)

    def draw(self, op: DrawOp) -> None:
        self._pages[-1].append(op)

    # =========================================================================
    # Text
    # =========================================================================

    def wrap(self, text: str, font: str, size: float, width: float | None = None) -> list[str]:
        return wrap_text(text, width or self.geometry.content_width, font, size, self.metrics)

    def text_height(self, line_count: int, size: float) -> float:
        return line_count * self.geometry.line_height(size)

    def text_x(self, text: str, font: str, size: float, align: str, left: float, width: float) -> float:
        if align == "left":
            return left
        text_width = self.metrics.text_width(text, font, size)
        if align == "center":
            return left + (width - text_width) / 2
        if align == "right":
            return left + width - text_width
        raise LayoutError(f"Unknown alignment: {align}")

    def draw_line_of_text(
        self,
        text: str,
        font: str,
        size: float,
        *,
        color: Color = BLACK,
        role: str = "body",
        align: str = "left",
        left: float | None = None,
        width: float | None = None,
    ) -> None:
        """Draw one already-wrapped line at the cursor and move past it."""
        left = self.geometry.margin_left if left is None else left
        width = self.geometry.content_width if width is None else width
        line_height = self.geometry.line_height(size)
        self.draw(
            TextOp(
                x=self.text_x(text, font, size, align, left, width),
                y=self.cursor_y + line_height * BASELINE_RATIO,
                text=text,
                font=font,
                size=size,
                color=color,
                role=role,
            )
        )
        self.cursor_y += line_height

    def write_paragraph(
        self,
        text: str,
        font: str = FONT_REGULAR,
        size: float = 12,
        *,
        color: Color = BLACK,
        role: str = "body",
        align: str = "left",
    ) -> int:
        """Wrap and draw a paragraph across the content width.

        The whole paragraph moves to a new page when it does not fit below the
        cursor. Paragraphs taller than a page flow line by line instead.

        Returns:
            Number of lines drawn.
        """
        lines = self.wrap(text, font, size)
        line_height = self.geometry.line_height(size)
        height = self.text_height(len(lines), size)

        if height <= self.geometry.printable_height:
            self.ensure_space(height)

        for line in lines:
            self.ensure_space(line_height)
            self.draw_line_of_text(line, font, size, color=color, role=role, align=align)

        return len(lines)

    # =========================================================================
    # Output
    # =========================================================================

    def finish(self) -> list[Page]:
        return [Page(number=index + 1, ops=tuple(ops)) for index, ops in enumerate(self._pages)]
