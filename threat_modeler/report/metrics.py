"""Font metrics and greedy word wrapping."""

from reportlab.pdfbase import pdfmetrics

PT_TO_MM = 25.4 / 72

FONT_REGULAR = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_ITALIC = "Helvetica-Oblique"


class FontMetrics:
    """Text measurement using the standard PDF font widths shipped with reportlab."""

    def text_width(self, text: str, font: str, size: float) -> float:
        """Width of a string in millimetres at the given point size."""
        return pdfmetrics.stringWidth(text, font, size) * PT_TO_MM


def _split_long_word(word: str, max_width: float, font: str, size: float, metrics: FontMetrics) -> list[str]:
    """Break a word wider than a line into character runs, at least one char each."""
    pieces = []
    current = ""
    for char in word:
        candidate = current + char
        if current and metrics.text_width(candidate, font, size) > max_width:
            pieces.append(current)
            current = char
        else:
            current = candidate
    pieces.append(current)
    return pieces


def wrap_text(
    text: str,
    max_width: float,
    font: str,
    size: float,
    metrics: FontMetrics | None = None,
) -> list[str]:
    """Split text into lines no wider than max_width.

    Greedy: each line takes as many words as fit. Explicit newlines start new
    lines and blank lines are kept; runs of spaces collapse. Words wider than
    a whole line are split between characters. No hyphenation.

    Args:
        text: Text to wrap.
        max_width: Maximum line width in millimetres.
        font: Font name.
        size: Font size in points.
        metrics: Measurement source; standard font metrics by default.

    Returns:
        Lines in order; at least one (possibly empty) line.
    """
    metrics = metrics or FontMetrics()
    lines: list[str] = []

    for paragraph in text.replace("\r\n", "\n").split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue

        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if metrics.text_width(candidate, font, size) <= max_width:
                current = candidate
                continue

            if current:
                lines.append(current)

            if metrics.text_width(word, font, size) <= max_width:
                current = word
            else:
                pieces = _split_long_word(word, max_width, font, size, metrics)
                lines.extend(pieces[:-1])
                current = pieces[-1]

        lines.append(current)

    return lines
