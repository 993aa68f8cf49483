"""Threat blocks: presentation rules, measurement and drawing.

A block is measured in full before its border is drawn. Blocks taller than
the printable area are split into bordered segments, one per page.
"""

from dataclasses import dataclass

from threat_modeler.models import StrideCategory, Threat, ThreatStatus

from .layout import LayoutContext, PageGeometry
from .metrics import FONT_BOLD, FONT_ITALIC, FONT_REGULAR
from .ops import BLACK, Color, RectOp, TextOp

# Block dimensions in millimetres, font sizes in points
BLOCK_PADDING = 5.0
BLOCK_SPACING = 10.0
BLOCK_RADIUS = 3.0
SECTION_GAP = 3.0
CATEGORY_GAP = 1.0
BADGE_HEIGHT = 6.0
BADGE_PADDING_X = 2.0
BADGE_GAP = 3.0

TITLE_SIZE = 14
CATEGORY_SIZE = 10
BODY_SIZE = 10
FOOTER_SIZE = 9
BADGE_SIZE = 9

BORDER_COLOR: Color = (203, 213, 225)
MUTED_COLOR: Color = (100, 116, 139)
WHITE: Color = (255, 255, 255)


@dataclass(frozen=True)
class CategoryStyle:
    label: str
    color: Color


CATEGORY_STYLES: dict[StrideCategory, CategoryStyle] = {
    StrideCategory.SPOOFING: CategoryStyle("Spoofing", (220, 38, 38)),
    StrideCategory.TAMPERING: CategoryStyle("Tampering", (234, 88, 12)),
    StrideCategory.REPUDIATION: CategoryStyle("Repudiation", (202, 138, 4)),
    StrideCategory.INFORMATION_DISCLOSURE: CategoryStyle("Information Disclosure", (37, 99, 235)),
    StrideCategory.DENIAL_OF_SERVICE: CategoryStyle("Denial of Service", (147, 51, 234)),
    StrideCategory.ELEVATION_OF_PRIVILEGE: CategoryStyle("Elevation of Privilege", (190, 24, 93)),
    StrideCategory.UNKNOWN: CategoryStyle("Uncategorized", (100, 116, 139)),
}


@dataclass(frozen=True)
class ThreatPresentation:
    """How a review status is shown on a threat block."""

    badge: str | None
    badge_color: Color | None
    fill: Color | None
    footer: str
    footer_role: str

    @property
    def shows_review_actions(self) -> bool:
        return self.footer_role == "review-actions"


def threat_presentation(status: ThreatStatus) -> ThreatPresentation:
    """Presentation for a review status.

    Decided threats carry a badge; pending ones carry the review actions.

    Raises:
        ValueError: For a status with no presentation.
    """
    status = ThreatStatus(status)
    if status == ThreatStatus.PENDING:
        return ThreatPresentation(
            badge=None,
            badge_color=None,
            fill=None,
            footer="Review pending: accept or reject this threat.",
            footer_role="review-actions",
        )
    if status == ThreatStatus.ACCEPTED:
        return ThreatPresentation(
            badge="Accepted",
            badge_color=(22, 163, 74),
            fill=(240, 253, 244),
            footer="Status: Accepted",
            footer_role="status",
        )
    if status == ThreatStatus.REJECTED:
        return ThreatPresentation(
            badge="Rejected",
            badge_color=(220, 38, 38),
            fill=(254, 242, 242),
            footer="Status: Rejected",
            footer_role="status",
        )
    raise ValueError(f"No presentation for threat status {status!r}")


@dataclass(frozen=True)
class BlockLine:
    """One wrapped line inside a threat block."""

    text: str
    font: str
    size: float
    color: Color = BLACK
    role: str = "body"
    gap_before: float = 0.0

    def height(self, geometry: PageGeometry) -> float:
        return self.gap_before + geometry.line_height(self.size)


@dataclass(frozen=True)
class ThreatBlock:
    """A measured threat block, ready to draw."""

    threat: Threat
    presentation: ThreatPresentation
    style: CategoryStyle
    lines: tuple[BlockLine, ...]
    height: float
    badge_width: float


def _lines_height(lines, geometry: PageGeometry) -> float:
    return sum(line.height(geometry) for line in lines)


def _section(ctx: LayoutContext, label: str, text: str, width: float) -> list[BlockLine]:
    lines = [BlockLine(label, FONT_BOLD, BODY_SIZE, role="section-label", gap_before=SECTION_GAP)]
    body = text.strip() or "Not provided."
    lines.extend(BlockLine(line, FONT_REGULAR, BODY_SIZE) for line in ctx.wrap(body, FONT_REGULAR, BODY_SIZE, width))
    return lines


def measure_threat(ctx: LayoutContext, threat: Threat) -> ThreatBlock:
    """Wrap a threat's text and compute its full block height."""
    geometry = ctx.geometry
    presentation = threat_presentation(threat.status)
    style = CATEGORY_STYLES[threat.stride_category]
    inner_width = geometry.content_width - 2 * BLOCK_PADDING

    badge_width = 0.0
    title_width = inner_width
    if presentation.badge:
        badge_width = ctx.metrics.text_width(presentation.badge, FONT_BOLD, BADGE_SIZE) + 2 * BADGE_PADDING_X
        title_width = max(inner_width - badge_width - BADGE_GAP, inner_width / 2)

    lines = [
        BlockLine(line, FONT_BOLD, TITLE_SIZE, role="threat-title")
        for line in ctx.wrap(threat.threat_name, FONT_BOLD, TITLE_SIZE, title_width)
    ]
    lines.append(
        BlockLine(
            f"Category: {style.label}",
            FONT_BOLD,
            CATEGORY_SIZE,
            color=style.color,
            role="category",
            gap_before=CATEGORY_GAP,
        )
    )
    lines.extend(_section(ctx, "Description:", threat.description, inner_width))
    lines.extend(_section(ctx, "Mitigation:", threat.mitigation, inner_width))
    lines.append(
        BlockLine(
            presentation.footer,
            FONT_ITALIC,
            FOOTER_SIZE,
            color=MUTED_COLOR,
            role=presentation.footer_role,
            gap_before=SECTION_GAP,
        )
    )

    return ThreatBlock(
        threat=threat,
        presentation=presentation,
        style=style,
        lines=tuple(lines),
        height=2 * BLOCK_PADDING + _lines_height(lines, geometry),
        badge_width=badge_width,
    )


def _draw_badge(ctx: LayoutContext, block: ThreatBlock, top: float) -> None:
    geometry = ctx.geometry
    presentation = block.presentation
    x = geometry.margin_left + geometry.content_width - BLOCK_PADDING - block.badge_width
    y = top + BLOCK_PADDING / 2
    ctx.draw(
        RectOp(
            x=x,
            y=y,
            width=block.badge_width,
            height=BADGE_HEIGHT,
            radius=BADGE_HEIGHT / 2,
            stroke=presentation.badge_color,
            fill=presentation.badge_color,
            role="badge",
        )
    )
    ctx.draw(
        TextOp(
            x=x + BADGE_PADDING_X,
            y=y + BADGE_HEIGHT * 0.7,
            text=presentation.badge,
            font=FONT_BOLD,
            size=BADGE_SIZE,
            color=WHITE,
            role="badge",
        )
    )


def _draw_segment(
    ctx: LayoutContext,
    block: ThreatBlock,
    lines: list[BlockLine],
    height: float,
    with_badge: bool,
) -> None:
    geometry = ctx.geometry
    top = ctx.cursor_y

    ctx.draw(
        RectOp(
            x=geometry.margin_left,
            y=top,
            width=geometry.content_width,
            height=height,
            radius=BLOCK_RADIUS,
            stroke=BORDER_COLOR,
            fill=block.presentation.fill,
            role="border",
        )
    )
    if with_badge and block.presentation.badge:
        _draw_badge(ctx, block, top)

    ctx.cursor_y = top + BLOCK_PADDING
    for line in lines:
        ctx.cursor_y += line.gap_before
        ctx.draw_line_of_text(
            line.text,
            line.font,
            line.size,
            color=line.color,
            role=line.role,
            left=geometry.margin_left + BLOCK_PADDING,
            width=geometry.content_width - 2 * BLOCK_PADDING,
        )
    ctx.cursor_y = top + height


def layout_threat(ctx: LayoutContext, threat: Threat) -> ThreatBlock:
    """Measure a threat block, break the page if needed, then draw it.

    Returns:
        The measured block.
    """
    block = measure_threat(ctx, threat)
    geometry = ctx.geometry

    if block.height <= geometry.printable_height:
        ctx.ensure_space(block.height)
        _draw_segment(ctx, block, list(block.lines), block.height, with_badge=True)
        ctx.advance(BLOCK_SPACING)
        return block

    # Taller than a page: fill each page with as many lines as fit
    pending = list(block.lines)
    first = True
    while pending:
        if not ctx.fits(2 * BLOCK_PADDING + pending[0].height(geometry)):
            ctx.new_page()

        available = ctx.remaining - 2 * BLOCK_PADDING
        segment: list[BlockLine] = []
        used = 0.0
        while pending and used + pending[0].height(geometry) <= available:
            line = pending.pop(0)
            segment.append(line)
            used += line.height(geometry)
        if not segment:
            line = pending.pop(0)
            segment.append(line)
            used += line.height(geometry)

        _draw_segment(ctx, block, segment, 2 * BLOCK_PADDING + used, with_badge=first)
        first = False
        if pending:
            ctx.new_page()

    ctx.advance(BLOCK_SPACING)
    return block
