"""Report assembly: the section sequence of a threat model document.

Section order is fixed: title page, system architecture, data flow, threats.
Each section starts on a new page and every page gets a "Page n of N" footer.
Rendering is a pure function of its inputs.
"""

import io
from datetime import date
from pathlib import Path
from typing import Callable
from urllib.parse import unquote, urlparse

import structlog
from PIL import Image

from threat_modeler.models import AnalysisRecord, ThreatStatus

from .blocks import MUTED_COLOR, layout_threat
from .layout import LayoutContext, PageGeometry
from .metrics import FONT_BOLD, FONT_ITALIC, FONT_REGULAR, FontMetrics
from .ops import ImageOp, LineOp, Page, TextOp

logger = structlog.get_logger(__name__)

ImageLoader = Callable[[str], bytes]

DEFAULT_TITLE = "AI Threat Modeling Report"
NO_THREATS_NOTE = "No threats were identified for this system."

TITLE_SIZE = 24
SUBTITLE_SIZE = 12
HEADING_SIZE = 18
SUBHEADING_SIZE = 16
BODY_SIZE = 12
DFD_SIZE = 11
PAGE_FOOTER_SIZE = 9

HEADING_GAP = 5.0
PARAGRAPH_GAP = 10.0
RULE_COLOR = (203, 213, 225)


def read_local_image(source: str) -> bytes:
    """Image loader for file:// URIs and plain paths.

    Raises:
        ValueError: For remote URLs.
        OSError: If the file cannot be read.
    """
    parsed = urlparse(source)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path)).read_bytes()
    if not parsed.scheme or len(parsed.scheme) == 1:
        return Path(source).read_bytes()
    raise ValueError(f"Unsupported image location: {source}")


def image_size(data: bytes) -> tuple[int, int]:
    """Pixel size of an encoded image, decoding it fully.

    Raises:
        PIL.UnidentifiedImageError, OSError: If the data is not a readable image.
    """
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return img.size


def scaled_image_box(
    pixel_width: int,
    pixel_height: int,
    geometry: PageGeometry,
    max_height: float | None = None,
) -> tuple[float, float]:
    """Scale an image to the content width, capped to max_height (default: the printable height)."""
    if max_height is None:
        max_height = geometry.printable_height
    width = geometry.content_width
    height = width * pixel_height / pixel_width
    if height > max_height:
        height = max_height
        width = height * pixel_width / pixel_height
    return width, height


# =============================================================================
# Sections
# =============================================================================


def _heading(ctx: LayoutContext, text: str, size: float = HEADING_SIZE) -> None:
    ctx.write_paragraph(text, FONT_BOLD, size, role="heading")
    ctx.advance(HEADING_GAP)


def _title_page(ctx: LayoutContext, record: AnalysisRecord, generated_on: date) -> None:
    ctx.write_paragraph(record.title.strip() or DEFAULT_TITLE, FONT_BOLD, TITLE_SIZE, role="title", align="center")
    ctx.advance(HEADING_GAP)
    ctx.write_paragraph(
        f"Report generated: {generated_on.isoformat()}",
        FONT_REGULAR,
        SUBTITLE_SIZE,
        color=MUTED_COLOR,
        role="subtitle",
        align="center",
    )
    ctx.advance(PARAGRAPH_GAP)

    geometry = ctx.geometry
    ctx.draw(
        LineOp(
            x1=geometry.margin_left,
            y1=ctx.cursor_y,
            x2=geometry.margin_left + geometry.content_width,
            y2=ctx.cursor_y,
            color=RULE_COLOR,
        )
    )
    ctx.advance(PARAGRAPH_GAP)

    _heading(ctx, "Analysis Inputs", SUBHEADING_SIZE)
    counts = record.threat_counts()
    for line in (
        f"Application type: {record.app_type.value}",
        f"Data classification: {record.data_classification.value}",
        f"Analysis created: {record.created_at.date().isoformat()}",
        (
            f"Threats identified: {len(record.threats)} "
            f"({counts[ThreatStatus.ACCEPTED]} accepted, "
            f"{counts[ThreatStatus.REJECTED]} rejected, "
            f"{counts[ThreatStatus.PENDING]} pending)"
        ),
    ):
        ctx.write_paragraph(line, FONT_REGULAR, BODY_SIZE)


def _image_block(ctx: LayoutContext, record: AnalysisRecord, image_loader: ImageLoader | None) -> None:
    source = record.image_url or record.image_ref
    if not source or image_loader is None:
        return

    try:
        data = image_loader(source)
        pixel_width, pixel_height = image_size(data)
    except Exception as e:
        logger.warning("report_image_skipped", source=source, error_class=type(e).__name__, error=str(e))
        return

    geometry = ctx.geometry
    label_height = geometry.line_height(BODY_SIZE)
    # Leave room for the label so both always fit on one page
    width, height = scaled_image_box(
        pixel_width, pixel_height, geometry, max_height=geometry.printable_height - label_height
    )

    ctx.ensure_space(label_height + height)
    ctx.write_paragraph("Provided diagram:", FONT_BOLD, BODY_SIZE)

    ctx.draw(
        ImageOp(
            x=geometry.margin_left + (geometry.content_width - width) / 2,
            y=ctx.cursor_y,
            width=width,
            height=height,
            data=data,
        )
    )
    ctx.advance(height)
    ctx.advance(PARAGRAPH_GAP)


def _architecture_section(ctx: LayoutContext, record: AnalysisRecord, image_loader: ImageLoader | None) -> None:
    ctx.new_page()
    _heading(ctx, "System Architecture")
    ctx.write_paragraph(f"User-provided description: {record.description.strip() or 'N/A'}", FONT_REGULAR, BODY_SIZE)
    ctx.advance(PARAGRAPH_GAP)

    _image_block(ctx, record, image_loader)

    ctx.write_paragraph(
        f"AI-generated description: {record.ai_description.strip() or 'N/A'}", FONT_REGULAR, BODY_SIZE
    )


def _dfd_section(ctx: LayoutContext, record: AnalysisRecord) -> None:
    ctx.new_page()
    _heading(ctx, "Data Flow Diagram (DFD) Details")
    ctx.write_paragraph(record.dfd_description.strip() or "N/A", FONT_REGULAR, DFD_SIZE)


def _threats_section(ctx: LayoutContext, record: AnalysisRecord) -> None:
    ctx.new_page()
    _heading(ctx, "Threat Analysis Results")

    if not record.threats:
        ctx.write_paragraph(NO_THREATS_NOTE, FONT_ITALIC, BODY_SIZE, color=MUTED_COLOR, role="note")
        return

    for threat in record.threats:
        layout_threat(ctx, threat)


def _page_footers(pages: list[Page], geometry: PageGeometry, metrics: FontMetrics) -> list[Page]:
    total = len(pages)
    y = geometry.height - geometry.margin_bottom / 2
    stamped = []
    for page in pages:
        text = f"Page {page.number} of {total}"
        width = metrics.text_width(text, FONT_REGULAR, PAGE_FOOTER_SIZE)
        footer = TextOp(
            x=geometry.margin_left + (geometry.content_width - width) / 2,
            y=y,
            text=text,
            font=FONT_REGULAR,
            size=PAGE_FOOTER_SIZE,
            color=MUTED_COLOR,
            role="footer",
        )
        stamped.append(Page(number=page.number, ops=page.ops + (footer,)))
    return stamped


def render(
    record: AnalysisRecord,
    geometry: PageGeometry | None = None,
    *,
    generated_on: date | None = None,
    image_loader: ImageLoader | None = None,
    metrics: FontMetrics | None = None,
) -> list[Page]:
    """Lay out a threat model report.

    Args:
        record: The analysis to render.
        geometry: Page size and margins; A4 portrait by default.
        generated_on: Date printed on the title page; defaults to the
            record's creation date so output never depends on the clock.
        image_loader: Fetches the diagram by URL or key. Without one the
            diagram is omitted.
        metrics: Text measurement source.

    Returns:
        Pages in order, each carrying positioned draw operations.
    """
    geometry = geometry or PageGeometry()
    metrics = metrics or FontMetrics()
    generated_on = generated_on or record.created_at.date()

    ctx = LayoutContext(geometry, metrics)
    _title_page(ctx, record, generated_on)
    _architecture_section(ctx, record, image_loader)
    _dfd_section(ctx, record)
    _threats_section(ctx, record)

    pages = _page_footers(ctx.finish(), geometry, metrics)
    logger.debug("report_rendered", record_id=record.id, pages=len(pages), threats=len(record.threats))
    return pages
