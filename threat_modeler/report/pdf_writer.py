"""Serialise laid-out pages to PDF with reportlab."""

import io
import re
from datetime import date
from pathlib import Path

import structlog
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from threat_modeler.models import AnalysisRecord

from .document import ImageLoader, render
from .layout import LayoutError, PageGeometry
from .ops import Color, DrawOp, ImageOp, LineOp, Page, RectOp, TextOp

logger = structlog.get_logger(__name__)

FILENAME_PREFIX = "threat-model-report-"
FILENAME_FALLBACK = "analysis"


def report_filename(title: str) -> str:
    """File name for an exported report.

    Each character outside [a-z0-9] becomes an underscore after lowercasing;
    titles with no such characters at all fall back to a fixed name.
    """
    slug = re.sub(r"[^a-z0-9]", "_", title.lower())
    if not re.search(r"[a-z0-9]", slug):
        slug = FILENAME_FALLBACK
    return f"{FILENAME_PREFIX}{slug}.pdf"


def _rgb(color: Color) -> tuple[float, float, float]:
    return tuple(channel / 255 for channel in color)


def _draw_op(pdf: canvas.Canvas, op: DrawOp, page_height: float) -> None:
    # Layout coordinates grow downward from the top edge; PDF's grow upward
    if isinstance(op, TextOp):
        pdf.setFillColorRGB(*_rgb(op.color))
        pdf.setFont(op.font, op.size)
        pdf.drawString(op.x * mm, (page_height - op.y) * mm, op.text)

    elif isinstance(op, RectOp):
        pdf.setStrokeColorRGB(*_rgb(op.stroke))
        if op.fill is not None:
            pdf.setFillColorRGB(*_rgb(op.fill))
        pdf.roundRect(
            op.x * mm,
            (page_height - op.bottom) * mm,
            op.width * mm,
            op.height * mm,
            op.radius * mm,
            stroke=1,
            fill=1 if op.fill is not None else 0,
        )

    elif isinstance(op, LineOp):
        pdf.setStrokeColorRGB(*_rgb(op.color))
        pdf.setLineWidth(op.width * mm)
        pdf.line(op.x1 * mm, (page_height - op.y1) * mm, op.x2 * mm, (page_height - op.y2) * mm)

    elif isinstance(op, ImageOp):
        pdf.drawImage(
            ImageReader(io.BytesIO(op.data)),
            op.x * mm,
            (page_height - op.bottom) * mm,
            width=op.width * mm,
            height=op.height * mm,
        )

    else:
        raise LayoutError(f"Unsupported draw operation: {type(op).__name__}")


def write_pdf(pages: list[Page], geometry: PageGeometry | None = None, title: str = "") -> bytes:
    """Write pages to a PDF document.

    Invariant mode pins timestamps and document ids, so the same pages always
    produce the same bytes.

    Raises:
        LayoutError: If a draw operation cannot be written.
    """
    geometry = geometry or PageGeometry()
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=(geometry.width * mm, geometry.height * mm), invariant=1)
    if title:
        pdf.setTitle(title)

    try:
        for page in pages:
            for op in page.ops:
                _draw_op(pdf, op, geometry.height)
            pdf.showPage()
        pdf.save()
    except LayoutError:
        raise
    except Exception as e:
        logger.error("pdf_write_failed", error_class=type(e).__name__, error=str(e))
        raise LayoutError(f"Failed to write PDF: {e}") from e

    return buffer.getvalue()


def export_report(
    record: AnalysisRecord,
    output_dir: str | Path,
    *,
    generated_on: date | None = None,
    image_loader: ImageLoader | None = None,
    geometry: PageGeometry | None = None,
) -> Path:
    """Render a record and write it as a PDF file in output_dir.

    Returns:
        Path of the written file.
    """
    geometry = geometry or PageGeometry()
    pages = render(record, geometry, generated_on=generated_on, image_loader=image_loader)
    content = write_pdf(pages, geometry, title=record.title)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / report_filename(record.title)
    path.write_bytes(content)

    logger.info("report_exported", record_id=record.id, path=str(path), pages=len(pages), bytes=len(content))
    return path
