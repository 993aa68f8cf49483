"""Threat model report layout and PDF export."""

from .blocks import (
    CATEGORY_STYLES,
    CategoryStyle,
    ThreatBlock,
    ThreatPresentation,
    layout_threat,
    measure_threat,
    threat_presentation,
)
from .document import read_local_image, render
from .layout import LayoutContext, LayoutError, PageGeometry
from .metrics import FontMetrics, wrap_text
from .ops import ImageOp, LineOp, Page, RectOp, TextOp
from .pdf_writer import export_report, report_filename, write_pdf

__all__ = [
    "CATEGORY_STYLES",
    "CategoryStyle",
    "FontMetrics",
    "ImageOp",
    "LayoutContext",
    "LayoutError",
    "LineOp",
    "Page",
    "PageGeometry",
    "RectOp",
    "TextOp",
    "ThreatBlock",
    "ThreatPresentation",
    "export_report",
    "layout_threat",
    "measure_threat",
    "read_local_image",
    "render",
    "report_filename",
    "threat_presentation",
    "wrap_text",
    "write_pdf",
]
