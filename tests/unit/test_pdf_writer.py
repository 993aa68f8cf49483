"""Unit tests for PDF serialisation and report export."""

import io
import re
from datetime import date

import pytest
from PIL import Image

from threat_modeler.report import (
    LayoutError,
    Page,
    PageGeometry,
    export_report,
    render,
    report_filename,
    write_pdf,
)


def _page_count(pdf: bytes) -> int:
    return len(re.findall(rb"/Type /Page\b", pdf))


class TestReportFilename:
    """Tests for report_filename."""

    @pytest.mark.parametrize(
        "title,expected",
        [
            ("Payments API", "threat-model-report-payments_api.pdf"),
            ("v2.0/Beta", "threat-model-report-v2_0_beta.pdf"),
            ("Ação 2", "threat-model-report-a__o_2.pdf"),
            ("", "threat-model-report-analysis.pdf"),
            ("!!!", "threat-model-report-analysis.pdf"),
        ],
    )
    def test_filename(self, title, expected):
        assert report_filename(title) == expected


class TestWritePdf:
    """Tests for write_pdf."""

    def test_pdf_document(self, sample_record):
        pages = render(sample_record, generated_on=date(2024, 10, 16))
        pdf = write_pdf(pages, title=sample_record.title)

        assert pdf.startswith(b"%PDF")
        assert _page_count(pdf) == len(pages)

    def test_byte_identical_output(self, sample_record):
        pages = render(sample_record, generated_on=date(2024, 10, 16))
        assert write_pdf(pages) == write_pdf(pages)

    def test_embeds_image(self, sample_record):
        buffer = io.BytesIO()
        Image.new("RGB", (64, 32), (10, 20, 30)).save(buffer, format="PNG")
        record = sample_record.model_copy(update={"image_url": "file:///diagram.png"})
        pages = render(record, generated_on=date(2024, 10, 16), image_loader=lambda source: buffer.getvalue())

        pdf = write_pdf(pages)

        assert b"/Subtype /Image" in pdf

    def test_unknown_op(self):
        with pytest.raises(LayoutError):
            write_pdf([Page(number=1, ops=("not an op",))], PageGeometry())


class TestExportReport:
    def test_writes_named_file(self, sample_record, tmp_path):
        path = export_report(sample_record, tmp_path / "out", generated_on=date(2024, 10, 16))

        assert path.name == "threat-model-report-payments_api.pdf"
        assert path.read_bytes().startswith(b"%PDF")
