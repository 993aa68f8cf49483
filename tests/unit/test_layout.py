"""Unit tests for the document layout engine."""

import io
from datetime import date

import pytest
from PIL import Image

from threat_modeler.models import StrideCategory, Threat, ThreatStatus
from threat_modeler.report import (
    CATEGORY_STYLES,
    FontMetrics,
    ImageOp,
    LayoutContext,
    LayoutError,
    PageGeometry,
    RectOp,
    TextOp,
    layout_threat,
    measure_threat,
    render,
    threat_presentation,
    wrap_text,
)

# Line height is size / 2, so every height below is an exact binary float
GEOMETRY = PageGeometry(line_height_divisor=2.0)


class MonoMetrics:
    """Every character is 2 mm wide, whatever the font."""

    def text_width(self, text, font, size):
        return len(text) * 2.0


def _png(width: int, height: int) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (200, 200, 200)).save(buffer, format="PNG")
    return buffer.getvalue()


def _content_ops_within_margins(pages, geometry):
    for page in pages:
        for op in page.ops:
            if op.role == "footer":
                continue
            if isinstance(op, TextOp):
                assert op.y <= geometry.content_bottom
            elif isinstance(op, (RectOp, ImageOp)):
                assert op.y >= geometry.margin_top
                assert op.bottom <= geometry.content_bottom


class TestWrapText:
    """Tests for greedy word wrapping."""

    def test_greedy_lines(self):
        assert wrap_text("aaa bbb ccc", 10, "Helvetica", 10, MonoMetrics()) == ["aaa", "bbb", "ccc"]
        assert wrap_text("aa bb cc", 10, "Helvetica", 10, MonoMetrics()) == ["aa bb", "cc"]

    def test_newlines_preserved(self):
        lines = wrap_text("line one\n\nline three", 100, "Helvetica", 10, MonoMetrics())
        assert lines == ["line one", "", "line three"]

    def test_long_word_split_by_characters(self):
        lines = wrap_text("abcdefghijkl", 10, "Helvetica", 10, MonoMetrics())
        assert lines == ["abcde", "fghij", "kl"]

    def test_empty_text(self):
        assert wrap_text("", 10, "Helvetica", 10, MonoMetrics()) == [""]

    def test_real_metrics_respect_width(self):
        metrics = FontMetrics()
        text = "Spoofing of the identity provider allows an attacker to mint tokens " * 5
        lines = wrap_text(text, 60, "Helvetica", 10, metrics)
        assert len(lines) > 1
        assert all(metrics.text_width(line, "Helvetica", 10) <= 60 for line in lines)
        assert " ".join(lines).split() == text.split()


class TestPresentation:
    """Closed mappings over status and category."""

    def test_every_status_has_presentation(self):
        for status in ThreatStatus:
            threat_presentation(status)

    def test_pending_shows_review_actions(self):
        presentation = threat_presentation(ThreatStatus.PENDING)
        assert presentation.badge is None
        assert presentation.shows_review_actions

    @pytest.mark.parametrize("status", [ThreatStatus.ACCEPTED, ThreatStatus.REJECTED])
    def test_decided_shows_badge(self, status):
        presentation = threat_presentation(status)
        assert presentation.badge == status.value
        assert not presentation.shows_review_actions

    def test_every_category_styled(self):
        assert set(CATEGORY_STYLES) == set(StrideCategory)


class TestPageGeometry:
    def test_a4_defaults(self):
        geometry = PageGeometry()
        assert geometry.content_width == 170
        assert geometry.content_bottom == 277
        assert geometry.line_height(14) == 5.0

    def test_margins_too_large(self):
        with pytest.raises(LayoutError):
            PageGeometry(margin_left=110, margin_right=110)


class TestThreatBlock:
    """Measurement, page breaks and splitting of threat blocks."""

    @pytest.fixture
    def ctx(self) -> LayoutContext:
        return LayoutContext(GEOMETRY, MonoMetrics())

    @pytest.fixture
    def threat(self) -> Threat:
        # 80 characters fit per line: 3 description lines, 2 mitigation lines
        return Threat(
            threat_id="t-1",
            threat_name="Short",
            stride_category=StrideCategory.TAMPERING,
            description="word " * 40,
            mitigation="fix " * 30,
        )

    def test_measured_height(self, ctx, threat):
        block = measure_threat(ctx, threat)
        # padding 10, title 7, category 6, labels 2 x 8, body 5 x 5, footer 7.5
        assert block.height == 71.5

    def test_exact_fit_stays_on_page(self, ctx, threat):
        block = measure_threat(ctx, threat)
        ctx.cursor_y = GEOMETRY.content_bottom - block.height

        layout_threat(ctx, threat)
        pages = ctx.finish()

        assert len(pages) == 1
        border = pages[0].with_role("border")[0]
        assert border.y == GEOMETRY.content_bottom - block.height
        assert border.bottom == GEOMETRY.content_bottom

    def test_text_filling_remaining_space_breaks_page(self, ctx, threat):
        block = measure_threat(ctx, threat)
        wrapped_text_height = sum(line.height(GEOMETRY) for line in block.lines if line.role == "body")
        ctx.cursor_y = GEOMETRY.content_bottom - wrapped_text_height

        layout_threat(ctx, threat)
        pages = ctx.finish()

        assert len(pages) == 2
        assert pages[0].with_role("border") == []
        border = pages[1].with_role("border")[0]
        assert border.y == GEOMETRY.margin_top
        assert border.height == block.height
        _content_ops_within_margins(pages, GEOMETRY)

    def test_border_drawn_before_text(self, ctx, threat):
        layout_threat(ctx, threat)
        ops = ctx.finish()[0].ops

        border_index = next(i for i, op in enumerate(ops) if op.role == "border")
        first_text_index = next(i for i, op in enumerate(ops) if isinstance(op, TextOp))
        assert border_index < first_text_index

    def test_text_inside_border(self, ctx, threat):
        layout_threat(ctx, threat)
        page = ctx.finish()[0]
        border = page.with_role("border")[0]

        for op in page.ops:
            if isinstance(op, TextOp):
                assert border.y < op.y <= border.bottom
                assert op.x >= border.x

    def test_oversized_block_split_into_segments(self, ctx):
        threat = Threat(
            threat_id="t-big",
            threat_name="Huge",
            description="word " * 2000,
            mitigation="fix",
            status=ThreatStatus.ACCEPTED,
        )

        layout_threat(ctx, threat)
        pages = ctx.finish()

        assert len(pages) > 1
        for page in pages:
            assert len(page.with_role("border")) == 1
        assert sum(len(page.with_role("badge")) for page in pages) == 2  # shape + label, first segment only
        _content_ops_within_margins(pages, GEOMETRY)

        body = [text for page in pages for text in page.texts("body")]
        assert " ".join(body).split() == ["word"] * 2000 + ["fix"]


class TestRender:
    """End-to-end layout of a record."""

    def test_section_pages(self, sample_record):
        pages = render(sample_record, generated_on=date(2024, 10, 16))

        assert len(pages) == 4
        assert pages[0].texts("title") == ["Payments API"]
        assert "Report generated: 2024-10-16" in pages[0].texts("subtitle")
        assert pages[1].texts("heading") == ["System Architecture"]
        assert pages[2].texts("heading") == ["Data Flow Diagram (DFD) Details"]
        assert pages[3].texts("heading") == ["Threat Analysis Results"]

    def test_threats_in_order_with_presentation(self, sample_record):
        pages = render(sample_record, generated_on=date(2024, 10, 16))
        threat_page = pages[3]

        assert threat_page.texts("threat-title") == ["Stolen session token", "Verbose error pages"]
        assert threat_page.texts("review-actions") == ["Review pending: accept or reject this threat."]
        assert threat_page.texts("badge") == ["Accepted"]
        assert threat_page.texts("status") == ["Status: Accepted"]

        borders = threat_page.with_role("border")
        badge = next(op for op in threat_page.with_role("badge") if isinstance(op, RectOp))
        assert borders[1].y < badge.y < borders[1].bottom

    def test_description_lines_kept(self, sample_record):
        body = render(sample_record, generated_on=date(2024, 10, 16))[1].texts("body")
        assert "Talks to the acquiring bank." in body
        assert "Stores tokens in Postgres." in body

    def test_page_footers(self, sample_record):
        pages = render(sample_record, generated_on=date(2024, 10, 16))
        assert [page.texts("footer") for page in pages] == [[f"Page {n} of 4"] for n in range(1, 5)]

    def test_deterministic(self, sample_record):
        first = render(sample_record, generated_on=date(2024, 10, 16))
        second = render(sample_record, generated_on=date(2024, 10, 16))
        assert first == second

    def test_default_date_from_record(self, sample_record):
        pages = render(sample_record)
        assert "Report generated: 2024-10-15" in pages[0].texts("subtitle")

    def test_no_threats_note(self, sample_record):
        pages = render(sample_record.model_copy(update={"threats": []}), generated_on=date(2024, 10, 16))
        assert pages[-1].texts("note") == ["No threats were identified for this system."]
        assert pages[-1].with_role("border") == []

    def test_long_dfd_flows_across_pages(self, sample_record):
        dfd = "\n".join(f"Flow {i}: service {i} -> datastore {i}" for i in range(300))
        record = sample_record.model_copy(update={"dfd_description": dfd})

        pages = render(record, GEOMETRY, generated_on=date(2024, 10, 16))

        assert len(pages) > 4
        flow_lines = [text for page in pages for text in page.texts("body") if text.startswith("Flow ")]
        assert flow_lines == dfd.split("\n")
        _content_ops_within_margins(pages, GEOMETRY)


class TestRenderImage:
    """Diagram embedding."""

    def test_image_scaled_to_content_width(self, sample_record):
        record = sample_record.model_copy(update={"image_url": "file:///diagram.png"})
        data = _png(400, 200)

        pages = render(record, generated_on=date(2024, 10, 16), image_loader=lambda source: data)

        images = [op for op in pages[1].ops if isinstance(op, ImageOp)]
        assert len(images) == 1
        assert images[0].width == 170
        assert images[0].height == 85
        assert images[0].data == data

    def test_tall_image_leaves_room_for_its_label(self, sample_record):
        record = sample_record.model_copy(update={"image_url": "file:///tall.png"})

        pages = render(record, GEOMETRY, generated_on=date(2024, 10, 16), image_loader=lambda source: _png(100, 1000))

        page = next(page for page in pages if any(isinstance(op, ImageOp) for op in page.ops))
        image = next(op for op in page.ops if isinstance(op, ImageOp))
        # 12 pt label line: 6 mm at divisor 2
        assert image.height == GEOMETRY.printable_height - 6.0
        assert image.width == pytest.approx(image.height / 10)
        assert "Provided diagram:" in page.texts()
        assert image.bottom == GEOMETRY.content_bottom
        _content_ops_within_margins(pages, GEOMETRY)

    def test_loader_failure_skips_image(self, sample_record):
        record = sample_record.model_copy(update={"image_url": "file:///missing.png"})

        def failing_loader(source):
            raise FileNotFoundError(source)

        pages = render(record, generated_on=date(2024, 10, 16), image_loader=failing_loader)

        assert not any(isinstance(op, ImageOp) for page in pages for op in page.ops)
        assert len(pages) == 4

    def test_undecodable_image_skipped(self, sample_record):
        record = sample_record.model_copy(update={"image_url": "file:///corrupt.png"})

        pages = render(record, generated_on=date(2024, 10, 16), image_loader=lambda source: b"not an image")

        assert not any(isinstance(op, ImageOp) for page in pages for op in page.ops)

    def test_no_loader_no_image(self, sample_record):
        record = sample_record.model_copy(update={"image_url": "file:///diagram.png"})
        pages = render(record, generated_on=date(2024, 10, 16))
        assert not any(isinstance(op, ImageOp) for page in pages for op in page.ops)
