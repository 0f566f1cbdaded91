"""Tests for PDF merge and raster transcode."""

import io

import pytest
from PIL import Image
from pypdf import PdfReader

from docforge_backend.assembly import (
    SourceDocument,
    merge_documents,
    parse_raster_target,
    transcode_raster,
)
from docforge_backend.errors import ValidationError
from docforge_backend.store import ContentKind

from .conftest import make_pdf, make_png


def pdf_doc(name, widths):
    return SourceDocument(filename=name, content_type="application/pdf", data=make_pdf(widths))


def page_widths(data: bytes):
    return [float(page.mediabox.width) for page in PdfReader(io.BytesIO(data)).pages]


# =============================================================================
# Merge
# =============================================================================


class TestMergeDocuments:
    def test_pages_follow_input_order(self):
        doc1 = pdf_doc("one.pdf", [101, 102, 103])
        doc2 = pdf_doc("two.pdf", [201, 202])

        result = merge_documents([doc1, doc2])

        assert result.page_count == 5
        assert page_widths(result.data) == [101, 102, 103, 201, 202]

    def test_page_count_is_sum_of_inputs(self):
        docs = [pdf_doc(f"d{i}.pdf", [100 + i] * (i + 1)) for i in range(4)]
        result = merge_documents(docs)
        assert result.page_count == 1 + 2 + 3 + 4
        assert len(PdfReader(io.BytesIO(result.data)).pages) == result.page_count

    def test_duplicates_are_kept(self):
        doc = pdf_doc("same.pdf", [150, 160])
        result = merge_documents([doc, doc])
        assert page_widths(result.data) == [150, 160, 150, 160]

    def test_requires_two_inputs(self):
        with pytest.raises(ValidationError, match="At least 2"):
            merge_documents([pdf_doc("only.pdf", [100])])
        with pytest.raises(ValidationError):
            merge_documents([])

    def test_rejects_too_many_inputs(self):
        docs = [pdf_doc(f"{i}.pdf", [100]) for i in range(11)]
        with pytest.raises(ValidationError, match="At most"):
            merge_documents(docs)

    def test_rejects_wrong_content_type(self):
        good = pdf_doc("good.pdf", [100])
        disguised = SourceDocument("img.pdf", "image/png", make_pdf([100]))
        with pytest.raises(ValidationError, match="must be PDFs"):
            merge_documents([good, disguised])

    def test_rejects_non_pdf_bytes(self):
        good = pdf_doc("good.pdf", [100])
        fake = SourceDocument("fake.pdf", "application/pdf", b"not a pdf at all")
        with pytest.raises(ValidationError):
            merge_documents([good, fake])

    def test_rejects_truncated_pdf(self):
        good = pdf_doc("good.pdf", [100])
        broken = SourceDocument("broken.pdf", "application/pdf", b"%PDF-1.7\n%garbage")
        with pytest.raises(ValidationError):
            merge_documents([good, broken])

    def test_content_type_parameters_are_ignored(self):
        doc1 = SourceDocument("a.pdf", "Application/PDF; charset=binary", make_pdf([100]))
        doc2 = pdf_doc("b.pdf", [200])
        assert merge_documents([doc1, doc2]).page_count == 2


# =============================================================================
# Transcode
# =============================================================================


class TestTranscodeRaster:
    def test_png_to_webp(self):
        out = transcode_raster(make_png(), "image/png", "webp", 90)
        img = Image.open(io.BytesIO(out))
        assert img.format == "WEBP"
        assert img.size == (16, 12)

    def test_png_to_jpeg_flattens_alpha(self):
        out = transcode_raster(make_png(), "image/png", "jpeg")
        img = Image.open(io.BytesIO(out))
        assert img.format == "JPEG"
        assert img.mode == "RGB"

    def test_jpeg_to_png_is_lossless_encode(self):
        jpeg = transcode_raster(make_png(mode="RGB", color=(10, 20, 30)), "image/png", "jpg")
        out = transcode_raster(jpeg, "image/jpeg", ContentKind.PNG)
        png = Image.open(io.BytesIO(out))
        assert png.format == "PNG"
        assert png.convert("RGB").tobytes() == Image.open(io.BytesIO(jpeg)).convert("RGB").tobytes()

    def test_palette_image_to_webp(self):
        buf = io.BytesIO()
        Image.new("P", (8, 8), 3).save(buf, format="PNG")
        out = transcode_raster(buf.getvalue(), "image/png", "webp")
        assert Image.open(io.BytesIO(out)).format == "WEBP"

    @pytest.mark.parametrize("target", ["gif", "bmp", "", None, "pdf"])
    def test_rejects_unsupported_target(self, target):
        with pytest.raises(ValidationError, match="Invalid target format"):
            transcode_raster(make_png(), "image/png", target)

    def test_rejects_non_image_source_kind(self):
        with pytest.raises(ValidationError):
            transcode_raster(make_png(), "application/pdf", "webp")

    def test_rejects_undecodable_bytes(self):
        with pytest.raises(ValidationError, match="Unreadable image"):
            transcode_raster(b"definitely not an image", "image/png", "webp")

    def test_rejects_out_of_range_quality(self):
        with pytest.raises(ValidationError):
            transcode_raster(make_png(), "image/png", "webp", 0)


def test_parse_raster_target_aliases():
    assert parse_raster_target("JPEG") is ContentKind.JPG
    assert parse_raster_target(" webp ") is ContentKind.WEBP
    with pytest.raises(ValidationError):
        parse_raster_target("tiff")
