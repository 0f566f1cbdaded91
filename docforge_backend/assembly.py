from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Sequence

from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError

from .config import LOSSY_QUALITY, MAX_MERGE_FILES
from .errors import ValidationError
from .store import ContentKind


logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
PDF_MAGIC = b"%PDF-"

# Accepted transcode targets; "jpeg" is an alias of "jpg".
RASTER_TARGETS = {
    "png": ContentKind.PNG,
    "jpg": ContentKind.JPG,
    "jpeg": ContentKind.JPG,
    "webp": ContentKind.WEBP,
}

_PIL_FORMATS = {
    ContentKind.PNG: "PNG",
    ContentKind.JPG: "JPEG",
    ContentKind.WEBP: "WEBP",
}


@dataclass(frozen=True)
class SourceDocument:
    filename: str
    content_type: str | None
    data: bytes


@dataclass(frozen=True)
class MergeResult:
    data: bytes
    page_count: int


def _media_type(content_type: str | None) -> str:
    return (content_type or "").split(";")[0].strip().lower()


def _open_page_source(doc: SourceDocument) -> PdfReader:
    if _media_type(doc.content_type) != PDF_MEDIA_TYPE or not doc.data.startswith(PDF_MAGIC):
        raise ValidationError("All files must be PDFs")
    try:
        reader = PdfReader(io.BytesIO(doc.data))
    except (PdfReadError, ValueError, KeyError) as e:
        raise ValidationError(f"Unreadable PDF: {doc.filename}") from e
    if reader.is_encrypted:
        raise ValidationError(f"Encrypted PDFs are not supported: {doc.filename}")
    try:
        # Touch the page tree now so broken files fail validation, not the merge.
        len(reader.pages)
    except (PdfReadError, ValueError, KeyError) as e:
        raise ValidationError(f"Unreadable PDF: {doc.filename}") from e
    return reader


def merge_documents(docs: Sequence[SourceDocument]) -> MergeResult:
    """Concatenate the pages of every input PDF, in input order.

    Each document keeps its internal page order; nothing is reordered or
    deduplicated. All inputs are validated before any page is copied.
    """
    if len(docs) < 2:
        raise ValidationError("At least 2 PDF files are required")
    if len(docs) > MAX_MERGE_FILES:
        raise ValidationError(f"At most {MAX_MERGE_FILES} PDF files can be combined")

    sources = [_open_page_source(doc) for doc in docs]

    writer = PdfWriter()
    page_count = 0
    for reader in sources:
        for page in reader.pages:
            writer.add_page(page)
            page_count += 1

    buf = io.BytesIO()
    writer.write(buf)
    logger.debug("Merged %d documents into %d pages", len(sources), page_count)
    return MergeResult(data=buf.getvalue(), page_count=page_count)


def parse_raster_target(target_kind: str | None) -> ContentKind:
    kind = RASTER_TARGETS.get((target_kind or "").strip().lower())
    if kind is None:
        raise ValidationError("Invalid target format. Use: png, jpg, jpeg, or webp")
    return kind


def _flatten_alpha(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return img.convert("RGB")


def transcode_raster(
    data: bytes,
    source_kind: str | None,
    target_kind: str | ContentKind,
    quality: int = LOSSY_QUALITY,
) -> bytes:
    """Decode an image and re-encode it as target_kind.

    Lossy targets (jpg, webp) use the given quality; png is always lossless.
    """
    target = target_kind if isinstance(target_kind, ContentKind) else parse_raster_target(target_kind)
    if target not in _PIL_FORMATS:
        raise ValidationError("Invalid target format. Use: png, jpg, jpeg, or webp")
    if not _media_type(source_kind).startswith("image/"):
        raise ValidationError("Image file is required")
    if not 1 <= int(quality) <= 100:
        raise ValidationError("Quality must be between 1 and 100")

    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ValidationError("Unreadable image") from e

    out = io.BytesIO()
    if target is ContentKind.JPG:
        _flatten_alpha(img).save(out, format="JPEG", quality=int(quality))
    elif target is ContentKind.WEBP:
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() or "transparency" in img.info else "RGB")
        img.save(out, format="WEBP", quality=int(quality))
    else:
        if img.mode not in ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"):
            img = img.convert("RGBA")
        img.save(out, format="PNG", optimize=True)
    return out.getvalue()
