from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Union

from .assembly import SourceDocument, merge_documents, transcode_raster
from .config import LOSSY_QUALITY
from .errors import ValidationError
from .renderer import PdfRenderer, render_text_pdf
from .store import ContentKind
from .text_layout import PageGeometry, layout_text_to_pages


@dataclass(frozen=True)
class MergeOperation:
    documents: tuple[SourceDocument, ...]


@dataclass(frozen=True)
class TranscodeOperation:
    image: SourceDocument
    target: ContentKind
    quality: int = LOSSY_QUALITY


@dataclass(frozen=True)
class LayoutOperation:
    text: str
    geometry: PageGeometry = field(default_factory=PageGeometry)


AssemblyOperation = Union[MergeOperation, TranscodeOperation, LayoutOperation]


@dataclass(frozen=True)
class AssemblyResult:
    content_kind: ContentKind
    data: bytes
    label: str
    page_count: int | None = None


async def perform(operation: AssemblyOperation, renderer: PdfRenderer = render_text_pdf) -> AssemblyResult:
    """Run one assembly operation. Codec work runs off the event loop."""
    if isinstance(operation, MergeOperation):
        merged = await asyncio.to_thread(merge_documents, list(operation.documents))
        return AssemblyResult(ContentKind.PDF, merged.data, "combined", merged.page_count)

    if isinstance(operation, TranscodeOperation):
        data = await asyncio.to_thread(
            transcode_raster,
            operation.image.data,
            operation.image.content_type,
            operation.target,
            operation.quality,
        )
        return AssemblyResult(operation.target, data, "converted")

    if isinstance(operation, LayoutOperation):
        layout = layout_text_to_pages(operation.text, operation.geometry)
        data = await renderer(layout, operation.geometry)
        return AssemblyResult(ContentKind.PDF, data, "text", len(layout))

    raise ValidationError(f"Unsupported operation: {type(operation).__name__}")
