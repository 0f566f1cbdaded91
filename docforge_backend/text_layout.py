from __future__ import annotations

import math
import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

from .config import (
    CHAR_WIDTH_FACTOR,
    FONT_SIZE,
    LINE_HEIGHT_FACTOR,
    PAGE_HEIGHT,
    PAGE_MARGIN,
    PAGE_WIDTH,
)
from .errors import ValidationError


_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


@dataclass(frozen=True)
class PageGeometry:
    """Page size, margin and font size, all in PDF points."""

    width: float = PAGE_WIDTH
    height: float = PAGE_HEIGHT
    margin: float = PAGE_MARGIN
    font_size: float = FONT_SIZE

    @property
    def line_height(self) -> float:
        return self.font_size * LINE_HEIGHT_FACTOR

    @property
    def usable_width(self) -> float:
        return self.width - 2 * self.margin

    @property
    def top(self) -> float:
        return self.height - self.margin

    def validate(self) -> None:
        if not all(math.isfinite(v) for v in (self.width, self.height, self.margin, self.font_size)):
            raise ValidationError("Page geometry must be finite numbers")
        if self.font_size <= 0:
            raise ValidationError("Font size must be positive")
        if self.margin < 0:
            raise ValidationError("Margin must not be negative")
        if self.usable_width <= 0 or self.top < self.margin:
            raise ValidationError("Margins leave no room for text")


@dataclass(frozen=True)
class TextLine:
    text: str
    y: float


@dataclass(frozen=True)
class TextPage:
    lines: tuple[TextLine, ...] = ()


TextLayout = tuple[TextPage, ...]


def estimate_width(text: str, font_size: float) -> float:
    # No font metrics: every character counts as half an em.
    return len(text) * font_size * CHAR_WIDTH_FACTOR


def wrap_paragraph(paragraph: str, geometry: PageGeometry) -> list[str]:
    """Greedy word wrap of one paragraph.

    A word that does not fit on its own is still placed alone on a line; words
    are never split. An empty paragraph yields a single empty line.
    """
    lines: list[str] = []
    current = ""
    for word in paragraph.split():
        candidate = f"{current} {word}" if current else word
        if current and estimate_width(candidate, geometry.font_size) > geometry.usable_width:
            lines.append(current)
            current = word
        else:
            current = candidate
    lines.append(current)
    return lines


def layout_text_to_pages(text: str, geometry: PageGeometry | None = None) -> TextLayout:
    """Paginate plain text into positioned lines.

    The cursor starts at the top margin and moves down one line height per
    line; once it has dropped below the bottom margin the next line opens a
    new page. Newlines start a new paragraph.
    """
    geometry = geometry or PageGeometry()
    if not isinstance(text, str):
        raise ValidationError("Text content is required")
    if _CONTROL_CHARS_RE.search(text):
        raise ValidationError("Text contains control characters")
    geometry.validate()

    text = text.replace("\r\n", "\n").replace("\r", "\n").rstrip()
    if not text.strip():
        return (TextPage(),)

    pages: list[TextPage] = []
    current: list[TextLine] = []
    y = geometry.top
    for paragraph in text.split("\n"):
        for line in wrap_paragraph(paragraph, geometry):
            if y < geometry.margin:
                pages.append(TextPage(tuple(current)))
                current = []
                y = geometry.top
            current.append(TextLine(text=line, y=y))
            y -= geometry.line_height
    pages.append(TextPage(tuple(current)))
    return tuple(pages)


def _page_css(geometry: PageGeometry) -> str:
    return (
        f"@page {{ size: {geometry.width}pt {geometry.height}pt; margin: 0; }}\n"
        "html, body { margin: 0; padding: 0; }\n"
        f".page {{ position: relative; width: {geometry.width}pt; height: {geometry.height}pt; "
        "overflow: hidden; break-after: page; }\n"
        ".page:last-child { break-after: auto; }\n"
        f".line {{ position: absolute; left: {geometry.margin}pt; white-space: pre; "
        f"font-family: Helvetica, Arial, sans-serif; font-size: {geometry.font_size}pt; line-height: 1; }}\n"
    )


def build_layout_html(layout: TextLayout, geometry: PageGeometry) -> str:
    """Render a layout as fixed-size HTML pages, one <section> per page.

    Line y positions are PDF baselines measured from the page bottom; CSS
    measures from the top, so each line box is placed one font size above
    its baseline.
    """
    soup = BeautifulSoup(
        '<!DOCTYPE html><html><head><meta charset="utf-8"/></head><body></body></html>',
        "html.parser",
    )
    style = soup.new_tag("style")
    style.string = _page_css(geometry)
    soup.head.append(style)

    for page in layout:
        section = soup.new_tag("section")
        section["class"] = ["page"]
        for line in page.lines:
            div = soup.new_tag("div")
            div["class"] = ["line"]
            div["style"] = f"top: {geometry.height - line.y - geometry.font_size:.2f}pt;"
            div.string = line.text
            section.append(div)
        soup.body.append(section)

    return str(soup)
