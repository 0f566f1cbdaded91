from __future__ import annotations

import logging
from typing import Awaitable, Callable

from playwright.async_api import async_playwright

from .text_layout import PageGeometry, TextLayout, build_layout_html


logger = logging.getLogger(__name__)

PdfRenderer = Callable[[TextLayout, PageGeometry], Awaitable[bytes]]


def _inches(points: float) -> str:
    return f"{points / 72.0:.4f}in"


async def render_text_pdf(layout: TextLayout, geometry: PageGeometry) -> bytes:
    """Print a text layout to PDF in headless Chromium, one PDF page per layout page."""
    html = build_layout_html(layout, geometry)

    async with async_playwright() as p:
        browser = await p.chromium.launch()
        try:
            page = await browser.new_page()
            await page.set_content(html, wait_until="load")
            pdf_bytes = await page.pdf(
                width=_inches(geometry.width),
                height=_inches(geometry.height),
                print_background=True,
                prefer_css_page_size=True,
                margin={"top": "0", "right": "0", "bottom": "0", "left": "0"},
            )
        finally:
            await browser.close()

    logger.debug("Rendered %d text pages (%d bytes)", len(layout), len(pdf_bytes))
    return pdf_bytes
