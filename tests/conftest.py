"""Pytest configuration and fixtures."""

import io
import os
import tempfile
from pathlib import Path
from typing import Generator, Sequence

import pytest
from PIL import Image
from pypdf import PdfWriter

# Keep the default app instance in server.py away from the project directory.
os.environ.setdefault("DOCFORGE_ARTIFACTS_ROOT", tempfile.mkdtemp(prefix="docforge-test-"))

from docforge_backend.store import ArtifactStore  # noqa: E402
from docforge_backend.text_layout import PageGeometry, TextLayout  # noqa: E402


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_pdf(page_widths: Sequence[float], height: float = 300) -> bytes:
    """Build a PDF with one blank page per width; widths tag page identity."""
    writer = PdfWriter()
    for width in page_widths:
        writer.add_blank_page(width=width, height=height)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


def make_png(size=(16, 12), mode="RGBA", color=(200, 30, 30, 128)) -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format="PNG")
    return buf.getvalue()


async def fake_renderer(layout: TextLayout, geometry: PageGeometry) -> bytes:
    return make_pdf([geometry.width] * len(layout), height=geometry.height)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(temp_dir: Path, clock: FakeClock) -> ArtifactStore:
    """Artifact store on a temporary directory, driven by the fake clock."""
    return ArtifactStore(temp_dir / "artifacts", clock=clock)


@pytest.fixture
def live_store(temp_dir: Path) -> ArtifactStore:
    """Artifact store on a temporary directory using the real clock."""
    return ArtifactStore(temp_dir / "live-artifacts")
