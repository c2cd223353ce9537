"""
Shared fixtures: small real PDFs built with pikepdf, a scripted stand-in
for the Ghostscript executable, and in-memory backends for the search.
"""

from __future__ import annotations

import io
import subprocess
import threading
from pathlib import Path

import pikepdf
try:
    import fitz
except ImportError:
    import pymupdf as fitz
import pytest
from PIL import Image

from pdf_squeeze.capability import BackendDescriptor, CapabilityProvider
from pdf_squeeze.config import EngineConfig
from pdf_squeeze.errors import BackendExecutionFailed


# ═══════════════════════════════════════════════════════════════════════════════
# PDF BUILDERS
# ═══════════════════════════════════════════════════════════════════════════════


def build_pdf(pages: int = 2, text: str = "Hello page", object_streams: bool = False) -> bytes:
    """Text-only PDF, one line of Helvetica per page."""
    pdf = pikepdf.Pdf.new()
    font = pdf.make_indirect(pikepdf.Dictionary({
        "/Type": pikepdf.Name.Font,
        "/Subtype": pikepdf.Name.Type1,
        "/BaseFont": pikepdf.Name.Helvetica,
        "/Encoding": pikepdf.Name.WinAnsiEncoding,
    }))
    for i in range(pages):
        pdf.add_blank_page(page_size=(612, 792))
        page = pdf.pages[-1]
        page.Resources = pikepdf.Dictionary({"/Font": pikepdf.Dictionary({"/F1": font})})
        content = f"BT /F1 24 Tf 72 720 Td ({text} {i + 1}) Tj ET"
        page.Contents = pdf.make_indirect(pikepdf.Stream(pdf, content.encode("ascii")))

    buffer = io.BytesIO()
    mode = pikepdf.ObjectStreamMode.generate if object_streams else pikepdf.ObjectStreamMode.disable
    pdf.save(buffer, object_stream_mode=mode, deterministic_id=True)
    return buffer.getvalue()


def write_filled_copy(input_path: Path, output_path: Path, filler: int):
    """Copy a PDF, appending a comment of `filler` bytes to page 1's content."""
    with pikepdf.open(input_path) as pdf:
        page = pdf.pages[0]
        page.contents_add(pikepdf.Stream(pdf, b"%" + b"x" * filler + b"\n"), prepend=False)
        pdf.save(output_path, compress_streams=False, deterministic_id=True)


def extract_text(pdf_path) -> str:
    """Plain text of every page, in order (PyMuPDF)."""
    with fitz.open(pdf_path) as doc:
        return "".join(page.get_text("text") for page in doc)


@pytest.fixture
def pdf_bytes():
    return build_pdf(pages=3)


@pytest.fixture
def pdf_path(tmp_path, pdf_bytes):
    path = tmp_path / "input.pdf"
    path.write_bytes(pdf_bytes)
    return path


@pytest.fixture
def jpeg_bytes():
    img = Image.new("RGB", (400, 300), (200, 30, 30))
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()


@pytest.fixture
def signature_png():
    img = Image.new("RGBA", (300, 120), (255, 255, 255, 0))
    for x in range(30, 270):
        for y in (55, 56, 57, 58):
            img.putpixel((x, y), (10, 10, 60, 255))
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


# ═══════════════════════════════════════════════════════════════════════════════
# GHOSTSCRIPT STAND-IN
# ═══════════════════════════════════════════════════════════════════════════════


def _arg(cmd, prefix):
    for part in cmd:
        if part.startswith(prefix):
            return part[len(prefix):]
    return None


class FakeGhostscript:
    """
    Replacement for subprocess.run that behaves like "gs -sDEVICE=pdfwrite".

    Output is the input plus filler proportional to the requested
    resolution, so lower resolutions give smaller files.
    """

    BYTES_PER_DPI = 1000

    def __init__(self, fail_at=(), fail_all=False, timeout_all=False):
        self.fail_at = set(fail_at)
        self.fail_all = fail_all
        self.timeout_all = timeout_all
        self.calls = []
        self.output_dirs = []
        self.timeouts = []
        self._lock = threading.Lock()

    def __call__(self, cmd, **kwargs):
        with self._lock:
            self.calls.append(list(cmd))
            self.timeouts.append(kwargs.get("timeout"))

        if "--version" in cmd:
            return subprocess.CompletedProcess(cmd, 0, "10.02.1\n", "")
        if self.timeout_all:
            raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout") or 0)

        resolution = int(_arg(cmd, "-dColorImageResolution="))
        output = Path(_arg(cmd, "-sOutputFile="))
        with self._lock:
            self.output_dirs.append(output.parent)

        if self.fail_all or resolution in self.fail_at:
            return subprocess.CompletedProcess(cmd, 1, "", "Error: /syntaxerror in --file--")

        write_filled_copy(Path(cmd[-1]), output, resolution * self.BYTES_PER_DPI)
        return subprocess.CompletedProcess(cmd, 0, "", "")

    @property
    def resolutions(self):
        return [
            int(_arg(c, "-dColorImageResolution="))
            for c in self.calls
            if _arg(c, "-dColorImageResolution=") is not None
        ]

    def size_at(self, input_path: Path, resolution: int, tmp_path: Path) -> int:
        """Size the stand-in produces for input_path at resolution."""
        out = tmp_path / f"sized-{resolution}.pdf"
        write_filled_copy(input_path, out, resolution * self.BYTES_PER_DPI)
        size = out.stat().st_size
        out.unlink()
        return size


@pytest.fixture
def fake_gs(monkeypatch):
    fake = FakeGhostscript()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


# ═══════════════════════════════════════════════════════════════════════════════
# PROVIDERS AND BACKENDS
# ═══════════════════════════════════════════════════════════════════════════════


class StaticProvider(CapabilityProvider):
    """Capability provider that returns a fixed descriptor and counts detections."""

    def __init__(self, descriptor: BackendDescriptor, config: EngineConfig | None = None):
        super().__init__(config or EngineConfig())
        self.descriptor = descriptor
        self.detections = 0

    def _probe(self):
        self.detections += 1
        return self.descriptor


GS_AVAILABLE = BackendDescriptor(name="ghostscript", command="gs", version="10.02.1", available=True)


@pytest.fixture
def gs_provider():
    return StaticProvider(GS_AVAILABLE)


@pytest.fixture
def no_gs_provider():
    return StaticProvider(BackendDescriptor.unavailable())


class SizedBackend:
    """In-memory backend: writes `sizes[quality]` bytes, or fails."""

    name = "sized"

    def __init__(self, sizes, fail_at=()):
        self.sizes = dict(sizes)
        self.fail_at = set(fail_at)
        self.calls = []
        self.live_files_seen = []

    def ladder(self, config):
        return tuple(self.sizes)

    def compress(self, input_path, output_path, quality, timeout=None):
        self.calls.append(quality)
        # Candidate files alive just before this one is written
        self.live_files_seen.append(len(list(Path(output_path).parent.glob("candidate-*"))))
        if quality in self.fail_at:
            raise BackendExecutionFailed(f"failed at {quality}", backend=self.name)
        Path(output_path).write_bytes(b"%PDF-1.4\n" + b"x" * (self.sizes[quality] - 9))
