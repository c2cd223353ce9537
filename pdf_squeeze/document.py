"""
document.py - Read-only inspection of input and output documents.

pikepdf (qpdf) and PyMuPDF (MuPDF) are two independent PDF parsers; the
padding check reads the result with both.
"""

import threading
from pathlib import Path
from typing import Optional

import pikepdf
try:
    import fitz  # pip install pymupdf
except ImportError:
    import pymupdf as fitz

from .errors import DocumentUnreadable


# Magic numbers for the formats the engine accepts
SIGNATURES = (
    (b"%PDF-", "pdf"),
    (b"\xff\xd8\xff", "jpeg"),
    (b"\x89PNG\r\n\x1a\n", "png"),
    (b"II*\x00", "tiff"),
    (b"MM\x00*", "tiff"),
    (b"GIF8", "gif"),
    (b"BM", "bmp"),
)

# Readers accept up to 1024 bytes of junk before the %PDF- header
PDF_HEADER_WINDOW = 1024

# MuPDF contexts are not safe to share across threads
_mupdf_lock = threading.Lock()


def sniff_format(data: bytes) -> Optional[str]:
    """
    Identify a document by its leading bytes.

    Returns:
        "pdf", "jpeg", "png", "tiff", "gif", "bmp" or None
    """
    for magic, name in SIGNATURES:
        if data.startswith(magic):
            return name
    if b"%PDF-" in data[:PDF_HEADER_WINDOW]:
        return "pdf"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    return None


def sniff_file(path: Path) -> Optional[str]:
    """sniff_format() for a file on disk."""
    with open(path, "rb") as f:
        return sniff_format(f.read(PDF_HEADER_WINDOW))


def get_page_count(pdf_path: Path) -> int:
    """Get total page count (pikepdf)."""
    try:
        with pikepdf.open(pdf_path) as pdf:
            return len(pdf.pages)
    except pikepdf.PdfError as e:
        raise DocumentUnreadable(f"Cannot read {Path(pdf_path).name}: {e}") from e


def get_page_count_mupdf(pdf_path: Path) -> int:
    """Get total page count (PyMuPDF)."""
    try:
        with _mupdf_lock, fitz.open(pdf_path) as doc:
            return len(doc)
    except (RuntimeError, ValueError) as e:
        # fitz.FileDataError subclasses RuntimeError
        raise DocumentUnreadable(f"Cannot read {Path(pdf_path).name}: {e}") from e
