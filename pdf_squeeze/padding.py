"""
padding.py - Grow a finished document to an exact byte count.

Padding only ever appends. Each document format gets its own adjuster,
picked from the file header; the PDF adjuster writes whitespace after the
last %%EOF marker, where conforming readers have stopped parsing.

Readers locate the cross-reference table by scanning the last 1024 bytes
for "startxref". A long run of filler would push that keyword out of the
window, so large pads end with a restated "startxref <offset> %%EOF" that
points at the same cross-reference section as the original.
"""

import logging
import os
import re
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from .document import get_page_count, get_page_count_mupdf, sniff_file
from .errors import DocumentUnreadable

logger = logging.getLogger(__name__)


class PadOutcome(str, Enum):
    MATCHED = "matched"
    ALREADY_OVER_TARGET = "already_over_target"
    UNSUPPORTED_FORMAT = "unsupported_format"

    @property
    def ok(self) -> bool:
        return self is PadOutcome.MATCHED


class FinalSizeAdjuster:
    """Format-specific padding strategy."""

    format_name = ""

    def pad(self, path: Path, target_bytes: int, verify: bool = False) -> PadOutcome:
        raise NotImplementedError


class PdfPadAdjuster(FinalSizeAdjuster):
    """
    Appends inert bytes after a PDF's final %%EOF marker.

    With verify=True the padded file is re-read with pikepdf and PyMuPDF;
    if either sees a different page count the padding is rolled back.
    """

    format_name = "pdf"

    FILLER = b" "
    EOF_MARKER = b"%%EOF"
    STARTXREF = b"startxref"
    # Readers look for startxref/%%EOF this close to the end of the file
    EOF_WINDOW = 1024
    TAIL_SCAN = 4096

    _startxref_re = re.compile(rb"startxref\s+(\d+)")

    def pad(self, path: Path, target_bytes: int, verify: bool = False) -> PadOutcome:
        path = Path(path)
        size = path.stat().st_size

        if size == target_bytes:
            return PadOutcome.MATCHED
        if size > target_bytes:
            logger.info(
                f"Cannot pad {path.name}: {size:,} bytes already over {target_bytes:,}"
            )
            return PadOutcome.ALREADY_OVER_TARGET

        tail_start = max(0, size - self.TAIL_SCAN)
        with open(path, "rb") as f:
            f.seek(tail_start)
            tail = f.read()

        eof_at = tail.rfind(self.EOF_MARKER)
        if eof_at < 0:
            logger.warning(f"No %%EOF marker near the end of {path.name}; not padding")
            return PadOutcome.UNSUPPORTED_FORMAT

        pages_before = None
        if verify:
            try:
                pages_before = self._page_counts(path)
            except DocumentUnreadable as e:
                logger.warning(f"Not padding unreadable {path.name}: {e}")
                return PadOutcome.UNSUPPORTED_FORMAT

        padding = self.build_padding(tail, target_bytes - size)
        with open(path, "ab") as f:
            f.write(padding)

        if verify and self._page_counts_safe(path) != pages_before:
            logger.warning(f"Padding changed how {path.name} parses; rolling back")
            os.truncate(path, size)
            return PadOutcome.UNSUPPORTED_FORMAT

        logger.debug(f"Padded {path.name} with {len(padding):,} bytes to {target_bytes:,}")
        return PadOutcome.MATCHED

    def build_padding(self, tail: bytes, count: int) -> bytes:
        """
        Bytes to append to a file ending in tail, exactly count long.

        Args:
            tail: Last bytes of the file, containing the final %%EOF
            count: Number of bytes to append (> 0)
        """
        eof_end = tail.rfind(self.EOF_MARKER) + len(self.EOF_MARKER)
        # Keep %%EOF on its own line
        lead = b"" if tail[eof_end:eof_end + 1] in (b"\n", b"\r") else b"\n"
        lead = lead[:count]

        startxref_at = tail.rfind(self.STARTXREF)
        plain = lead + self.FILLER * (count - len(lead))

        # Plain filler keeps startxref inside the window
        if startxref_at < 0 or (len(tail) - startxref_at) + count <= self.EOF_WINDOW:
            return plain

        match = self._startxref_re.match(tail, startxref_at)
        if not match:
            return plain

        trailer = b"\nstartxref\n" + match.group(1) + b"\n" + self.EOF_MARKER + b"\n"
        spaces = count - len(lead) - len(trailer)
        if spaces < 0:
            return plain
        return lead + self.FILLER * spaces + trailer

    @staticmethod
    def _page_counts(path: Path):
        return get_page_count(path), get_page_count_mupdf(path)

    def _page_counts_safe(self, path: Path):
        try:
            return self._page_counts(path)
        except DocumentUnreadable:
            return None


ADJUSTERS: Dict[str, FinalSizeAdjuster] = {}


def register_adjuster(adjuster: FinalSizeAdjuster):
    """Add or replace the adjuster for adjuster.format_name."""
    ADJUSTERS[adjuster.format_name] = adjuster


register_adjuster(PdfPadAdjuster())


def adjuster_for(path: Path) -> Optional[FinalSizeAdjuster]:
    """Adjuster matching the file's format, or None."""
    return ADJUSTERS.get(sniff_file(path))


def pad_to_exact_size(
    path: Path,
    target_bytes: int,
    verify: bool = False,
) -> PadOutcome:
    """
    Append inert filler so path is exactly target_bytes long.

    Args:
        path: Finished document, modified in place
        target_bytes: Exact size wanted
        verify: Re-read the result and roll back if it parses differently

    Returns:
        PadOutcome.MATCHED when the file now has the exact size
    """
    if target_bytes <= 0:
        raise ValueError("target_bytes must be positive")

    adjuster = adjuster_for(path)
    if adjuster is None:
        logger.warning(f"No size adjuster for {Path(path).name}")
        return PadOutcome.UNSUPPORTED_FORMAT

    return adjuster.pad(path, target_bytes, verify=verify)
