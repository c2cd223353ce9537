"""
backends.py - Single compression attempts.

Two strategies share one contract, compress(input, output, quality):
- GhostscriptBackend re-renders the PDF through Ghostscript's pdfwrite
  device and downsamples embedded images to the requested resolution.
- StructuralBackend rewrites the object layout with pikepdf. Images are
  left alone, so gains are modest, but it needs nothing outside Python.
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional, Protocol, Tuple

import pikepdf

from .capability import BackendDescriptor
from .config import EngineConfig
from .errors import BackendExecutionFailed, BackendUnavailable, DocumentUnreadable

logger = logging.getLogger(__name__)

# Ghostscript -dPDFSETTINGS presets, coarsest last
PRINTER = "/printer"
EBOOK = "/ebook"
SCREEN = "/screen"

# Minimum resolution for each preset
PRESET_THRESHOLDS = (
    (200, PRINTER),
    (110, EBOOK),
)

# Bilevel images get unreadable below this
MIN_MONO_RESOLUTION = 72

STDERR_TAIL = 2000


class CompressionBackend(Protocol):
    """Contract shared by every compression strategy."""

    name: str

    def compress(
        self,
        input_path: Path,
        output_path: Path,
        quality: int,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Write a compressed copy of input_path to output_path.

        Raises:
            BackendExecutionFailed: This attempt failed; another may succeed
            DocumentUnreadable: The input cannot be parsed at all
        """
        ...

    def ladder(self, config: EngineConfig) -> Tuple[int, ...]:
        """Quality values worth searching, highest fidelity first."""
        ...


def pdf_settings_for(resolution: int) -> str:
    """Map a resolution onto one of the three Ghostscript presets."""
    for minimum, preset in PRESET_THRESHOLDS:
        if resolution >= minimum:
            return preset
    return SCREEN


def _remove_partial(path: Path):
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass


class GhostscriptBackend:
    """External rasterizing compressor (Ghostscript pdfwrite)."""

    name = "ghostscript"

    def __init__(self, command: str, config: Optional[EngineConfig] = None):
        self.command = command
        self.config = config or EngineConfig()

    @classmethod
    def from_descriptor(
        cls,
        descriptor: BackendDescriptor,
        config: Optional[EngineConfig] = None,
    ) -> "GhostscriptBackend":
        if not descriptor.available or not descriptor.command:
            raise BackendUnavailable("Ghostscript is not available")
        return cls(descriptor.command, config)

    def ladder(self, config: EngineConfig) -> Tuple[int, ...]:
        return config.quality_ladder

    def build_command(self, input_path: Path, output_path: Path, resolution: int) -> list:
        """Ghostscript argument list for one attempt."""
        resolution = int(resolution)
        return [
            self.command,
            "-sDEVICE=pdfwrite",
            "-dCompatibilityLevel=1.4",
            f"-dPDFSETTINGS={pdf_settings_for(resolution)}",
            "-dDownsampleColorImages=true",
            "-dDownsampleGrayImages=true",
            "-dDownsampleMonoImages=true",
            f"-dColorImageResolution={resolution}",
            f"-dGrayImageResolution={resolution}",
            f"-dMonoImageResolution={max(MIN_MONO_RESOLUTION, resolution)}",
            "-dSAFER",
            "-dNOPAUSE",
            "-dQUIET",
            "-dBATCH",
            f"-sOutputFile={output_path}",
            str(input_path),
        ]

    def compress(
        self,
        input_path: Path,
        output_path: Path,
        quality: int,
        timeout: Optional[float] = None,
    ) -> None:
        output_path = Path(output_path)
        # A caller deadline only ever shortens the per-call limit
        if timeout is None:
            timeout = self.config.gs_timeout
        else:
            timeout = min(timeout, self.config.gs_timeout)
        if timeout <= 0:
            raise BackendExecutionFailed(
                f"Deadline expired before the {quality} dpi attempt",
                backend=self.name,
            )

        cmd = self.build_command(input_path, output_path, quality)
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout
            )
        except subprocess.TimeoutExpired as e:
            _remove_partial(output_path)
            raise BackendExecutionFailed(
                f"Ghostscript timed out after {e.timeout:.0f}s at {quality} dpi",
                backend=self.name,
            ) from e
        except OSError as e:
            # Executable vanished since it was probed
            _remove_partial(output_path)
            raise BackendExecutionFailed(
                f"Cannot run {self.command}: {e}",
                backend=self.name,
            ) from e

        if result.returncode != 0:
            _remove_partial(output_path)
            stderr = (result.stderr or "")[-STDERR_TAIL:]
            raise BackendExecutionFailed(
                f"Ghostscript failed at {quality} dpi (exit {result.returncode}): {stderr.strip()}",
                backend=self.name,
                returncode=result.returncode,
                stderr=stderr,
            )

        if not output_path.exists() or output_path.stat().st_size == 0:
            _remove_partial(output_path)
            raise BackendExecutionFailed(
                f"Ghostscript produced no output at {quality} dpi",
                backend=self.name,
                returncode=result.returncode,
            )


class StructuralBackend:
    """
    Structural optimizer (pikepdf).

    Drops unreferenced resources, recompresses Flate streams and packs
    objects into object streams. The quality argument is ignored.
    """

    name = "pikepdf"

    def ladder(self, config: EngineConfig) -> Tuple[int, ...]:
        # Output does not depend on quality; one attempt is enough
        return (config.quality_ladder[0],)

    def compress(
        self,
        input_path: Path,
        output_path: Path,
        quality: int = 0,
        timeout: Optional[float] = None,
    ) -> None:
        output_path = Path(output_path)
        try:
            with pikepdf.open(input_path) as pdf:
                pdf.remove_unreferenced_resources()
                pdf.save(
                    output_path,
                    compress_streams=True,
                    recompress_flate=True,
                    object_stream_mode=pikepdf.ObjectStreamMode.generate
                )
        except pikepdf.PdfError as e:
            _remove_partial(output_path)
            raise DocumentUnreadable(f"Cannot parse PDF: {e}") from e
        except OSError as e:
            _remove_partial(output_path)
            raise BackendExecutionFailed(
                f"Structural rewrite failed: {e}",
                backend=self.name,
            ) from e

        logger.debug(
            f"Structural rewrite: {Path(input_path).stat().st_size:,} -> "
            f"{output_path.stat().st_size:,} bytes"
        )
