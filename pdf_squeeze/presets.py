"""
presets.py - Fixed-budget presets for exam and government portals.

A preset is plain data (byte limit + quality tier); every preset runs
through the same CompressionOrchestrator. Image uploads (photos,
signatures) are wrapped into a single-page PDF first.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .config import QualityTier, format_bytes
from .document import sniff_format
from .errors import DocumentUnreadable, UnknownPreset
from .images import image_to_pdf
from .pipeline import CompressionOrchestrator, CompressionRequest, CompressionResult

logger = logging.getLogger(__name__)

KB = 1024  # portals quote limits in binary kilobytes

# Image uploads wrapped into a PDF, with their file suffixes
IMAGE_FORMATS = {
    "jpeg": (".jpg", ".jpeg"),
    "png": (".png",),
    "tiff": (".tif", ".tiff"),
    "gif": (".gif",),
    "bmp": (".bmp",),
    "webp": (".webp",),
}
IMAGE_SUFFIXES = frozenset(s for suffixes in IMAGE_FORMATS.values() for s in suffixes)

SUPPORTED_UPLOADS = "PDF, " + ", ".join(fmt.upper() for fmt in IMAGE_FORMATS)


@dataclass(frozen=True)
class Preset:
    """Budget and tier for one portal upload slot."""
    name: str
    label: str
    limit_kb: int
    quality_tier: QualityTier
    clean_scan: bool = False
    pad_to_exact: bool = False

    @property
    def target_bytes(self) -> int:
        return self.limit_kb * KB


PRESETS: Dict[str, Preset] = {
    p.name: p
    for p in (
        Preset("upsc_photo", "UPSC/SSC Photo", 100, QualityTier.HIGH),
        Preset("upsc_sign", "UPSC/SSC Signature", 100, QualityTier.HIGH, clean_scan=True),
        Preset("ibps_photo", "IBPS Photo", 200, QualityTier.MEDIUM),
        Preset("passport_size", "Passport Size", 500, QualityTier.LOW),
        Preset("ssc", "SSC", 100, QualityTier.HIGH),
        Preset("upsc", "UPSC", 200, QualityTier.MEDIUM),
        Preset("passport", "Passport", 500, QualityTier.LOW),
    )
}


def get_preset(name: str) -> Preset:
    try:
        return PRESETS[name.lower()]
    except KeyError:
        raise UnknownPreset(
            f"Unknown preset {name!r}; choose from {', '.join(sorted(PRESETS))}"
        ) from None


class PresetAdapter:
    """Runs preset uploads (PDF or image) through the orchestrator."""

    def __init__(self, orchestrator: Optional[CompressionOrchestrator] = None):
        self.orchestrator = orchestrator or CompressionOrchestrator()

    def prepare(self, data: bytes, preset: Preset) -> bytes:
        """PDF input as-is; images wrapped into a single-page PDF."""
        fmt = sniff_format(data)
        if fmt == "pdf":
            return data
        if fmt in IMAGE_FORMATS:
            logger.info(f"Preset {preset.name}: wrapping {fmt} upload as PDF")
            return image_to_pdf(data, clean_scan=preset.clean_scan)
        raise DocumentUnreadable(
            f"Only {SUPPORTED_UPLOADS} files are supported for preset compression."
        )

    def run(self, data: bytes, preset_name: str, filename: Optional[str] = None) -> CompressionResult:
        """
        Compress data to the named preset's limit.

        Raises:
            UnknownPreset: preset_name is not in PRESETS
            DocumentUnreadable: Input is neither a PDF nor a readable image
        """
        preset = get_preset(preset_name)
        document = self.prepare(data, preset)

        request = CompressionRequest(
            document=document,
            quality_tier=preset.quality_tier,
            target_bytes=preset.target_bytes,
            preset_name=preset.name,
            exact_size=preset.pad_to_exact,
            filename=filename or f"{preset.name}.pdf",
        )
        result = self.orchestrator.run(request)
        # Report against the original upload, not the wrapped PDF
        result.input_size = len(data)

        if result.achieved_size > preset.target_bytes:
            warning = (
                f"File processed but size is {format_bytes(result.achieved_size)}, "
                f"above the {preset.limit_kb} KB limit for {preset.label}."
            )
            result.warning = f"{result.warning} {warning}" if result.warning else warning
        else:
            result.message = f"PDF optimized for {preset.label} under {preset.limit_kb} KB"

        return result
