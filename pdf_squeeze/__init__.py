"""
PDF Squeeze - size-targeted PDF compression engine.

Compresses a document with Ghostscript when it is installed (pikepdf
rewrite otherwise), searches a resolution ladder to meet a byte budget,
and can pad the result to an exact byte count.
"""

from .errors import (
    CompressionError,
    BackendUnavailable,
    BackendExecutionFailed,
    DocumentUnreadable,
    UnknownPreset,
)
from .config import EngineConfig, QualityTier
from .capability import BackendDescriptor, CapabilityProvider, detect_backend
from .pipeline import (
    BackendKind,
    CompressionOrchestrator,
    CompressionRequest,
    CompressionResult,
    compress_document,
)
from .presets import PRESETS, Preset, PresetAdapter

__version__ = "1.0.0"
__author__ = "PDF Squeeze"
