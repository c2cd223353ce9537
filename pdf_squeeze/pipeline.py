"""
pipeline.py - Compression orchestrator.

Pipeline:
1. Detect Ghostscript (cached by the capability provider)
2. Byte budget given: search the resolution ladder
   No budget: one call at the quality tier's resolution
3. Budget met by Ghostscript: pad to the exact byte count
4. Any Ghostscript failure: redo the step with pikepdf

Every run works inside its own temporary directory, removed before
returning. Only DocumentUnreadable is raised; every other problem ends up
as a warning on the result.
"""

import logging
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .backends import GhostscriptBackend, StructuralBackend
from .capability import CapabilityProvider, default_provider
from .config import EngineConfig, QualityTier, format_bytes
from .errors import BackendExecutionFailed, BackendUnavailable, DocumentUnreadable
from .padding import PadOutcome, pad_to_exact_size
from .search import SearchOutcome, find_best_for_target

logger = logging.getLogger(__name__)

FALLBACK_NOTE = "Install Ghostscript for stronger compression."


class BackendKind(str, Enum):
    EXTERNAL = "external"   # Ghostscript
    FALLBACK = "fallback"   # pikepdf structural rewrite


@dataclass(frozen=True)
class CompressionRequest:
    """One compression call. Immutable once built."""
    document: bytes
    quality_tier: QualityTier = QualityTier.MEDIUM
    target_bytes: Optional[int] = None
    preset_name: Optional[str] = None
    exact_size: bool = True
    deadline: Optional[float] = None  # seconds
    filename: str = "document.pdf"

    def __post_init__(self):
        if not self.document:
            raise ValueError("document is empty")
        if self.target_bytes is not None and self.target_bytes <= 0:
            raise ValueError("target_bytes must be positive")
        if self.deadline is not None and self.deadline <= 0:
            raise ValueError("deadline must be positive")
        object.__setattr__(self, "quality_tier", QualityTier(self.quality_tier))


@dataclass
class CompressionResult:
    """Output handed back to the response layer."""
    output: bytes
    backend_used: BackendKind
    exact_target_met: bool = False
    warning: Optional[str] = None
    message: str = ""

    input_size: int = 0
    target_bytes: Optional[int] = None
    quality: Optional[int] = None
    candidates_tried: int = 0
    elapsed: float = 0.0
    backend_name: str = ""

    @property
    def achieved_size(self) -> int:
        return len(self.output)

    @property
    def reduction_pct(self) -> float:
        if self.input_size == 0:
            return 0
        return (1 - self.achieved_size / self.input_size) * 100

    def to_dict(self) -> dict:
        return {
            "output_bytes": self.output,
            "achieved_size": self.achieved_size,
            "exact_target_met": self.exact_target_met,
            "backend_used": self.backend_used.value,
            "warning_message": self.warning,
        }

    def summary(self) -> str:
        lines = [
            f"Input:  {self.input_size:,} bytes",
            f"Output: {self.achieved_size:,} bytes ({format_bytes(self.achieved_size)})",
            f"Reduction: {self.reduction_pct:.1f}%",
        ]
        if self.target_bytes:
            lines.append(
                f"Target: {self.target_bytes:,} bytes "
                f"({'exact' if self.exact_target_met else 'not exact'})"
            )
        lines.append(f"Backend: {self.backend_name} ({self.backend_used.value})")
        if self.quality is not None and self.backend_used is BackendKind.EXTERNAL:
            lines.append(f"Resolution: {self.quality} dpi")
        lines.append(f"Time: {self.elapsed:.1f}s")
        if self.warning:
            lines.append(f"Warning: {self.warning}")
        return "\n".join(lines)


@dataclass
class _StepOutcome:
    path: Path
    backend: str
    kind: BackendKind
    quality: Optional[int] = None
    met: bool = False
    tried: int = 1
    notes: list = field(default_factory=list)


class CompressionOrchestrator:
    """
    Entry point of the engine.

    Args:
        provider: Capability provider (default: the process-wide one)
        config: Engine settings (default: the provider's)
        verify_padding: Re-read padded files and roll back on any change
    """

    def __init__(
        self,
        provider: Optional[CapabilityProvider] = None,
        config: Optional[EngineConfig] = None,
        verify_padding: bool = True,
    ):
        self.provider = provider or default_provider()
        self.config = config or self.provider.config
        self.verify_padding = verify_padding
        self.structural = StructuralBackend()

    def run(self, request: CompressionRequest) -> CompressionResult:
        """
        Compress request.document.

        Raises:
            DocumentUnreadable: No backend could parse the input
        """
        start = time.time()
        deadline = None
        if request.deadline is not None:
            deadline = time.monotonic() + request.deadline

        workdir = Path(tempfile.mkdtemp(prefix=self.config.temp_prefix))
        logger.debug(f"Workspace for {request.filename}: {workdir}")

        try:
            input_path = workdir / "input.pdf"
            input_path.write_bytes(request.document)

            try:
                external = GhostscriptBackend.from_descriptor(self.provider.require(), self.config)
            except BackendUnavailable as e:
                logger.info(f"{request.filename}: {e}; using structural rewrite")
                external = None

            step = self._run_step(request, input_path, workdir, external, deadline)
            result = self._finish(request, step)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

        result.elapsed = time.time() - start
        logger.info(
            f"{request.filename}: {result.input_size:,} -> {result.achieved_size:,} bytes "
            f"via {result.backend_name} ({result.elapsed:.1f}s)"
        )
        return result

    def _run_step(
        self,
        request: CompressionRequest,
        input_path: Path,
        workdir: Path,
        external: Optional[GhostscriptBackend],
        deadline: Optional[float],
    ) -> _StepOutcome:
        notes = []

        if external is not None:
            try:
                return self._attempt(request, input_path, workdir, external, BackendKind.EXTERNAL, deadline)
            except BackendExecutionFailed as e:
                logger.warning(f"{request.filename}: Ghostscript failed, falling back: {e}")
                # Next run detects again in case Ghostscript went away
                self.provider.invalidate()
                notes.append(
                    "Ghostscript compression failed; used basic structural optimization instead."
                )
        else:
            notes.append(
                "Ghostscript is not available; used basic structural optimization. "
                + FALLBACK_NOTE
            )

        try:
            step = self._attempt(request, input_path, workdir, self.structural, BackendKind.FALLBACK, None)
        except BackendExecutionFailed as e:
            raise DocumentUnreadable(f"No backend could process {request.filename}: {e}") from e

        step.notes = notes + step.notes
        return step

    def _attempt(self, request, input_path, workdir, backend, kind, deadline) -> _StepOutcome:
        if request.target_bytes:
            ladder = backend.ladder(self.config)
            outcome: SearchOutcome = find_best_for_target(
                input_path,
                request.target_bytes,
                backend,
                workdir,
                ladder=ladder,
                deadline=deadline,
            )
            return _StepOutcome(
                path=outcome.attempt.path,
                backend=backend.name,
                kind=kind,
                quality=outcome.attempt.quality,
                met=outcome.met,
                tried=outcome.tried,
            )

        quality = self.config.resolution_for(request.quality_tier)
        out_path = workdir / f"single-{backend.name}-r{quality}.pdf"
        timeout = None if deadline is None else deadline - time.monotonic()
        backend.compress(input_path, out_path, quality, timeout=timeout)
        return _StepOutcome(path=out_path, backend=backend.name, kind=kind, quality=quality)

    def _finish(self, request: CompressionRequest, step: _StepOutcome) -> CompressionResult:
        target = request.target_bytes
        warnings = list(step.notes)
        exact = False

        if not target:
            message = "PDF compressed successfully!"
            if step.kind is BackendKind.FALLBACK:
                message = "PDF optimized successfully (basic mode)."
        elif not step.met:
            message = (
                f"Closest possible size generated. Could not reach the "
                f"{target:,} byte target."
            )
            warnings.append(
                f"Target of {target:,} bytes not reached; smallest output is "
                f"{step.path.stat().st_size:,} bytes."
            )
        elif step.kind is BackendKind.EXTERNAL and request.exact_size:
            outcome = pad_to_exact_size(step.path, target, verify=self.verify_padding)
            exact = outcome is PadOutcome.MATCHED
            if exact:
                message = f"PDF compressed to exact requested size ({target:,} bytes)."
            else:
                message = (
                    f"Closest possible size generated. Could not reach the exact "
                    f"{target:,} byte size."
                )
                warnings.append(f"Exact-size padding not applied ({outcome.value}).")
        else:
            message = f"PDF compressed under the requested size ({target:,} bytes)."
            exact = step.path.stat().st_size == target

        output = step.path.read_bytes()
        return CompressionResult(
            output=output,
            backend_used=step.kind,
            exact_target_met=exact,
            warning=" ".join(warnings) or None,
            message=message,
            input_size=len(request.document),
            target_bytes=target,
            quality=step.quality,
            candidates_tried=step.tried,
            backend_name=step.backend,
        )


def compress_document(
    document: bytes,
    quality_tier=QualityTier.MEDIUM,
    target_bytes: Optional[int] = None,
    exact_size: bool = True,
    deadline: Optional[float] = None,
    provider: Optional[CapabilityProvider] = None,
) -> CompressionResult:
    """Compress PDF bytes with a one-off orchestrator."""
    request = CompressionRequest(
        document=document,
        quality_tier=quality_tier,
        target_bytes=target_bytes,
        exact_size=exact_size,
        deadline=deadline,
    )
    return CompressionOrchestrator(provider=provider).run(request)
