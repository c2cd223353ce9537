"""
search.py - Resolution ladder search for a byte budget.

Candidates run one at a time, highest fidelity first. The first candidate
that fits the budget is accepted: anything later on the ladder can only
lose quality. When none fits, the smallest one is returned instead.

At most two candidate files exist at any moment: the best so far and the
one being produced.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .backends import CompressionBackend
from .config import EngineConfig
from .errors import BackendExecutionFailed

logger = logging.getLogger(__name__)


@dataclass
class CandidateAttempt:
    """One backend invocation and the file it produced."""
    quality: int
    size: int
    path: Path

    def discard(self):
        """Delete the artifact; safe to call twice."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


@dataclass
class SearchOutcome:
    """Accepted (or closest) candidate and how the search ended."""
    attempt: CandidateAttempt
    met: bool
    tried: int
    failed: int = 0

    @property
    def size(self) -> int:
        return self.attempt.size


def _remaining(deadline: Optional[float]) -> Optional[float]:
    if deadline is None:
        return None
    return deadline - time.monotonic()


def find_best_for_target(
    input_path: Path,
    target_bytes: int,
    backend: CompressionBackend,
    workdir: Path,
    ladder: Optional[Sequence[int]] = None,
    deadline: Optional[float] = None,
) -> SearchOutcome:
    """
    Search the ladder for the highest-fidelity output within target_bytes.

    Args:
        input_path: Document to compress
        target_bytes: Byte budget
        backend: Strategy used for every candidate
        workdir: Private directory for candidate files
        ladder: Qualities to try (default: backend.ladder(EngineConfig()))
        deadline: time.monotonic() value after which attempts fail

    Returns:
        SearchOutcome; its attempt's file is owned by the caller

    Raises:
        BackendExecutionFailed: Every candidate failed
        DocumentUnreadable: The backend cannot parse the input
    """
    if target_bytes <= 0:
        raise ValueError("target_bytes must be positive")

    if ladder is None:
        ladder = backend.ladder(EngineConfig())
    if not ladder:
        raise ValueError("ladder must not be empty")

    workdir = Path(workdir)
    best: Optional[CandidateAttempt] = None
    tried = 0
    failed = 0
    last_error: Optional[BackendExecutionFailed] = None

    for quality in ladder:
        tried += 1
        out_path = workdir / f"candidate-{tried:02d}-{backend.name}-r{quality}.pdf"

        try:
            backend.compress(input_path, out_path, quality, timeout=_remaining(deadline))
        except BackendExecutionFailed as e:
            failed += 1
            last_error = e
            logger.warning(f"Candidate {quality} dpi failed: {e}")
            continue
        except Exception:
            if best is not None:
                best.discard()
            raise

        attempt = CandidateAttempt(quality=quality, size=out_path.stat().st_size, path=out_path)
        fits = attempt.size <= target_bytes
        logger.info(
            f"Candidate {quality} dpi: {attempt.size:,} bytes "
            f"({'fits' if fits else 'over'} {target_bytes:,})"
        )

        if best is None or attempt.size < best.size:
            if best is not None:
                best.discard()
            best = attempt
        else:
            attempt.discard()

        if fits:
            # best is attempt here: every earlier candidate was over budget
            return SearchOutcome(attempt=best, met=True, tried=tried, failed=failed)

    if best is None:
        raise BackendExecutionFailed(
            f"All {tried} candidates failed ({backend.name}): {last_error}",
            backend=backend.name,
        )

    logger.info(
        f"Target {target_bytes:,} bytes not reached; closest is "
        f"{best.size:,} bytes at {best.quality} dpi"
    )

    return SearchOutcome(attempt=best, met=False, tried=tried, failed=failed)
