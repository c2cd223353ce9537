"""
config.py - Tunable engine settings.

The resolution ladder, tier defaults and Ghostscript probe list are
empirical values; they live here so they can be changed without touching
the search or orchestration code.

Environment overrides (read by EngineConfig.from_env):
    GS_BIN                  Ghostscript executable, probed before the defaults
    PDFSQUEEZE_GS_TIMEOUT   Seconds allowed per Ghostscript call
    PDFSQUEEZE_LADDER       Comma-separated resolutions, e.g. "200,150,100,72"
"""

import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple


class QualityTier(str, Enum):
    """Compression aggressiveness used when no byte budget is given."""
    LOW = "low"        # light compression, print grade
    MEDIUM = "medium"
    HIGH = "high"      # strongest compression, screen grade


# Highest fidelity first. The search stops at the first entry that fits.
QUALITY_LADDER = (220, 180, 150, 130, 110, 95, 80, 70, 60, 50, 40, 32, 24)

# Default resolution per tier (one Ghostscript call, no search)
TIER_RESOLUTIONS = {
    QualityTier.LOW: 300,
    QualityTier.MEDIUM: 150,
    QualityTier.HIGH: 72,
}

# Probed in order after GS_BIN
GS_CANDIDATES = ("gswin64c", "gswin32c", "gs")

PROBE_TIMEOUT = 5       # seconds for "gs --version"
GS_TIMEOUT = 120        # seconds per compression call

MAX_TARGET_BYTES = 200 * 1000 * 1000  # 200 MB

TEMP_PREFIX = "pdfsqueeze-"

# Decimal units, same as the web form
_UNITS = {
    "": 1,
    "B": 1,
    "KB": 1000,
    "MB": 1000 * 1000,
    "GB": 1000 * 1000 * 1000,
}
_SIZE_RE = re.compile(r"^\s*([0-9]*\.?[0-9]+)\s*([KMG]?B?)\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class EngineConfig:
    """Settings shared by the capability probe, backends and search."""
    quality_ladder: Tuple[int, ...] = QUALITY_LADDER
    tier_resolutions: Dict[QualityTier, int] = field(
        default_factory=lambda: dict(TIER_RESOLUTIONS)
    )
    gs_candidates: Tuple[str, ...] = GS_CANDIDATES
    gs_override: Optional[str] = None
    probe_timeout: float = PROBE_TIMEOUT
    gs_timeout: float = GS_TIMEOUT
    max_target_bytes: int = MAX_TARGET_BYTES
    temp_prefix: str = TEMP_PREFIX

    def __post_init__(self):
        if not self.quality_ladder:
            raise ValueError("quality_ladder must not be empty")
        # Search correctness depends on descending order
        ladder = tuple(sorted({int(q) for q in self.quality_ladder}, reverse=True))
        object.__setattr__(self, "quality_ladder", ladder)

    @property
    def probe_order(self) -> Tuple[str, ...]:
        """Executables to probe, override first, duplicates removed."""
        order = []
        for cmd in (self.gs_override, *self.gs_candidates):
            if cmd and cmd not in order:
                order.append(cmd)
        return tuple(order)

    def resolution_for(self, tier) -> int:
        """Default resolution for a quality tier."""
        return self.tier_resolutions[QualityTier(tier)]

    @classmethod
    def from_env(cls, environ=None) -> "EngineConfig":
        env = os.environ if environ is None else environ
        kwargs = {}

        if env.get("GS_BIN"):
            kwargs["gs_override"] = env["GS_BIN"]

        if env.get("PDFSQUEEZE_GS_TIMEOUT"):
            kwargs["gs_timeout"] = float(env["PDFSQUEEZE_GS_TIMEOUT"])

        if env.get("PDFSQUEEZE_LADDER"):
            kwargs["quality_ladder"] = tuple(
                int(part) for part in env["PDFSQUEEZE_LADDER"].split(",") if part.strip()
            )

        return cls(**kwargs)


def parse_target_bytes(text) -> int:
    """
    Parse a size such as "100KB", "2.5 MB" or "150000" into bytes.

    Args:
        text: Size string or number (plain numbers are bytes)

    Returns:
        Positive byte count

    Raises:
        ValueError: Unparseable, non-positive, or above MAX_TARGET_BYTES
    """
    if isinstance(text, (int, float)):
        value, unit = float(text), ""
    else:
        match = _SIZE_RE.match(str(text))
        if not match:
            raise ValueError(f"Invalid size: {text!r}")
        value, unit = float(match.group(1)), match.group(2).upper()
        if unit and not unit.endswith("B"):
            unit += "B"

    target = int(round(value * _UNITS[unit]))
    if target <= 0:
        raise ValueError(f"Size must be positive: {text!r}")
    if target > MAX_TARGET_BYTES:
        raise ValueError(f"Target size should be {format_bytes(MAX_TARGET_BYTES)} or less")
    return target


def format_bytes(size: int, decimals: int = 2) -> str:
    """Human-readable size with decimal units."""
    if size == 0:
        return "0 B"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if abs(value) < 1000 or unit == "GB":
            break
        value /= 1000
    if unit == "B":
        return f"{int(value)} B"
    return f"{value:.{decimals}f} {unit}"
