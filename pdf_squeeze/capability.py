"""
capability.py - Ghostscript detection.

Probes the candidate executables once, in order, and hands out an immutable
BackendDescriptor. An unavailable descriptor is a normal outcome: callers
fall back to the structural optimizer.
"""

import logging
import subprocess
import threading
from dataclasses import dataclass
from typing import Optional

from .config import EngineConfig
from .errors import BackendUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendDescriptor:
    """Result of probing for the external compressor."""
    name: str
    command: Optional[str] = None
    version: str = ""
    available: bool = False

    @classmethod
    def unavailable(cls) -> "BackendDescriptor":
        return cls(name="ghostscript")


def probe_command(cmd: str, timeout: float) -> Optional[str]:
    """
    Run "<cmd> --version" and return the version text if it exits cleanly.

    Returns:
        Version string, or None when the command is missing or fails
    """
    try:
        result = subprocess.run(
            [cmd, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (subprocess.SubprocessError, OSError) as e:
        logger.debug(f"Probe {cmd}: {e}")
        return None

    if result.returncode != 0:
        logger.debug(f"Probe {cmd}: exit status {result.returncode}")
        return None

    return (result.stdout or "").strip()


class CapabilityProvider:
    """
    Detects which compression backend is usable.

    The first successful detection is cached for the lifetime of the
    provider; invalidate() forces the next detect() to probe again.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig.from_env()
        self._cached: Optional[BackendDescriptor] = None
        self._lock = threading.Lock()

    def detect(self, refresh: bool = False) -> BackendDescriptor:
        """Return the cached descriptor, probing on first use or on refresh."""
        with self._lock:
            if self._cached is None or refresh:
                self._cached = self._probe()
            return self._cached

    def require(self) -> BackendDescriptor:
        """Like detect(), but raise BackendUnavailable when nothing was found."""
        descriptor = self.detect()
        if not descriptor.available:
            raise BackendUnavailable(
                f"Ghostscript not found (tried {', '.join(self.config.probe_order)})"
            )
        return descriptor

    def invalidate(self):
        """Drop the cached descriptor."""
        with self._lock:
            self._cached = None

    def _probe(self) -> BackendDescriptor:
        for cmd in self.config.probe_order:
            version = probe_command(cmd, self.config.probe_timeout)
            if version is not None:
                logger.info(f"Using Ghostscript: {cmd} {version}")
                return BackendDescriptor(
                    name="ghostscript",
                    command=cmd,
                    version=version,
                    available=True,
                )

        logger.warning(
            "Ghostscript not found; falling back to structural optimization"
        )
        return BackendDescriptor.unavailable()


_default_provider: Optional[CapabilityProvider] = None
_default_lock = threading.Lock()


def default_provider() -> CapabilityProvider:
    """Process-wide provider shared by callers that do not inject one."""
    global _default_provider
    with _default_lock:
        if _default_provider is None:
            _default_provider = CapabilityProvider()
        return _default_provider


def detect_backend(refresh: bool = False) -> BackendDescriptor:
    """Detect Ghostscript using the process-wide provider."""
    return default_provider().detect(refresh=refresh)
