"""
Bitrate prober.

Derives a source's playback rate (bytes per second) from the bitrate the
external utility reports. Probing must never block playback startup: every
failure is logged and answered with the configured fallback rate.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from radiocast.streaming.errors import ProbeFailed
from radiocast.streaming.sox import MixingUtility

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_BITRATE = 128000
DEFAULT_BITS_PER_BYTE = 8

_BITRATE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([kKmM]?)$")
_MULTIPLIERS = {"": 1, "k": 1000, "m": 1000000}


def parse_bitrate(text: str) -> int:
    """
    Parse a bitrate string as printed by the utility into bits per second.

    Examples:
        "128k" -> 128000
        "1.41M" -> 1410000
        "96000" -> 96000

    Raises:
        ProbeFailed: If the text is not a positive bitrate.
    """
    match = _BITRATE_RE.match(text.strip())
    if match is None:
        raise ProbeFailed(f"Unrecognized bitrate output: {text.strip()!r}")

    value, suffix = match.groups()
    bitrate = int(float(value) * _MULTIPLIERS[suffix.lower()])
    if bitrate <= 0:
        raise ProbeFailed(f"Bitrate must be positive: {text.strip()!r}")
    return bitrate


class BitrateProber:
    """Resolves playback rates through the utility's info mode."""

    def __init__(
        self,
        utility: MixingUtility,
        *,
        fallback_bitrate: int = DEFAULT_FALLBACK_BITRATE,
        bits_per_byte: int = DEFAULT_BITS_PER_BYTE,
    ) -> None:
        if bits_per_byte <= 0:
            raise ValueError("bits_per_byte must be positive")
        self.utility = utility
        self.fallback_bitrate = fallback_bitrate
        self.bits_per_byte = bits_per_byte

    @property
    def fallback_rate(self) -> int:
        """The rate (bytes/second) used whenever probing fails."""
        return self.fallback_bitrate // self.bits_per_byte

    async def probe(self, path: Path) -> int:
        """
        Return the playback rate of ``path`` in bytes per second.

        Never raises for utility failures; falls back instead.
        """
        try:
            raw = await self.utility.query_bitrate(path)
            bitrate = parse_bitrate(raw)
            if bitrate < self.bits_per_byte:
                raise ProbeFailed(f"Bitrate too low to stream: {bitrate} bit/s")
        except (ProbeFailed, OSError, TimeoutError) as e:
            logger.error(
                "Bitrate probe failed for %s, using fallback %d bit/s: %s",
                path.name,
                self.fallback_bitrate,
                e,
            )
            return self.fallback_rate

        rate = bitrate // self.bits_per_byte
        logger.info("Probed %s: %d bit/s -> %d bytes/s", path.name, bitrate, rate)
        return rate
