"""
Effect library: sound effects that can be mixed into the live stream.

Effects are addressed by a loose name. "clap" finds "applause_clap_v2.wav";
the match is a case-insensitive substring test against the file names of the
effects directory, first match in sorted order wins.
"""

from __future__ import annotations

import logging
from pathlib import Path

from radiocast.streaming.errors import EffectNotFound

logger = logging.getLogger(__name__)


class EffectLibrary:
    """Read-only view of the effects directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def names(self) -> list[str]:
        """Sorted file names of all available effects. Hidden files are skipped."""
        if not self.directory.is_dir():
            return []
        return sorted(
            p.name for p in self.directory.iterdir() if p.is_file() and not p.name.startswith(".")
        )

    def resolve(self, name: str) -> Path:
        """
        Resolve an effect name to its file.

        Args:
            name: Effect name or fragment of it (e.g., "clap").

        Returns:
            Path of the first matching effect file.

        Raises:
            EffectNotFound: If the name is blank or nothing matches.
        """
        needle = name.strip().lower()
        if not needle:
            raise EffectNotFound(name)

        for filename in self.names():
            if needle in filename.lower():
                logger.debug("Effect %r resolved to %s", name, filename)
                return self.directory / filename

        raise EffectNotFound(name)
