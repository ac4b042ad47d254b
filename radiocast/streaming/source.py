"""
Audio source reader.

Opens a local audio asset as a sequential byte producer for the pacer (or
for the mixer's stdin while an effect is playing).

Reads are plain blocking file reads of at most one pacing chunk. Local files
answer these immediately, so a read never leaves the event loop suspended
half-way, and the reader can be closed at any point between two reads.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO

from radiocast.streaming.errors import SourceNotFound

logger = logging.getLogger(__name__)


def resolve_source(directory: Path, filename: str) -> Path:
    """
    Resolve a source filename inside the audio directory.

    Args:
        directory: Directory holding the playable sources.
        filename: Relative filename of the source (e.g., "conversation.mp3").

    Returns:
        Absolute path of the source file.

    Raises:
        SourceNotFound: If the file does not exist, is not a regular file,
                        or lies outside ``directory``.
    """
    root = directory.resolve()
    candidate = (root / filename).resolve()

    if not candidate.is_relative_to(root) or not candidate.is_file():
        raise SourceNotFound(filename)

    return candidate


class AudioSourceReader:
    """Sequential byte producer over a local audio file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.bytes_read = 0
        self._file: BinaryIO | None = path.open("rb")
        logger.debug("Opened audio source %s", path.name)

    @classmethod
    def open(cls, directory: Path, filename: str) -> AudioSourceReader:
        """Resolve ``filename`` inside ``directory`` and open it."""
        return cls(resolve_source(directory, filename))

    @property
    def closed(self) -> bool:
        return self._file is None

    async def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; returns b"" at end of file or after close."""
        if self._file is None:
            return b""
        data = self._file.read(size)
        self.bytes_read += len(data)
        return data

    async def aclose(self) -> None:
        if self._file is None:
            return
        self._file.close()
        self._file = None
        logger.debug("Closed audio source %s after %d bytes", self.path.name, self.bytes_read)

    def __repr__(self) -> str:
        return f"AudioSourceReader({self.path.name!r}, bytes_read={self.bytes_read})"
