"""
Radiocast - a single-station live audio broadcaster.

One source plays continuously and is fanned out, paced to real-time speed,
to every connected listener. The operator can duck the source and mix a
short sound effect into the live stream without interrupting playback.
"""

__version__ = "0.1.0"
__author__ = "Radiocast Contributors"
__license__ = "GPL-2.0"

from radiocast.server import RadioServer

__all__ = ["RadioServer", "__version__"]
