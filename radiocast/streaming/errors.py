"""
Error types for the Radiocast streaming engine.

Only some of these ever reach a caller:
    SourceNotFound, EffectNotFound, PipelineStateError, MixerError

The others are recovered inside the engine and only show up in the logs:
    ProbeFailed (fallback bitrate is used instead)
    PipeFailure (one broken pipe never aborts its sibling)
    ListenerWriteFailure (the listener is evicted)
"""

from __future__ import annotations


class RadiocastError(Exception):
    """Base class for all Radiocast errors."""


class SourceNotFound(RadiocastError, LookupError):
    """The requested audio source does not exist in the audio directory."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Audio source not found: {name}")
        self.name = name


class EffectNotFound(RadiocastError, LookupError):
    """No effect file matches the requested effect name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Effect not found: {name!r}")
        self.name = name


class ProbeFailed(RadiocastError):
    """The bitrate of a source could not be determined."""


class MixerError(RadiocastError):
    """The external mixing utility could not be started."""


class PipeFailure(RadiocastError):
    """A data pipe between two pipeline stages broke."""


class ListenerWriteFailure(RadiocastError):
    """A chunk could not be handed to a listener channel."""


class PipelineStateError(RadiocastError):
    """An operation was requested in a pipeline state that does not allow it."""
