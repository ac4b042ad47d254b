"""
Streaming engine for Radiocast.

This package owns the currently playing source, paces it to real-time
speed, fans it out to every connected listener and re-routes it through the
external mixer when an effect is played.

Components:
    BytePacer: Releases bytes at the source's playback rate.
    AudioSourceReader: Sequential reader over a local audio file.
    BitrateProber: Resolves playback rates with a fallback.
    SoxUtility: Adapter for the external audio utility.
    ListenerRegistry: Connected listener channels.
    Broadcaster: Fan-out sink.
    EffectLibrary: Effect lookup by name.
    StationSession: Pipeline state machine (start/stop/inject).
"""

from radiocast.streaming.broadcaster import Broadcaster
from radiocast.streaming.effects import EffectLibrary
from radiocast.streaming.errors import (
    EffectNotFound,
    ListenerWriteFailure,
    MixerError,
    PipeFailure,
    PipelineStateError,
    ProbeFailed,
    RadiocastError,
    SourceNotFound,
)
from radiocast.streaming.listeners import ListenerChannel, ListenerRegistry
from radiocast.streaming.pacer import BytePacer, Upstream
from radiocast.streaming.probe import BitrateProber, parse_bitrate
from radiocast.streaming.session import PipelineState, StationSession
from radiocast.streaming.sox import MixingUtility, MixVolumes, SoxUtility
from radiocast.streaming.source import AudioSourceReader, resolve_source

__all__ = [
    "AudioSourceReader",
    "BitrateProber",
    "Broadcaster",
    "BytePacer",
    "EffectLibrary",
    "EffectNotFound",
    "ListenerChannel",
    "ListenerRegistry",
    "ListenerWriteFailure",
    "MixerError",
    "MixingUtility",
    "MixVolumes",
    "PipeFailure",
    "PipelineState",
    "PipelineStateError",
    "ProbeFailed",
    "RadiocastError",
    "SourceNotFound",
    "SoxUtility",
    "StationSession",
    "Upstream",
    "parse_bitrate",
    "resolve_source",
]
