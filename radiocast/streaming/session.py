"""
Station session: the broadcast pipeline and its state machine.

One StationSession owns everything a station needs at runtime:

    reader / mixer output  ->  BytePacer  ->  Broadcaster  ->  listener channels

The pipeline lives in a single slot (self._pipeline). Every transition goes
through _swap(), so there is never more than one upstream feeding a live
pacer:

    IDLE --start()--> DIRECT --inject()--> MIXING --mixed output ends--> DIRECT
      ^                  |                    |
      +-----stop() / source exhausted --------+

Handoff to an effect:
    1. The new pacer and its pump task are attached to the broadcaster first.
       The new pump waits until the old pump has flushed its last bytes, so
       listeners see the old pacer's bytes before any mixed bytes.
    2. The old pacer is terminated; it stops pulling from the source reader,
       which is then handed to the mixer's stdin.
    3. The mixer's stdout becomes the new pacer's upstream. If the mixer
       cannot be started, the same reader is handed to the new pacer instead
       and direct playback continues where it left off.

When the mixed output ends, a fresh direct pipeline restarts from the
current source. A mixed track is not resumed mid-way.

Transitions (start/stop/inject) are serialized with an asyncio.Lock; the
end-of-pipeline handling runs inside the pump task and never awaits before
it has swapped the slot, so it does not need the lock.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from radiocast.config import StationConfig
from radiocast.streaming.broadcaster import Broadcaster
from radiocast.streaming.effects import EffectLibrary
from radiocast.streaming.errors import MixerError, PipeFailure, PipelineStateError, SourceNotFound
from radiocast.streaming.listeners import ListenerChannel, ListenerRegistry
from radiocast.streaming.pacer import BytePacer, Upstream
from radiocast.streaming.probe import BitrateProber
from radiocast.streaming.sox import MixingUtility, MixVolumes
from radiocast.streaming.source import AudioSourceReader, resolve_source

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    """State of the station's pipeline."""

    IDLE = "idle"
    DIRECT = "direct"
    MIXING = "mixing"


@dataclass(eq=False)
class Pipeline:
    """One pacer, the upstream feeding it, and the task pumping it."""

    pacer: BytePacer
    upstream: Upstream
    state: PipelineState
    task: asyncio.Task[None] | None = None
    detached: bool = False
    effect: str | None = None


class PendingUpstream:
    """
    Upstream whose producer is chosen after the pipeline is attached.

    Reads wait until resolve() names the real producer. Closing it before
    that makes every read return b"".
    """

    def __init__(self) -> None:
        self._target: asyncio.Future[Upstream | None] = asyncio.get_running_loop().create_future()

    def resolve(self, upstream: Upstream) -> None:
        if not self._target.done():
            self._target.set_result(upstream)

    async def read(self, size: int) -> bytes:
        target = await self._target
        if target is None:
            return b""
        return await target.read(size)

    async def aclose(self) -> None:
        if not self._target.done():
            self._target.set_result(None)
            return
        target = self._target.result()
        if target is not None:
            await target.aclose()


class StationSession:
    """
    Runtime state of one station.

    Passed explicitly to whatever needs it (web routes, tests); there is no
    module-level session.
    """

    def __init__(
        self,
        config: StationConfig,
        utility: MixingUtility,
        *,
        registry: ListenerRegistry | None = None,
    ) -> None:
        """
        Args:
            config: Station configuration.
            utility: External audio utility used for probing and mixing.
            registry: Optional listener registry (a new one by default).
        """
        self.config = config
        self.utility = utility
        self.registry = registry if registry is not None else ListenerRegistry(config.listener_buffer_chunks)
        self.broadcaster = Broadcaster(self.registry)
        self.prober = BitrateProber(
            utility,
            fallback_bitrate=config.fallback_bitrate,
            bits_per_byte=config.bits_per_byte,
        )
        self.effects = EffectLibrary(config.fx_directory)
        self.volumes = MixVolumes(main=config.main_volume, effect=config.fx_volume)

        self.current_source = config.default_source
        self.rate: int | None = None

        self._pipeline: Pipeline | None = None
        self._lock = asyncio.Lock()
        self._idle = asyncio.Event()
        self._idle.set()
        self._stopping = False

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> PipelineState:
        if self._pipeline is None:
            return PipelineState.IDLE
        return self._pipeline.state

    @property
    def pipeline(self) -> Pipeline | None:
        """The pipeline currently occupying the slot, if any."""
        return self._pipeline

    @property
    def is_streaming(self) -> bool:
        return self._pipeline is not None

    def status(self) -> dict[str, Any]:
        """Snapshot of the session for status endpoints."""
        pipeline = self._pipeline
        return {
            "state": self.state.value,
            "source": self.current_source,
            "rate": self.rate,
            "listeners": len(self.registry),
            "effect": pipeline.effect if pipeline else None,
            "bytes_released": pipeline.pacer.bytes_released if pipeline else 0,
            "chunks_delivered": self.broadcaster.chunks_delivered,
        }

    def _swap(self, pipeline: Pipeline | None) -> Pipeline | None:
        """Replace the pipeline slot. The only place the slot changes."""
        previous, self._pipeline = self._pipeline, pipeline
        if pipeline is None:
            self._idle.set()
        else:
            self._idle.clear()

        logger.info(
            "Pipeline %s -> %s",
            previous.state.value if previous else PipelineState.IDLE.value,
            pipeline.state.value if pipeline else PipelineState.IDLE.value,
        )
        return previous

    def _new_pacer(self) -> BytePacer:
        if self.rate is None:
            raise PipelineStateError("Playback rate is not resolved yet")
        return BytePacer(self.rate, interval=self.config.pacing_interval)

    def _launch(
        self,
        pacer: BytePacer,
        upstream: Upstream,
        state: PipelineState,
        *,
        after: asyncio.Task[None] | None = None,
    ) -> Pipeline:
        """Put a new pipeline in the slot and start pumping it."""
        pipeline = Pipeline(pacer=pacer, upstream=upstream, state=state)
        self._swap(pipeline)
        pipeline.task = asyncio.create_task(self._pump(pipeline, after), name=f"radiocast-{state.value}")
        return pipeline

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def register_listener(self) -> tuple[str, ListenerChannel]:
        return self.registry.register()

    def unregister_listener(self, listener_id: str) -> None:
        channel = self.registry.unregister(listener_id)
        if channel is not None:
            channel.close()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def select_source(self, filename: str) -> Path:
        """
        Choose the source played by the next start().

        Raises:
            SourceNotFound: If the file is not in the audio directory.
        """
        path = resolve_source(self.config.audio_directory, filename)
        self.current_source = filename
        logger.info("Selected source %s", filename)
        return path

    async def start(self) -> None:
        """
        Start streaming the current source.

        Returns once the pipeline is running; it keeps running in the
        background until stop() or until the source is exhausted.

        Raises:
            SourceNotFound: If the current source does not exist.
        """
        async with self._lock:
            if self._pipeline is not None:
                logger.warning("Station already streaming (%s)", self.state.value)
                return

            path = resolve_source(self.config.audio_directory, self.current_source)
            self.rate = await self.prober.probe(path)
            reader = AudioSourceReader(path)
            self._launch(self._new_pacer(), reader, PipelineState.DIRECT)
            logger.info("Streaming %s at %d bytes/s", path.name, self.rate)

    async def stop(self) -> None:
        """
        Stop streaming.

        Buffered bytes are flushed to the listeners, whose channels stay open
        and registered for a later start(). A mixer that is running is
        terminated.
        """
        async with self._lock:
            pipeline = self._pipeline
            if pipeline is None:
                return

            self._stopping = True
            try:
                pipeline.pacer.terminate()
                await pipeline.upstream.aclose()
                if pipeline.task is not None:
                    await asyncio.wait({pipeline.task})
            finally:
                self._stopping = False

            if self._pipeline is pipeline:
                self._swap(None)
            logger.info("Streaming stopped")

    async def inject(self, effect_name: str) -> Path:
        """
        Mix an effect into the live stream.

        Args:
            effect_name: Effect name or fragment (case-insensitive).

        Returns:
            Path of the effect being played.

        Raises:
            EffectNotFound: If no effect matches; the pipeline is untouched.
            PipelineStateError: If the station is not in direct playback.
            MixerError: If the mixer could not be started; direct playback
                        continues.
        """
        effect_path = self.effects.resolve(effect_name)

        async with self._lock:
            previous = self._pipeline
            if previous is None or previous.state is not PipelineState.DIRECT:
                raise PipelineStateError(f"Cannot play an effect while {self.state.value}")

            pending = PendingUpstream()
            pipeline = self._launch(self._new_pacer(), pending, PipelineState.MIXING, after=previous.task)
            pipeline.effect = effect_path.name

            # Release the source reader from the old pacer
            previous.detached = True
            previous.pacer.terminate()

            try:
                mixed = await self.utility.mix(previous.upstream, effect_path, self.volumes)
            except MixerError as e:
                logger.error("Could not play effect %s, resuming direct playback: %s", effect_path.name, e)
                self._resume_direct(pipeline, pending, previous.upstream)
                raise
            except BaseException:
                self._resume_direct(pipeline, pending, previous.upstream)
                raise

            pending.resolve(mixed)
            logger.info("Playing effect %s", effect_path.name)
            return effect_path

    def _resume_direct(self, pipeline: Pipeline, pending: PendingUpstream, reader: Upstream) -> None:
        """Hand the source reader back to the new pacer when no mixer could be attached."""
        pipeline.state = PipelineState.DIRECT
        pipeline.effect = None
        pending.resolve(reader)

    async def wait_idle(self) -> None:
        """Wait until no pipeline is running."""
        await self._idle.wait()

    async def close(self) -> None:
        """Stop streaming and disconnect every listener."""
        await self.stop()
        self.registry.close_all()

    # -------------------------------------------------------------------------
    # Pump
    # -------------------------------------------------------------------------

    async def _pump(self, pipeline: Pipeline, after: asyncio.Task[None] | None) -> None:
        """Move paced bytes from the pipeline's upstream to the broadcaster."""
        try:
            if after is not None:
                await asyncio.wait({after})

            async with contextlib.aclosing(pipeline.pacer.stream(pipeline.upstream)) as chunks:
                await self.broadcaster.consume(chunks)
        except asyncio.CancelledError:
            await pipeline.upstream.aclose()
            raise
        except PipeFailure as e:
            logger.warning("Pipeline (%s) broke: %s", pipeline.state.value, e)
        except Exception as e:
            logger.exception("Pipeline (%s) failed: %s", pipeline.state.value, e)

        await self._on_pipeline_end(pipeline)

    async def _on_pipeline_end(self, pipeline: Pipeline) -> None:
        if pipeline.detached:
            # Its upstream now belongs to the next pipeline
            logger.debug("Detached pipeline flushed after %d bytes", pipeline.pacer.bytes_released)
            return

        if self._pipeline is not pipeline:
            await pipeline.upstream.aclose()
            return

        reader: AudioSourceReader | None = None
        if pipeline.state is PipelineState.MIXING and not self._stopping:
            try:
                reader = AudioSourceReader.open(self.config.audio_directory, self.current_source)
            except SourceNotFound as e:
                logger.error("Cannot resume direct playback after effect: %s", e)

        if reader is not None:
            self._launch(self._new_pacer(), reader, PipelineState.DIRECT)
        else:
            self._swap(None)
            if not self._stopping:
                logger.info("Source %s finished", self.current_source)

        await pipeline.upstream.aclose()
