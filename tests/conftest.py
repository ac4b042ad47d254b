"""
Shared fixtures and fakes for the Radiocast test suite.

FakeUtility stands in for sox: bitrate queries answer from a canned value
and mixing returns an in-memory upstream, so the engine can be tested
without any subprocess.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from radiocast.config import StationConfig
from radiocast.streaming.errors import MixerError, PipeFailure
from radiocast.streaming.sox import MixVolumes


class FakeUpstream:
    """In-memory upstream. With hold_open it never ends until closed."""

    def __init__(self, data: bytes = b"", *, hold_open: bool = False) -> None:
        self._data = bytearray(data)
        self._hold_open = hold_open
        self._closed_event = asyncio.Event()
        self.closed = False
        self.bytes_read = 0

    async def read(self, size: int) -> bytes:
        if self.closed:
            return b""
        if not self._data and self._hold_open:
            await self._closed_event.wait()
            return b""
        await asyncio.sleep(0)
        chunk = bytes(self._data[:size])
        del self._data[:size]
        self.bytes_read += len(chunk)
        return chunk

    async def aclose(self) -> None:
        self.closed = True
        self._closed_event.set()


class FakeMixedUpstream(FakeUpstream):
    """Mixed output that owns the main source, like the real MixedUpstream."""

    def __init__(self, main, data: bytes, *, hold_open: bool = False, break_pipe: bool = False) -> None:
        super().__init__(data, hold_open=hold_open)
        self.main = main
        self.break_pipe = break_pipe

    async def read(self, size: int) -> bytes:
        chunk = await super().read(size)
        if not chunk and self.break_pipe and not self.closed:
            raise PipeFailure("Mixer stdout broke")
        return chunk

    async def aclose(self) -> None:
        await super().aclose()
        await self.main.aclose()


class FakeUtility:
    """MixingUtility double recording every call."""

    def __init__(
        self,
        bitrate: str | Exception = "3.2k",
        *,
        mixed: bytes = b"",
        hold_open: bool = False,
        fail_mix: bool = False,
        break_pipe: bool = False,
        mix_error: BaseException | None = None,
    ) -> None:
        self.bitrate = bitrate
        self.mixed = mixed
        self.hold_open = hold_open
        self.fail_mix = fail_mix
        self.break_pipe = break_pipe
        self.mix_error = mix_error
        self.probed: list[Path] = []
        self.mix_calls: list[tuple[object, Path, MixVolumes]] = []
        self.upstreams: list[FakeMixedUpstream] = []

    async def query_bitrate(self, path: Path) -> str:
        self.probed.append(path)
        if isinstance(self.bitrate, Exception):
            raise self.bitrate
        return self.bitrate

    async def mix(self, main, effect_path: Path, volumes: MixVolumes) -> FakeMixedUpstream:
        self.mix_calls.append((main, effect_path, volumes))
        await asyncio.sleep(0)
        if self.fail_mix:
            raise MixerError("sox: not installed")
        if self.mix_error is not None:
            raise self.mix_error
        upstream = FakeMixedUpstream(main, self.mixed, hold_open=self.hold_open, break_pipe=self.break_pipe)
        self.upstreams.append(upstream)
        return upstream


@pytest.fixture
def station_dirs(tmp_path: Path) -> dict[str, Path]:
    """Audio, effects and public directories with a few assets."""
    songs = tmp_path / "songs"
    fx = tmp_path / "fx"
    public = tmp_path / "public"
    for directory in (songs, fx, public / "home", public / "controller"):
        directory.mkdir(parents=True)

    (songs / "short.mp3").write_bytes(b"AAAABBBBCCCC")
    (songs / "long.mp3").write_bytes(bytes(range(256)) * 16)
    (fx / "applause_clap_v2.wav").write_bytes(b"CLAP")
    (fx / "boo.mp3").write_bytes(b"BOO")
    (public / "home" / "index.html").write_text("<h1>home</h1>")
    (public / "controller" / "index.html").write_text("<h1>controller</h1>")
    (public / "styles.css").write_text("body {}")
    (tmp_path / "secret.txt").write_text("secret")

    return {"root": tmp_path, "songs": songs, "fx": fx, "public": public}


@pytest.fixture
def station_config(station_dirs: dict[str, Path]) -> StationConfig:
    """Config with a fast pacer: 3.2k -> 400 bytes/s, 4-byte chunks every 10ms."""
    return StationConfig(
        audio_directory=station_dirs["songs"],
        fx_directory=station_dirs["fx"],
        public_directory=station_dirs["public"],
        default_source="short.mp3",
        pacing_interval=0.01,
        listener_buffer_chunks=10000,
    )


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll ``predicate`` until it holds or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.005)
