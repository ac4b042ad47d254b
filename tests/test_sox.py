"""
Tests for the sox adapter.

Tests cover:
- Command building for info and mix mode
- Binary resolution
- Bitrate queries (mocked subprocess)
- Subprocess termination with escalation
- MixedUpstream lifecycle against a real pass-through process (cat)
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import FakeUpstream

from radiocast.streaming.errors import MixerError, PipeFailure, ProbeFailed
from radiocast.streaming.sox import (
    MixedUpstream,
    MixVolumes,
    SoxUtility,
    cleanup_processes,
    resolve_binary,
    terminate_subprocess_safely,
)

MISSING_SOX = "/nonexistent/bin/sox"

requires_cat = pytest.mark.skipif(shutil.which("cat") is None, reason="cat not available")
requires_sh = pytest.mark.skipif(shutil.which("sh") is None, reason="sh not available")


def mock_process(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> MagicMock:
    proc = MagicMock()
    proc.pid = 4242
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    return proc


class TestCommandBuilding:
    """Tests for sox command lines."""

    def test_info_command(self) -> None:
        """Info mode asks for the bitrate only."""
        utility = SoxUtility(MISSING_SOX)
        assert utility.build_info_command(Path("/audio/song.mp3")) == [
            MISSING_SOX,
            "--i",
            "-B",
            "/audio/song.mp3",
        ]

    def test_mix_command(self) -> None:
        """Mix mode reads stdin and the effect, writes stereo mp3 to stdout."""
        utility = SoxUtility(MISSING_SOX)
        cmd = utility.build_mix_command(Path("/fx/clap.wav"), MixVolumes())

        assert cmd == [
            MISSING_SOX,
            "-t", "mp3", "-v", "0.99", "-m", "-",
            "-t", "mp3", "-v", "0.1", "/fx/clap.wav",
            "-t", "mp3", "-c", "2", "-",
        ]  # fmt: skip

    def test_mix_command_uses_settings(self) -> None:
        """Media type, channels and volumes come from the settings."""
        utility = SoxUtility(MISSING_SOX, media_type="ogg", channels=1)
        cmd = utility.build_mix_command(Path("fx.ogg"), MixVolumes(main=0.5, effect=0.8))

        assert cmd.count("ogg") == 3
        assert cmd[cmd.index("-c") + 1] == "1"
        assert "0.5" in cmd
        assert "0.8" in cmd


class TestResolveBinary:
    """Tests for resolve_binary()."""

    def test_missing_absolute_path(self) -> None:
        assert resolve_binary(MISSING_SOX) is None

    def test_existing_absolute_path(self, tmp_path: Path) -> None:
        binary = tmp_path / "sox"
        binary.write_text("")
        assert resolve_binary(str(binary)) == binary

    def test_unknown_name(self) -> None:
        assert resolve_binary("definitely-not-a-real-binary-xyz") is None

    @requires_cat
    def test_found_on_path(self) -> None:
        resolved = resolve_binary("cat")
        assert resolved is not None
        assert resolved.name == "cat"


class TestQueryBitrate:
    """Tests for SoxUtility.query_bitrate()."""

    async def test_returns_stripped_stdout(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """stdout is returned as text."""
        proc = mock_process(stdout=b"128k\n")
        spawn = AsyncMock(return_value=proc)
        monkeypatch.setattr(asyncio, "create_subprocess_exec", spawn)

        result = await SoxUtility(MISSING_SOX).query_bitrate(Path("/audio/song.mp3"))

        assert result == "128k"
        assert spawn.call_args.args == (MISSING_SOX, "--i", "-B", "/audio/song.mp3")

    async def test_stderr_output_fails(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Any text on stderr is a probe failure, even with output on stdout."""
        proc = mock_process(stdout=b"128k", stderr=b"sox FAIL formats: can't open input file")
        monkeypatch.setattr(asyncio, "create_subprocess_exec", AsyncMock(return_value=proc))

        with pytest.raises(ProbeFailed, match="can't open input file"):
            await SoxUtility(MISSING_SOX).query_bitrate(Path("song.mp3"))

    async def test_non_zero_exit_fails(self, monkeypatch: pytest.MonkeyPatch) -> None:
        proc = mock_process(returncode=2)
        monkeypatch.setattr(asyncio, "create_subprocess_exec", AsyncMock(return_value=proc))

        with pytest.raises(ProbeFailed, match="code 2"):
            await SoxUtility(MISSING_SOX).query_bitrate(Path("song.mp3"))

    async def test_spawn_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A missing binary is reported as ProbeFailed."""
        spawn = AsyncMock(side_effect=FileNotFoundError("sox"))
        monkeypatch.setattr(asyncio, "create_subprocess_exec", spawn)

        with pytest.raises(ProbeFailed):
            await SoxUtility(MISSING_SOX).query_bitrate(Path("song.mp3"))

    async def test_timeout_terminates_process(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A hanging query is terminated and reported as ProbeFailed."""
        proc = MagicMock()
        proc.returncode = None

        async def hang():
            await asyncio.sleep(10)

        async def mock_wait():
            proc.returncode = -15

        proc.communicate = hang
        proc.wait = mock_wait
        monkeypatch.setattr(asyncio, "create_subprocess_exec", AsyncMock(return_value=proc))

        with pytest.raises(ProbeFailed, match="did not answer"):
            await SoxUtility(MISSING_SOX, timeout=0.01).query_bitrate(Path("song.mp3"))

        proc.terminate.assert_called_once()


class TestMix:
    """Tests for SoxUtility.mix()."""

    async def test_spawn_failure_raises_mixer_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A mixer that cannot be started raises MixerError and leaves the source alone."""
        monkeypatch.setattr(asyncio, "create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError("sox")))
        main = FakeUpstream(b"AAAA")

        with pytest.raises(MixerError):
            await SoxUtility(MISSING_SOX).mix(main, Path("clap.wav"), MixVolumes())

        assert main.closed is False
        assert main.bytes_read == 0

    @requires_cat
    async def test_returns_mixed_upstream(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """The returned upstream wraps the spawned process."""
        monkeypatch.setattr(SoxUtility, "build_mix_command", lambda self, effect, volumes: ["cat"])
        main = FakeUpstream(b"live audio")

        upstream = await SoxUtility().mix(main, Path("clap.wav"), MixVolumes())
        received = bytearray()
        try:
            assert isinstance(upstream, MixedUpstream)
            while data := await upstream.read(100):
                received.extend(data)
        finally:
            await upstream.aclose()

        assert bytes(received) == b"live audio"


class TestTerminateSubprocessSafely:
    """Stopping a sox process that has not exited on its own."""

    async def test_already_dead_process(self) -> None:
        """A mixer that already exited is left alone."""
        mock_proc = MagicMock()
        mock_proc.returncode = 0

        await terminate_subprocess_safely(mock_proc)

        mock_proc.terminate.assert_not_called()
        mock_proc.kill.assert_not_called()

    async def test_graceful_termination(self) -> None:
        """Closes stdin and terminates if the process responds to SIGTERM."""
        mock_proc = MagicMock()
        mock_proc.returncode = None

        async def mock_wait():
            mock_proc.returncode = 0

        mock_proc.wait = mock_wait

        await terminate_subprocess_safely(mock_proc, timeout=0.1)

        mock_proc.stdin.close.assert_called_once()
        mock_proc.terminate.assert_called_once()
        mock_proc.kill.assert_not_called()

    async def test_escalates_to_sigkill(self) -> None:
        """A mixer ignoring SIGTERM is killed."""
        mock_proc = MagicMock()
        mock_proc.returncode = None
        waits = 0

        async def slow_then_die():
            nonlocal waits
            waits += 1
            if waits == 1:
                await asyncio.sleep(1.0)
            else:
                mock_proc.returncode = -9

        mock_proc.wait = slow_then_die

        await terminate_subprocess_safely(mock_proc, timeout=0.01, kill_timeout=0.1)

        mock_proc.terminate.assert_called_once()
        mock_proc.kill.assert_called_once()


class TestCleanupProcesses:
    """Tearing down mixers and their feed tasks."""

    async def test_cleanup_empty_lists(self) -> None:
        await cleanup_processes([], [])

    async def test_cancels_pipe_tasks(self) -> None:
        """Feed tasks are cancelled before the mixers are stopped."""
        task = asyncio.create_task(asyncio.sleep(10))

        await cleanup_processes([], [task])

        assert task.cancelled()

    async def test_terminates_all_processes(self) -> None:
        procs = []
        for _ in range(3):
            mock_proc = MagicMock()
            mock_proc.returncode = None
            mock_proc.wait = AsyncMock(side_effect=lambda p=mock_proc: setattr(p, "returncode", 0))
            procs.append(mock_proc)

        await cleanup_processes(procs)

        for proc in procs:
            proc.terminate.assert_called_once()

    async def test_errors_are_not_raised(self) -> None:
        """A process that fails to terminate does not stop the cleanup of the others."""
        broken = MagicMock()
        broken.returncode = None
        broken.wait = AsyncMock(side_effect=RuntimeError("boom"))

        healthy = MagicMock()
        healthy.returncode = None
        healthy.wait = AsyncMock(side_effect=lambda: setattr(healthy, "returncode", 0))

        await cleanup_processes([broken, healthy])

        healthy.terminate.assert_called_once()


@requires_cat
class TestMixedUpstream:
    """MixedUpstream against `cat`, which echoes stdin to stdout."""

    async def spawn_cat(self) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            "cat",
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    async def test_feeds_main_and_reads_output(self) -> None:
        """Every byte of the main source comes back out; EOF ends the upstream."""
        main = FakeUpstream(b"x" * 200000)
        upstream = MixedUpstream(await self.spawn_cat(), main)

        received = bytearray()
        while True:
            data = await upstream.read(4096)
            if not data:
                break
            received.extend(data)
        await upstream.aclose()

        assert bytes(received) == b"x" * 200000
        assert upstream.bytes_fed == 200000
        assert upstream.returncode == 0
        assert main.closed is True

    async def test_close_terminates_running_mixer(self) -> None:
        """Closing mid-stream stops the feed task and the process."""
        main = FakeUpstream(b"", hold_open=True)
        upstream = MixedUpstream(await self.spawn_cat(), main)
        await asyncio.sleep(0.05)
        assert upstream.returncode is None

        await asyncio.wait_for(upstream.aclose(), timeout=5.0)

        assert upstream.returncode is not None
        assert main.closed is True
        assert await upstream.read(10) == b""

    async def test_close_is_idempotent(self) -> None:
        upstream = MixedUpstream(await self.spawn_cat(), FakeUpstream(b"abc"))
        await upstream.aclose()
        await upstream.aclose()


class TestMixedUpstreamPipeFailures:
    """The mixer's stdin and stdout break independently."""

    @requires_sh
    async def test_mixer_exiting_early_still_yields_its_output(self) -> None:
        """A mixer that exits without reading stdin breaks the feed, but its output is still read."""
        proc = await asyncio.create_subprocess_exec(
            "sh",
            "-c",
            "echo MIXED; exit 3",
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        main = FakeUpstream(b"x" * 2_000_000)
        upstream = MixedUpstream(proc, main)

        received = bytearray()
        while data := await upstream.read(4096):
            received.extend(data)
        await asyncio.wait_for(upstream.aclose(), timeout=5.0)

        assert bytes(received) == b"MIXED\n"
        assert upstream.returncode == 3
        assert upstream.bytes_fed < 2_000_000
        assert main.closed is True

    async def test_broken_stdout_raises_pipe_failure(self) -> None:
        """A reset on stdout surfaces as PipeFailure; closing still releases the source."""
        proc = MagicMock()
        proc.pid = 4242
        proc.returncode = None
        proc.stdin = None
        proc.stderr = None
        proc.stdout.read = AsyncMock(side_effect=ConnectionResetError("reset by peer"))
        proc.stdout.at_eof = MagicMock(return_value=False)
        proc.wait = AsyncMock(side_effect=lambda: setattr(proc, "returncode", -15))
        main = FakeUpstream(b"abc")
        upstream = MixedUpstream(proc, main)

        with pytest.raises(PipeFailure, match="reset by peer"):
            await upstream.read(10)

        await upstream.aclose()

        proc.terminate.assert_called_once()
        assert main.closed is True
