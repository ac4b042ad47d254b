"""
Adapter for the external audio utility (sox).

The engine never touches codec-level audio. Two things are delegated to sox,
run as a subprocess:

    Info mode:  sox --i -B <file>
        Prints the source's bitrate (e.g. "128k") on stdout, or an error on
        stderr.

    Mix mode:   sox -t mp3 -v 0.99 -m - -t mp3 -v 0.1 <fx> -t mp3 -c 2 -
        Mixes stdin (the live source, ducked) with the effect file and
        writes the combined stream to stdout.

The engine only depends on the MixingUtility protocol, so tests substitute a
fake and only this module binds to the real process.

Subprocess lifecycle:
    Every mix subprocess is owned by the MixedUpstream that wraps it. Closing
    that upstream cancels its pipe tasks and terminates the process with
    escalation (SIGTERM, then SIGKILL). Stopping the session while an effect
    is playing therefore never leaks a sox process.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from radiocast.streaming.errors import MixerError, PipeFailure, ProbeFailed
from radiocast.streaming.pacer import Upstream

logger = logging.getLogger(__name__)

THIRD_PARTY_BIN = Path(__file__).parent.parent.parent / "third_party" / "bin"

# Buffer size for feeding the mixer's stdin (64KB chunks)
FEED_BUFFER_SIZE = 65536

# How long to wait for a graceful subprocess termination before SIGKILL
TERMINATE_TIMEOUT_SECONDS = 2.0

# How long to wait for SIGKILL to take effect
KILL_TIMEOUT_SECONDS = 1.0


@dataclass(frozen=True)
class MixVolumes:
    """Volume factors applied by the mixer to each input."""

    main: float = 0.99
    effect: float = 0.1


class MixingUtility(Protocol):
    """Capability interface of the external audio utility."""

    async def query_bitrate(self, path: Path) -> str:
        """Return the raw bitrate string reported for ``path`` (e.g. "128k")."""
        ...

    async def mix(self, main: Upstream, effect_path: Path, volumes: MixVolumes) -> Upstream:
        """Start mixing ``main`` with ``effect_path`` and return the combined stream."""
        ...


def resolve_binary(name: str) -> Path | None:
    """
    Resolve a binary name to its full path.

    Searches in order:
    1. third_party/bin/ directory
    2. System PATH

    Args:
        name: Binary name (e.g., "sox") or an explicit path.

    Returns:
        Path to the binary, or None if not found.
    """
    explicit = Path(name)
    if explicit.is_absolute():
        return explicit if explicit.exists() else None

    for ext in ["", ".exe"]:
        bin_path = THIRD_PARTY_BIN / f"{name}{ext}"
        if bin_path.exists():
            return bin_path

    system_path = shutil.which(name)
    if system_path:
        return Path(system_path)

    return None


async def terminate_subprocess_safely(
    process: asyncio.subprocess.Process,
    timeout: float = TERMINATE_TIMEOUT_SECONDS,
    kill_timeout: float = KILL_TIMEOUT_SECONDS,
) -> None:
    """
    Stop a sox mixer (or a hung info query) that has not exited yet.

    The mixer's stdin is closed before SIGTERM so sox sees the end of the
    main source. A mixer still alive after ``timeout`` is sent SIGKILL. The
    process is reaped even when the caller is being cancelled.

    Args:
        process: The sox process.
        timeout: Seconds granted after SIGTERM.
        kill_timeout: Seconds granted after SIGKILL.
    """
    if process.returncode is not None:
        return

    if process.stdin is not None:
        with contextlib.suppress(OSError, RuntimeError, ValueError):
            process.stdin.close()

    for signal_process, grace in ((process.terminate, timeout), (process.kill, kill_timeout)):
        with contextlib.suppress(ProcessLookupError, OSError):
            signal_process()
        try:
            await asyncio.wait_for(process.wait(), timeout=grace)
        except (TimeoutError, asyncio.CancelledError):
            pass
        if process.returncode is not None:
            return

    logger.warning("sox (pid=%s) still running after SIGKILL", process.pid)


async def cleanup_processes(
    processes: list[asyncio.subprocess.Process],
    pipe_tasks: list[asyncio.Task[None]] | None = None,
) -> None:
    """
    Tear down mixers together with the tasks feeding and draining them.

    Used when a mixed upstream is closed. Failures are logged at debug level.

    Args:
        processes: sox processes to stop.
        pipe_tasks: Feed and stderr tasks bound to those processes.
    """
    # The feed task must not write into a stdin that is being closed
    if pipe_tasks:
        for task in pipe_tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*pipe_tasks, return_exceptions=True)

    for proc in processes:
        try:
            await terminate_subprocess_safely(proc)
        except Exception as e:
            logger.debug("Error during process cleanup: %s", e)


class MixedUpstream:
    """
    The mixer's stdout, exposed as an upstream for the pacer.

    Owns the mix subprocess, the main source being fed into its stdin and
    the tasks that move bytes around. The two pipes fail independently: a
    broken stdin is logged and the remaining output is still read, a broken
    stdout ends this upstream without touching the feed task.
    """

    def __init__(self, process: asyncio.subprocess.Process, main: Upstream) -> None:
        self._process = process
        self._main = main
        self._closed = False
        self.bytes_fed = 0
        self._feed_task = asyncio.create_task(self._feed())
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def _feed(self) -> None:
        """Pipe the main source's remaining bytes into the mixer's stdin."""
        stdin = self._process.stdin
        if stdin is None:
            return
        try:
            while True:
                data = await self._main.read(FEED_BUFFER_SIZE)
                if not data:
                    break
                stdin.write(data)
                await stdin.drain()
                self.bytes_fed += len(data)
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.warning("Mixer stdin closed after %d bytes: %s", self.bytes_fed, e)
        finally:
            with contextlib.suppress(Exception):
                stdin.close()
            await self._main.aclose()

    async def _drain_stderr(self) -> None:
        """Keep the stderr pipe empty so the mixer never blocks on it."""
        stderr = self._process.stderr
        if stderr is None:
            return
        while True:
            line = await stderr.readline()
            if not line:
                break
            logger.debug("sox (pid=%s): %s", self._process.pid, line.decode(errors="ignore").rstrip())

    async def read(self, size: int) -> bytes:
        """
        Read mixed output.

        Raises:
            PipeFailure: If the mixer's stdout breaks mid-stream.
        """
        stdout = self._process.stdout
        if self._closed or stdout is None:
            return b""
        try:
            return await stdout.read(size)
        except (ConnectionResetError, BrokenPipeError) as e:
            raise PipeFailure(f"Mixer stdout broke (pid={self._process.pid}): {e}") from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True

        stdout = self._process.stdout
        if self._process.returncode is None and stdout is not None and stdout.at_eof():
            # Natural end: give the process a moment to exit on its own
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._process.wait(), timeout=1.0)

        await cleanup_processes([self._process], [self._feed_task, self._stderr_task])
        await self._main.aclose()

        if self._process.returncode not in (0, None):
            logger.info("Mixer (pid=%s) exited with code %s", self._process.pid, self._process.returncode)
        logger.debug("Mixer upstream closed (pid=%s)", self._process.pid)


class SoxUtility:
    """Real MixingUtility backed by the sox binary."""

    def __init__(
        self,
        binary: str = "sox",
        *,
        media_type: str = "mp3",
        channels: int = 2,
        timeout: float = 5.0,
    ) -> None:
        """
        Args:
            binary: Name or path of the sox executable.
            media_type: Media type passed to sox for every stream (-t).
            channels: Channel count of the mixed output (-c).
            timeout: Upper bound for spawning and for info queries, in seconds.
        """
        self.binary = binary
        self.media_type = media_type
        self.channels = channels
        self.timeout = timeout

    def _executable(self) -> str:
        path = resolve_binary(self.binary)
        return str(path) if path is not None else self.binary

    def build_info_command(self, path: Path) -> list[str]:
        return [self._executable(), "--i", "-B", str(path)]

    def build_mix_command(self, effect_path: Path, volumes: MixVolumes) -> list[str]:
        t = self.media_type
        return [
            self._executable(),
            "-t", t, "-v", str(volumes.main), "-m", "-",
            "-t", t, "-v", str(volumes.effect), str(effect_path),
            "-t", t, "-c", str(self.channels), "-",
        ]  # fmt: skip

    async def query_bitrate(self, path: Path) -> str:
        """
        Run sox in info mode and return its stdout.

        stdout and stderr are drained together (communicate) so neither pipe
        can fill up and stall the process.

        Raises:
            ProbeFailed: On spawn failure, timeout, non-zero exit or any
                         text on stderr.
        """
        cmd = self.build_info_command(path)
        logger.debug("Probing bitrate: %s", " ".join(cmd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProbeFailed(f"Could not start {self.binary}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except TimeoutError as e:
            await terminate_subprocess_safely(proc)
            raise ProbeFailed(f"{self.binary} did not answer within {self.timeout:.1f}s") from e

        error = stderr.decode(errors="ignore").strip()
        if error:
            raise ProbeFailed(error)
        if proc.returncode != 0:
            raise ProbeFailed(f"{self.binary} exited with code {proc.returncode}")

        return stdout.decode(errors="ignore").strip()

    async def mix(self, main: Upstream, effect_path: Path, volumes: MixVolumes) -> Upstream:
        """
        Spawn the mixer and start feeding ``main`` into it.

        Raises:
            MixerError: If the subprocess cannot be started in time.
        """
        cmd = self.build_mix_command(effect_path, volumes)
        logger.info("[MIX] Starting: %s", " ".join(cmd))

        try:
            proc = await asyncio.wait_for(
                asyncio.create_subprocess_exec(
                    *cmd,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                ),
                timeout=self.timeout,
            )
        except (OSError, TimeoutError) as e:
            raise MixerError(f"Could not start {self.binary}: {e}") from e

        logger.debug("[MIX] Started, pid=%s", proc.pid)
        return MixedUpstream(proc, main)
