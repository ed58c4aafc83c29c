"""Microphone capture via ``arecord`` (ALSA)."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from pathlib import Path

from .config import RecorderConfig


class RecorderError(RuntimeError):
    """Recording failed or produced no audio file."""


def _alsa_format(width: int) -> str:
    return {
        1: "U8",
        2: "S16_LE",
        3: "S24_LE",
        4: "S32_LE",
    }.get(width, "S16_LE")


class ArecordRecorder:
    """Record a WAV file by shelling out to ``arecord``.

    ``duration`` mode lets arecord stop itself after a fixed number of
    seconds; ``interactive`` mode records until ``stop_event`` is set and
    then interrupts arecord so it finalises the WAV header.
    """

    def __init__(self, config: RecorderConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self._logger = logger or logging.getLogger(__name__)

    @property
    def interactive(self) -> bool:
        return self.config.mode == "interactive"

    def build_command(self) -> list[str]:
        config = self.config
        command = [config.command, "-q"]
        if config.device:
            command += ["-D", config.device]
        if not self.interactive:
            command += ["-d", str(config.duration_seconds)]
        command += [
            "-f",
            _alsa_format(config.width),
            "-r",
            str(config.rate),
            "-c",
            str(config.channels),
            "-t",
            "wav",
            str(config.output_path),
        ]
        return command

    async def record(self, stop_event: asyncio.Event | None = None) -> Path:
        if self.interactive and stop_event is None:
            raise RecorderError("Interactive recording needs a stop event")

        output_path = self.config.output_path
        with contextlib.suppress(FileNotFoundError):
            output_path.unlink()

        command = self.build_command()
        self._logger.debug("Starting microphone capture: %s", " ".join(command))
        if self.interactive:
            self._logger.info("Recording until stopped...")
        else:
            self._logger.info("Recording for %d seconds...", self.config.duration_seconds)
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise RecorderError(f"Failed to start {command[0]}: {exc}") from exc

        interrupted = False
        capture = asyncio.create_task(proc.communicate())
        try:
            if stop_event is not None and self.interactive:
                interrupted = await self._wait_for_stop(proc, capture, stop_event)
            _, stderr = await capture
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                capture.cancel()
                await proc.wait()

        if proc.returncode != 0 and not interrupted:
            detail = (stderr or b"").decode("utf-8", errors="ignore").strip()
            message = f"Recording failed with exit code {proc.returncode}"
            if detail:
                message = f"{message} ({detail})"
            raise RecorderError(message)
        if not output_path.is_file() or output_path.stat().st_size == 0:
            raise RecorderError(f"Recording file not found: {output_path}")
        return output_path

    async def _wait_for_stop(
        self,
        proc: asyncio.subprocess.Process,
        capture: asyncio.Task,
        stop_event: asyncio.Event,
    ) -> bool:
        stop_waiter = asyncio.create_task(stop_event.wait())
        try:
            await asyncio.wait({capture, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_waiter.cancel()
        if capture.done():
            return False
        self._logger.debug("Stopping microphone capture")
        with contextlib.suppress(ProcessLookupError):
            proc.send_signal(signal.SIGINT)
        return True
