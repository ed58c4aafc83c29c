"""Speech-to-text clients (whisper.cpp HTTP server or Wyoming STT)."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import wave
from dataclasses import dataclass
from pathlib import Path

import httpx
from wyoming.asr import Transcribe, Transcript
from wyoming.audio import AudioChunk, AudioStart, AudioStop
from wyoming.client import AsyncTcpClient

from homie.utils import await_with_timeout, chunk_bytes

from .config import TranscriberConfig

CHUNK_MS = 30


class TranscriptionError(RuntimeError):
    """The speech-to-text server failed or returned no transcript."""


class Transcriber:
    async def transcribe(self, audio_path: Path) -> str:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class HttpTranscriber(Transcriber):
    """Upload a WAV file to a whisper.cpp style ``/inference`` endpoint."""

    def __init__(
        self,
        config: TranscriberConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._logger = logger or logging.getLogger(__name__)
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def transcribe(self, audio_path: Path) -> str:
        try:
            audio = await asyncio.to_thread(audio_path.read_bytes)
        except OSError as exc:
            raise TranscriptionError(f"Failed to open audio file {audio_path}: {exc}") from exc

        form: dict[str, str] = {"response_format": "json"}
        if self.config.language:
            form["language"] = self.config.language
        files = {"file": (audio_path.name, audio, "audio/wav")}
        try:
            response = await self._client.post("/inference", data=form, files=files)
        except httpx.RequestError as exc:
            raise TranscriptionError(f"Whisper request failed: {exc}") from exc
        if response.status_code >= 400:
            raise TranscriptionError(f"Whisper server returned {response.status_code}: {response.text}")

        try:
            body = response.json()
        except ValueError as exc:
            raise TranscriptionError(f"Failed to decode whisper response: {response.text!r}") from exc
        text = body.get("text") if isinstance(body, dict) else None
        if not isinstance(text, str):
            raise TranscriptionError(f"Whisper response has no text: {body!r}")
        return text.strip()


@dataclass(frozen=True)
class WavAudio:
    frames: bytes
    rate: int
    width: int
    channels: int

    @property
    def bytes_per_chunk(self) -> int:
        samples = int(self.rate * (CHUNK_MS / 1000))
        return max(1, samples * self.width * self.channels)


def read_wav(path: Path) -> WavAudio:
    with wave.open(str(path), "rb") as wav_file:
        return WavAudio(
            frames=wav_file.readframes(wav_file.getnframes()),
            rate=wav_file.getframerate(),
            width=wav_file.getsampwidth(),
            channels=wav_file.getnchannels(),
        )


class WyomingTranscriber(Transcriber):
    """Stream the recording's PCM frames to a Wyoming ASR service."""

    def __init__(self, config: TranscriberConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self._logger = logger or logging.getLogger(__name__)

    async def transcribe(self, audio_path: Path) -> str:
        try:
            audio = await asyncio.to_thread(read_wav, audio_path)
        except (OSError, EOFError, wave.Error) as exc:
            raise TranscriptionError(f"Failed to read WAV file {audio_path}: {exc}") from exc

        endpoint = self.config.wyoming
        timeout = self.config.timeout
        client = AsyncTcpClient(endpoint.host, endpoint.port)
        try:
            await await_with_timeout(client.connect(), timeout)
        except (OSError, TimeoutError) as exc:
            raise TranscriptionError(f"Failed to connect to Wyoming STT at {endpoint.host}:{endpoint.port}") from exc
        try:
            await await_with_timeout(
                client.write_event(Transcribe(name=endpoint.model, language=self.config.language).event()),
                timeout,
            )
            await await_with_timeout(
                client.write_event(
                    AudioStart(rate=audio.rate, width=audio.width, channels=audio.channels).event()
                ),
                timeout,
            )
            for chunk in chunk_bytes(audio.frames, audio.bytes_per_chunk):
                await await_with_timeout(
                    client.write_event(
                        AudioChunk(
                            rate=audio.rate,
                            width=audio.width,
                            channels=audio.channels,
                            audio=chunk,
                        ).event()
                    ),
                    timeout,
                )
            await await_with_timeout(client.write_event(AudioStop().event()), timeout)
            while True:
                event = await await_with_timeout(client.read_event(), timeout)
                if event is None:
                    raise TranscriptionError("Wyoming STT connection closed before a transcript arrived")
                if Transcript.is_type(event.type):
                    return Transcript.from_event(event).text.strip()
        except (OSError, TimeoutError) as exc:
            raise TranscriptionError(f"Wyoming STT exchange failed: {exc}") from exc
        finally:
            with contextlib.suppress(OSError):
                await client.disconnect()


def build_transcriber(config: TranscriberConfig, logger: logging.Logger | None = None) -> Transcriber:
    if config.backend == "wyoming":
        return WyomingTranscriber(config, logger)
    return HttpTranscriber(config, logger=logger)
