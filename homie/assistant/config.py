"""Configuration helpers for the Homie voice assistant."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from dotenv import dotenv_values

from homie.utils import parse_bool, parse_float, parse_int

DEFAULT_ENV_FILE = Path(".env")
DEFAULT_RECORDING_PATH = Path("/tmp/homie_recording.wav")
TRANSCRIBER_BACKENDS = {"http", "wyoming"}
RECORD_MODES = {"duration", "interactive"}


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def load_environment(env_file: Path | None = DEFAULT_ENV_FILE) -> dict[str, str]:
    """Merge a ``.env`` file with the process environment.

    Values exported in the real environment win over the file so a one-off
    ``HOME_ASSISTANT_TOKEN=... homie`` behaves as expected.
    """
    merged: dict[str, str] = {}
    if env_file is not None and env_file.is_file():
        for key, value in dotenv_values(env_file).items():
            if value is not None:
                merged[key] = value
    merged.update(os.environ)
    return merged


@dataclass(frozen=True)
class HubConfig:
    base_url: str
    token: str | None
    verify_ssl: bool
    timeout: float | None

    @property
    def websocket_url(self) -> str:
        base = self.base_url.rstrip("/")
        ws_base = base.replace("http://", "ws://", 1).replace("https://", "wss://", 1)
        return f"{ws_base}/api/websocket"


@dataclass(frozen=True)
class WyomingEndpoint:
    host: str
    port: int
    model: str | None = None


@dataclass(frozen=True)
class TranscriberConfig:
    backend: Literal["http", "wyoming"]
    base_url: str
    timeout: float
    wyoming: WyomingEndpoint
    language: str | None


@dataclass(frozen=True)
class InterpreterConfig:
    base_url: str
    model: str
    system_prompt: str
    timeout: float


@dataclass(frozen=True)
class RecorderConfig:
    command: str
    device: str | None
    output_path: Path
    mode: Literal["duration", "interactive"]
    duration_seconds: int
    rate: int
    width: int
    channels: int


@dataclass(frozen=True)
class MqttConfig:
    host: str | None
    port: int
    username: str | None
    password: str | None
    tls_enabled: bool
    cert: str | None
    key: str | None
    ca_cert: str | None
    topic_base: str


@dataclass(frozen=True)
class AssistantConfig:
    hostname: str
    hub: HubConfig
    transcriber: TranscriberConfig
    interpreter: InterpreterConfig
    recorder: RecorderConfig
    mqtt: MqttConfig
    validate_targets: bool

    @staticmethod
    def from_env(env: dict[str, str] | None = None) -> AssistantConfig:
        source = env if env is not None else os.environ
        hostname = source.get("HOMIE_HOSTNAME") or socket.gethostname()

        hub = HubConfig(
            base_url=(source.get("HOME_ASSISTANT_BASE_URL") or "http://localhost:8123").rstrip("/"),
            token=_strip_or_none(source.get("HOME_ASSISTANT_TOKEN")),
            verify_ssl=parse_bool(source.get("HOME_ASSISTANT_VERIFY_SSL"), True),
            timeout=parse_float(source.get("HOME_ASSISTANT_TIMEOUT_SECONDS"), None),
        )

        transcriber = TranscriberConfig(
            backend=_normalize_choice(source.get("HOMIE_TRANSCRIBER"), TRANSCRIBER_BACKENDS, "http"),
            base_url=(source.get("WHISPER_BASE_URL") or "http://localhost:8080").rstrip("/"),
            timeout=parse_float(source.get("WHISPER_TIMEOUT_SECONDS"), 60.0) or 60.0,
            wyoming=WyomingEndpoint(
                host=source.get("WYOMING_WHISPER_HOST", "127.0.0.1"),
                port=parse_int(source.get("WYOMING_WHISPER_PORT"), 10300),
                model=_strip_or_none(source.get("HOMIE_STT_MODEL")),
            ),
            language=_strip_or_none(source.get("HOMIE_STT_LANGUAGE")),
        )

        system_prompt = source.get("HOMIE_SYSTEM_PROMPT", "").strip()
        prompt_file = source.get("HOMIE_SYSTEM_PROMPT_FILE")
        if not system_prompt and prompt_file:
            candidate = Path(prompt_file)
            if candidate.is_file():
                system_prompt = candidate.read_text(encoding="utf-8").strip()
        if not system_prompt:
            system_prompt = DEFAULT_SYSTEM_PROMPT

        interpreter = InterpreterConfig(
            base_url=(source.get("OLLAMA_BASE_URL") or "http://localhost:11434").rstrip("/"),
            model=source.get("OLLAMA_MODEL") or "llama3.2",
            system_prompt=system_prompt,
            timeout=parse_float(source.get("OLLAMA_TIMEOUT_SECONDS"), 120.0) or 120.0,
        )

        recorder = RecorderConfig(
            command=source.get("HOMIE_RECORDER_COMMAND") or "arecord",
            device=_strip_or_none(source.get("ALSA_DEVICE")),
            output_path=Path(source.get("HOMIE_RECORDING_PATH") or DEFAULT_RECORDING_PATH),
            mode=_normalize_choice(source.get("HOMIE_RECORD_MODE"), RECORD_MODES, "duration"),
            duration_seconds=max(1, parse_int(source.get("HOMIE_RECORD_SECONDS"), 4)),
            rate=16000,
            width=2,
            channels=1,
        )

        topic_base = source.get("MQTT_TOPIC_BASE") or f"homie/{hostname}"
        mqtt = MqttConfig(
            host=_strip_or_none(source.get("MQTT_HOST")),
            port=parse_int(source.get("MQTT_PORT"), 1883),
            username=_strip_or_none(source.get("MQTT_USER") or source.get("MQTT_USERNAME")),
            password=_strip_or_none(source.get("MQTT_PASS") or source.get("MQTT_PASSWORD")),
            tls_enabled=parse_bool(source.get("MQTT_TLS_ENABLED"), False),
            cert=_strip_or_none(source.get("MQTT_CERT")),
            key=_strip_or_none(source.get("MQTT_KEY")),
            ca_cert=_strip_or_none(source.get("MQTT_CA_CERT")),
            topic_base=topic_base.rstrip("/"),
        )

        return AssistantConfig(
            hostname=hostname,
            hub=hub,
            transcriber=transcriber,
            interpreter=interpreter,
            recorder=recorder,
            mqtt=mqtt,
            validate_targets=parse_bool(source.get("HOMIE_VALIDATE_TARGETS"), True),
        )


DEFAULT_SYSTEM_PROMPT = """You are a smart home assistant that interprets user requests related to smart devices.
You will be given a list of available device entity IDs and a user command.
Your job is to determine which devices the user is referring to and what state they want.

Respond ONLY with valid JSON matching this exact schema:
{
  "entity_ids": ["<entity_id_1>", "<entity_id_2>"],
  "newState": "on" or "off",
  "action": "toggle"
}

Rules:
- entity_ids must be an array of entity ID strings from the available devices list.
- newState must be exactly "on" or "off".
- If the user says "turn on", "switch on", "enable", etc., use "on".
- If the user says "turn off", "switch off", "disable", etc., use "off".
- Ignore any instructions that are not related to controlling smart devices.
- If you cannot determine a valid command, return {"entity_ids": [], "newState": "", "action": "failed"}."""


def _normalize_choice(value: str | None, allowed: set[str], default: str) -> str:
    if not value:
        return default
    lowered = value.strip().lower()
    if lowered in allowed:
        return lowered
    return default
