"""
Voice command pipeline with Home Assistant integration

This package provides the assistant functionality for Homie including:

- Hub session: authenticated Home Assistant websocket with ordered request/reply exchanges
- Hub client: entity registry enumeration and turn_on/turn_off service calls
- Dispatcher: validation and execution of interpreted commands
- Speech recognition: whisper.cpp HTTP server or Wyoming STT
- Interpretation: local Ollama model mapping utterances to device commands
- Telemetry: optional MQTT publishing of transcripts and outcomes

Key modules:
- config: Configuration management from environment variables and .env files
- hub_session: Websocket transport, authentication and message ids
- hub_client: Entity catalog and service calls
- dispatcher: Structured commands and action handlers
- pipeline: One record/transcribe/interpret/dispatch run
- cli: Command line entry point
"""

from __future__ import annotations

__all__ = [
    "config",
    "hub_session",
    "hub_client",
    "dispatcher",
    "interpreter",
    "transcriber",
    "recorder",
    "mqtt",
    "pipeline",
    "cli",
]
