"""
Homie - voice-driven Home Assistant controller

Records a spoken command, transcribes it with a local Whisper server, asks a
local Ollama model which devices the user meant, and switches them through a
persistent Home Assistant websocket session.

Core modules:
- assistant: hub session, command dispatch and the voice pipeline
- utils: environment parsing and async helpers
"""

__version__ = "0.3.0"
