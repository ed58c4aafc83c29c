"""Ask a local Ollama model to turn an utterance into a device command."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

import httpx

from .config import InterpreterConfig
from .dispatcher import StructuredCommand
from .hub_client import CommandValidationError

FAILED_ACTION = "failed"


class InterpretationError(RuntimeError):
    """The language model could not produce a usable command."""


class Interpreter:
    async def interpret(self, user_text: str, devices: Iterable[str]) -> StructuredCommand:
        raise NotImplementedError

    async def close(self) -> None:
        return None


def _format_prompt(user_text: str, devices: Iterable[str]) -> str:
    device_list = "".join(f"- {entity_id}\n" for entity_id in devices)
    return f"Available devices:\n{device_list}\nUser command: {user_text.strip()}"


def _parse_command(response_text: str) -> StructuredCommand:
    try:
        parsed = json.loads(response_text)
    except json.JSONDecodeError as exc:
        raise InterpretationError(f"Model output is not JSON: {response_text!r}") from exc
    if not isinstance(parsed, dict):
        raise InterpretationError(f"Model output is not a JSON object: {response_text!r}")
    if str(parsed.get("action") or "").strip().lower() == FAILED_ACTION:
        raise InterpretationError("The model could not match the request to a device command")
    try:
        return StructuredCommand.from_payload(parsed)
    except CommandValidationError as exc:
        raise InterpretationError(f"Model output has an invalid shape: {exc}") from exc


class OllamaInterpreter(Interpreter):
    """Call the Ollama ``/api/generate`` endpoint in JSON mode."""

    def __init__(
        self,
        config: InterpreterConfig,
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

    async def interpret(self, user_text: str, devices: Iterable[str]) -> StructuredCommand:
        if not user_text.strip():
            raise InterpretationError("Nothing to interpret: the transcript is empty")
        payload = self._build_payload(user_text, devices)
        self._logger.debug("Asking %s to interpret %r", self.config.model, user_text)
        try:
            response = await self._client.post("/api/generate", json=payload)
        except httpx.RequestError as exc:
            raise InterpretationError(f"Failed to contact Ollama: {exc}") from exc
        if response.status_code >= 400:
            raise InterpretationError(f"Ollama returned status {response.status_code}: {response.text}")

        try:
            body = response.json()
        except ValueError as exc:
            raise InterpretationError(f"Failed to decode Ollama response: {response.text!r}") from exc
        output = body.get("response") if isinstance(body, dict) else None
        if not isinstance(output, str):
            raise InterpretationError(f"Ollama response has no 'response' text: {body!r}")

        self._logger.debug("Model output: %s", output)
        return _parse_command(output)

    def _build_payload(self, user_text: str, devices: Iterable[str]) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "prompt": _format_prompt(user_text, devices),
            "system": self.config.system_prompt,
            "stream": False,
            "format": "json",
        }
