"""Record → transcribe → interpret → dispatch, once per voice command."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from homie.assistant.dispatcher import CommandDispatcher, CommandOutcome
    from homie.assistant.hub_client import HubClient
    from homie.assistant.interpreter import Interpreter
    from homie.assistant.mqtt import AssistantMqtt
    from homie.assistant.recorder import ArecordRecorder
    from homie.assistant.transcriber import Transcriber

LOGGER = logging.getLogger(__name__)


@dataclass
class RunTracker:
    start: float = field(default_factory=time.monotonic)
    stage_start: float = field(default_factory=time.monotonic)
    current_stage: str | None = None
    stage_durations: dict[str, int] = field(default_factory=dict)

    def begin_stage(self, stage: str) -> None:
        now = time.monotonic()
        if self.current_stage:
            self.stage_durations[self.current_stage] = int((now - self.stage_start) * 1000)
        self.current_stage = stage
        self.stage_start = now

    def finalize(self, status: str) -> dict[str, object]:
        now = time.monotonic()
        if self.current_stage:
            self.stage_durations[self.current_stage] = int((now - self.stage_start) * 1000)
        return {
            "status": status,
            "failed_stage": self.current_stage if status != "success" else None,
            "total_ms": int((now - self.start) * 1000),
            "stages": self.stage_durations,
        }


class VoicePipeline:
    """Drive one spoken command from the microphone to the hub."""

    def __init__(
        self,
        *,
        client: HubClient,
        dispatcher: CommandDispatcher,
        recorder: ArecordRecorder,
        transcriber: Transcriber,
        interpreter: Interpreter,
        mqtt: AssistantMqtt | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.dispatcher = dispatcher
        self.recorder = recorder
        self.transcriber = transcriber
        self.interpreter = interpreter
        self.mqtt = mqtt
        self.logger = logger or LOGGER

    async def handle_transcript(self, text: str, tracker: RunTracker | None = None) -> CommandOutcome:
        """Interpret ``text`` against the current catalog and execute the result."""
        if tracker:
            tracker.begin_stage("interpret")
        command = await self.interpreter.interpret(text, self.client.entity_ids())
        self.logger.info("Interpreted command: %s", command)
        if self.mqtt:
            self.mqtt.publish_command(command)

        if tracker:
            tracker.begin_stage("dispatch")
        return await self.dispatcher.dispatch(command)

    async def run_once(self, stop_event: asyncio.Event | None = None) -> CommandOutcome:
        tracker = RunTracker()
        status = "error"
        try:
            tracker.begin_stage("record")
            audio_path = await self.recorder.record(stop_event)

            tracker.begin_stage("transcribe")
            text = await self.transcriber.transcribe(audio_path)
            self.logger.info("Heard: %r", text)
            if self.mqtt:
                self.mqtt.publish_transcript(text)

            outcome = await self.handle_transcript(text, tracker)
            status = "success"
            return outcome
        finally:
            metrics = tracker.finalize(status)
            self.logger.debug("Pipeline run finished: %s", metrics)
            if self.mqtt:
                self.mqtt.publish_metrics(metrics)
