"""Tests for VoicePipeline and RunTracker."""

from __future__ import annotations

import time
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
from homie.assistant.dispatcher import CommandDispatcher, CommandOutcome, StructuredCommand, UnsupportedActionError
from homie.assistant.hub_client import HubClient
from homie.assistant.interpreter import InterpretationError
from homie.assistant.mqtt import AssistantMqtt
from homie.assistant.pipeline import RunTracker, VoicePipeline
from homie.assistant.recorder import RecorderError

pytestmark = pytest.mark.anyio

LAMP_ON = StructuredCommand(action="toggle", entity_ids=("switch.lamp",), new_state="on")
LAMP_OUTCOME = CommandOutcome(action="toggle", entity_ids=("switch.lamp",), new_state="on")


# ============================================================================
# RunTracker Tests
# ============================================================================


class TestRunTracker:
    def test_initial_state(self):
        tracker = RunTracker()
        assert tracker.current_stage is None
        assert tracker.stage_durations == {}

    def test_stage_duration_tracking(self):
        tracker = RunTracker()
        tracker.begin_stage("record")
        tracker.stage_start = time.monotonic() - 0.5
        tracker.begin_stage("transcribe")
        assert tracker.stage_durations["record"] >= 400

    def test_finalize_success(self):
        tracker = RunTracker()
        tracker.begin_stage("record")
        tracker.begin_stage("dispatch")
        result = tracker.finalize("success")
        assert result["status"] == "success"
        assert result["failed_stage"] is None
        assert set(result["stages"]) == {"record", "dispatch"}
        assert "total_ms" in result

    def test_finalize_error_names_stage(self):
        tracker = RunTracker()
        tracker.begin_stage("record")
        tracker.begin_stage("transcribe")
        assert tracker.finalize("error")["failed_stage"] == "transcribe"


# ============================================================================
# VoicePipeline Tests
# ============================================================================


@pytest.fixture
def parts():
    client = Mock(spec=HubClient)
    client.entity_ids.return_value = ["switch.lamp", "light.desk"]
    dispatcher = Mock(spec=CommandDispatcher)
    dispatcher.dispatch = AsyncMock(return_value=LAMP_OUTCOME)
    recorder = Mock()
    recorder.record = AsyncMock(return_value=Path("/tmp/homie_recording.wav"))
    transcriber = Mock()
    transcriber.transcribe = AsyncMock(return_value="turn on the lamp")
    interpreter = Mock()
    interpreter.interpret = AsyncMock(return_value=LAMP_ON)
    mqtt = Mock(spec=AssistantMqtt)
    return {
        "client": client,
        "dispatcher": dispatcher,
        "recorder": recorder,
        "transcriber": transcriber,
        "interpreter": interpreter,
        "mqtt": mqtt,
    }


@pytest.fixture
def pipeline(parts):
    return VoicePipeline(**parts)


def last_metrics(mqtt):
    return mqtt.publish_metrics.call_args.args[0]


class TestVoicePipeline:
    async def test_run_once(self, pipeline, parts):
        outcome = await pipeline.run_once()

        assert outcome == LAMP_OUTCOME
        parts["recorder"].record.assert_awaited_once_with(None)
        parts["transcriber"].transcribe.assert_awaited_once_with(Path("/tmp/homie_recording.wav"))
        parts["interpreter"].interpret.assert_awaited_once_with("turn on the lamp", ["switch.lamp", "light.desk"])
        parts["dispatcher"].dispatch.assert_awaited_once_with(LAMP_ON)

    async def test_run_once_publishes_telemetry(self, pipeline, parts):
        await pipeline.run_once()

        mqtt = parts["mqtt"]
        mqtt.publish_transcript.assert_called_once_with("turn on the lamp")
        mqtt.publish_command.assert_called_once_with(LAMP_ON)
        metrics = last_metrics(mqtt)
        assert metrics["status"] == "success"
        assert set(metrics["stages"]) == {"record", "transcribe", "interpret", "dispatch"}

    async def test_stop_event_is_forwarded(self, pipeline, parts):
        stop_event = Mock()
        await pipeline.run_once(stop_event)
        parts["recorder"].record.assert_awaited_once_with(stop_event)

    async def test_recording_failure_reports_stage(self, pipeline, parts):
        parts["recorder"].record.side_effect = RecorderError("no microphone")

        with pytest.raises(RecorderError):
            await pipeline.run_once()

        parts["transcriber"].transcribe.assert_not_awaited()
        parts["mqtt"].publish_transcript.assert_not_called()
        metrics = last_metrics(parts["mqtt"])
        assert metrics["status"] == "error"
        assert metrics["failed_stage"] == "record"

    async def test_interpretation_failure_skips_dispatch(self, pipeline, parts):
        parts["interpreter"].interpret.side_effect = InterpretationError("could not match")

        with pytest.raises(InterpretationError):
            await pipeline.run_once()

        parts["dispatcher"].dispatch.assert_not_awaited()
        parts["mqtt"].publish_command.assert_not_called()
        assert last_metrics(parts["mqtt"])["failed_stage"] == "interpret"

    async def test_unsupported_action_propagates(self, pipeline, parts):
        parts["dispatcher"].dispatch.side_effect = UnsupportedActionError("Unsupported action 'dim'")
        with pytest.raises(UnsupportedActionError):
            await pipeline.run_once()
        assert last_metrics(parts["mqtt"])["failed_stage"] == "dispatch"

    async def test_handle_transcript_skips_recording(self, pipeline, parts):
        outcome = await pipeline.handle_transcript("turn on the lamp")

        assert outcome == LAMP_OUTCOME
        parts["recorder"].record.assert_not_awaited()
        parts["transcriber"].transcribe.assert_not_awaited()
        parts["mqtt"].publish_metrics.assert_not_called()

    async def test_without_mqtt(self, parts):
        parts["mqtt"] = None
        assert await VoicePipeline(**parts).run_once() == LAMP_OUTCOME
