"""Command line entry point for the Homie assistant."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from .config import DEFAULT_ENV_FILE, AssistantConfig, load_environment
from .dispatcher import CommandDispatcher, StructuredCommand
from .hub_client import DESIRED_STATES, HubClient
from .hub_session import HubError, HubSession
from .interpreter import InterpretationError, OllamaInterpreter
from .mqtt import AssistantMqtt
from .pipeline import VoicePipeline
from .recorder import ArecordRecorder, RecorderError
from .transcriber import TranscriptionError, build_transcriber

LOGGER = logging.getLogger("homie")

# ValueError covers CommandValidationError and missing configuration; OSError an unreadable prompt file.
FATAL_ERRORS = (HubError, RecorderError, TranscriptionError, InterpretationError, ValueError, OSError)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="homie", description="Voice control for Home Assistant devices")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--env-file", type=Path, default=DEFAULT_ENV_FILE, help="dotenv file with credentials")
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("listen", help="record one spoken command and execute it (default)")
    say = commands.add_parser("say", help="execute a typed command instead of a recording")
    say.add_argument("text")
    commands.add_parser("devices", help="list the entities known to Home Assistant")
    toggle = commands.add_parser("toggle", help="switch entities on or off directly")
    toggle.add_argument("state", choices=DESIRED_STATES)
    toggle.add_argument("entity_ids", nargs="+", metavar="entity_id")
    return parser


async def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        config = AssistantConfig.from_env(load_environment(args.env_file))
        return await _run(args, config)
    except FATAL_ERRORS as exc:
        LOGGER.error("%s", exc)
        LOGGER.debug("Failure details", exc_info=True)
        return 1


async def _run(args: argparse.Namespace, config: AssistantConfig) -> int:
    async with HubSession(config.hub, logger=LOGGER) as session:
        client = HubClient(session, logger=LOGGER)
        await client.list_entities()

        if args.command == "devices":
            for entity in client.catalog:
                print(entity.entity_id)
            return 0

        mqtt = AssistantMqtt(config.mqtt, logger=LOGGER)
        mqtt.connect()

        dispatcher = CommandDispatcher(
            client,
            validate_targets=config.validate_targets,
            on_success=mqtt.publish_outcome,
            logger=LOGGER,
        )
        try:
            if args.command == "toggle":
                command = StructuredCommand(action="toggle", entity_ids=tuple(args.entity_ids), new_state=args.state)
                await dispatcher.dispatch(command)
                return 0
            await _run_voice(args, config, client, dispatcher, mqtt)
            return 0
        finally:
            mqtt.disconnect()


async def _run_voice(
    args: argparse.Namespace,
    config: AssistantConfig,
    client: HubClient,
    dispatcher: CommandDispatcher,
    mqtt: AssistantMqtt,
) -> None:
    recorder = ArecordRecorder(config.recorder, logger=LOGGER)
    transcriber = build_transcriber(config.transcriber, logger=LOGGER)
    interpreter = OllamaInterpreter(config.interpreter, logger=LOGGER)
    pipeline = VoicePipeline(
        client=client,
        dispatcher=dispatcher,
        recorder=recorder,
        transcriber=transcriber,
        interpreter=interpreter,
        mqtt=mqtt,
        logger=LOGGER,
    )
    try:
        if args.command == "say":
            await pipeline.handle_transcript(args.text)
        elif recorder.interactive:
            async with _stop_on_enter() as stop_event:
                await pipeline.run_once(stop_event)
        else:
            await pipeline.run_once()
    finally:
        await transcriber.close()
        await interpreter.close()


@contextlib.asynccontextmanager
async def _stop_on_enter():
    """Yield an event that is set when the user presses Enter."""
    # Redirected stdin is at EOF immediately, which would stop the capture at once.
    if not sys.stdin.isatty():
        raise RecorderError("Interactive recording needs a terminal on stdin; set HOMIE_RECORD_MODE=duration")
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    fd = sys.stdin.fileno()

    def _on_input() -> None:
        sys.stdin.readline()
        stop_event.set()

    loop.add_reader(fd, _on_input)
    LOGGER.info("Press Enter to stop recording")
    try:
        yield stop_event
    finally:
        loop.remove_reader(fd)


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)
