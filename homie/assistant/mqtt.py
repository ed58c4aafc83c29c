"""Optional MQTT telemetry: what the assistant heard, decided and did."""

from __future__ import annotations

import json
import logging
import ssl
from typing import TYPE_CHECKING, Any

import paho.mqtt.client as mqtt

from .config import MqttConfig

if TYPE_CHECKING:
    from .dispatcher import CommandOutcome, StructuredCommand

TRANSCRIPT_TOPIC = "transcript"
COMMAND_TOPIC = "command"
OUTCOME_TOPIC = "outcome"
METRICS_TOPIC = "metrics"


class AssistantMqtt:
    """Publish voice-run telemetry under ``<topic_base>/<kind>``.

    Without ``MQTT_HOST`` every publish is a no-op. The last command outcome
    is retained so a dashboard shows the most recent device change on
    subscribe.
    """

    def __init__(self, config: MqttConfig, logger: logging.Logger | None = None) -> None:
        self.config = config
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None

    def topic(self, kind: str) -> str:
        return f"{self.config.topic_base}/{kind}"

    def connect(self) -> None:
        if not self.config.host:
            self._logger.debug("[mqtt] MQTT host not configured; telemetry disabled")
            return
        if self._client is not None:
            return
        client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"homie-{self.config.topic_base}",
            clean_session=True,
        )
        if self.config.username:
            client.username_pw_set(self.config.username, self.config.password or "")
        if self.config.tls_enabled:
            client.tls_set(
                ca_certs=self.config.ca_cert,
                certfile=self.config.cert,
                keyfile=self.config.key,
                tls_version=ssl.PROTOCOL_TLS_CLIENT,
            )
        try:
            client.connect(self.config.host, self.config.port, keepalive=30)
        except (OSError, ValueError) as exc:
            self._logger.warning("[mqtt] Failed to connect to %s:%s: %s", self.config.host, self.config.port, exc)
            return
        client.loop_start()
        self._client = client

    def disconnect(self) -> None:
        client, self._client = self._client, None
        if client:
            client.loop_stop()
            client.disconnect()

    def publish_transcript(self, text: str) -> None:
        self._publish(TRANSCRIPT_TOPIC, {"text": text})

    def publish_command(self, command: StructuredCommand) -> None:
        self._publish(COMMAND_TOPIC, command.to_payload())

    def publish_outcome(self, outcome: CommandOutcome) -> None:
        self._publish(OUTCOME_TOPIC, outcome.to_payload(), retain=True)

    def publish_metrics(self, metrics: dict[str, Any]) -> None:
        self._publish(METRICS_TOPIC, metrics)

    def _publish(self, kind: str, payload: dict[str, Any], retain: bool = False) -> None:
        client = self._client
        if not client:
            return
        try:
            client.publish(self.topic(kind), payload=json.dumps(payload), qos=0, retain=retain)
        except (OSError, ValueError) as exc:
            self._logger.debug("[mqtt] Failed to publish %s: %s", kind, exc)
