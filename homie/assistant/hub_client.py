"""Entity registry and service calls over an authenticated hub session."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from .hub_session import (
    HubError,
    HubNotConnectedError,
    HubProtocolError,
    HubSession,
    HubTransportError,
    decode_message,
)

ENTITY_DELIMITER = "."
DESIRED_STATES = ("on", "off")


class CommandValidationError(ValueError):
    """A command was rejected before anything was sent to the hub."""


class CatalogNotLoadedError(HubError):
    """The device catalog was read before the first entity enumeration."""


@dataclass(frozen=True, slots=True)
class Entity:
    entity_id: str
    domain: str
    name: str

    @classmethod
    def parse(cls, entity_id: str) -> Entity:
        if not isinstance(entity_id, str):
            raise CommandValidationError(f"Entity id must be a string, got {entity_id!r}")
        if entity_id != entity_id.strip():
            raise CommandValidationError(f"Malformed entity id {entity_id!r} (surrounding whitespace)")
        domain, sep, name = entity_id.partition(ENTITY_DELIMITER)
        if not sep or not domain or not name:
            raise CommandValidationError(f"Malformed entity id {entity_id!r} (expected 'domain.name')")
        return cls(entity_id=entity_id, domain=domain, name=name)

    def __str__(self) -> str:
        return self.entity_id


def service_for_state(desired_state: str) -> str:
    """Map ``on``/``off`` to the ``turn_on``/``turn_off`` service name."""
    if desired_state not in DESIRED_STATES:
        raise CommandValidationError(f"Desired state must be 'on' or 'off', got {desired_state!r}")
    return f"turn_{desired_state}"


def build_service_call(entity: Entity, desired_state: str) -> dict[str, Any]:
    return {
        "type": "call_service",
        "domain": entity.domain,
        "service": service_for_state(desired_state),
        "service_data": {"entity_id": entity.entity_id},
    }


class HubClient:
    """Entity enumeration and on/off service calls for one :class:`HubSession`."""

    def __init__(self, session: HubSession, logger: logging.Logger | None = None) -> None:
        self.session = session
        self._catalog: tuple[Entity, ...] | None = None
        self._logger = logger or logging.getLogger(__name__)

    @property
    def catalog_loaded(self) -> bool:
        return self._catalog is not None

    @property
    def catalog(self) -> tuple[Entity, ...]:
        return self.require_catalog()

    def require_catalog(self) -> tuple[Entity, ...]:
        catalog = self._catalog
        if catalog is None:
            raise CatalogNotLoadedError("Device catalog is empty; call list_entities() first")
        return catalog

    def entity_ids(self) -> list[str]:
        return [entity.entity_id for entity in self.require_catalog()]

    async def list_entities(self) -> tuple[Entity, ...]:
        """Fetch the entity registry and replace the device catalog with it."""
        raw = await self.session.request({"type": "config/entity_registry/list"})
        reply = decode_message(raw, "entity registry")
        entities = tuple(_decode_registry(reply))
        self._catalog = entities
        self._logger.info("Loaded %d entities from Home Assistant", len(entities))
        return entities

    async def set_entity_state(self, entity_ids: Sequence[str], desired_state: str) -> list[str]:
        """Call ``<domain>.turn_<state>`` for each entity, in order.

        Every argument is validated before the first message goes out. A
        transport failure stops the batch; entities handled before it keep
        their new state.
        """
        if isinstance(entity_ids, str):
            entity_ids = [entity_ids]
        if not entity_ids:
            raise CommandValidationError("No entity ids given")
        service_for_state(desired_state)
        entities = [Entity.parse(entity_id) for entity_id in entity_ids]

        switched: list[str] = []
        for entity in entities:
            try:
                raw = await self.session.request(build_service_call(entity, desired_state))
            except HubNotConnectedError:
                raise
            except HubTransportError as exc:
                raise HubTransportError(
                    f"Failed to turn {desired_state} {entity.entity_id}: {exc}",
                    entity_id=entity.entity_id,
                ) from exc
            self._note_service_reply(entity, raw)
            switched.append(entity.entity_id)
        return switched

    def _note_service_reply(self, entity: Entity, raw: str | bytes) -> None:
        # Service replies are read but not treated as errors; a failure report is only logged.
        try:
            reply = decode_message(raw, "service call result")
        except HubError:
            self._logger.debug("Unparseable reply for %s: %r", entity.entity_id, raw)
            return
        if reply.get("success") is False:
            self._logger.warning("Home Assistant reported failure for %s: %s", entity.entity_id, reply.get("error"))


def _decode_registry(reply: dict[str, Any]) -> Iterable[Entity]:
    result = reply.get("result")
    if not isinstance(result, list):
        raise HubProtocolError(f"Entity registry reply has no result list: {reply}")
    for item in result:
        entity_id = item.get("entity_id") if isinstance(item, dict) else None
        if not isinstance(entity_id, str):
            raise HubProtocolError(f"Entity registry item without entity_id: {item!r}")
        try:
            yield Entity.parse(entity_id)
        except CommandValidationError as exc:
            raise HubProtocolError(str(exc)) from exc
