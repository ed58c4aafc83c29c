"""Turn interpreted commands into hub calls."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeAlias, assert_never

from .hub_client import CommandValidationError, HubClient

TOGGLE_ACTIONS = {"toggle", "toggle_device"}


class UnsupportedActionError(CommandValidationError):
    """The command carries an action tag the dispatcher has no handler for."""


@dataclass(frozen=True)
class StructuredCommand:
    """Decoded interpreter output: ``{"entity_ids": [...], "newState": ..., "action": ...}``."""

    action: str
    entity_ids: tuple[str, ...]
    new_state: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> StructuredCommand:
        raw_ids = payload.get("entity_ids") or []
        if isinstance(raw_ids, str):
            raw_ids = [raw_ids]
        if not isinstance(raw_ids, list) or not all(isinstance(item, str) for item in raw_ids):
            raise CommandValidationError(f"entity_ids must be a list of strings, got {raw_ids!r}")
        new_state = payload.get("newState")
        return cls(
            action=str(payload.get("action") or "").strip(),
            entity_ids=tuple(item.strip() for item in raw_ids if item.strip()),
            new_state=new_state.strip().lower() if isinstance(new_state, str) else "",
        )

    def to_payload(self) -> dict[str, Any]:
        return {"action": self.action, "entity_ids": list(self.entity_ids), "newState": self.new_state}


@dataclass(frozen=True)
class ToggleAction:
    entity_ids: tuple[str, ...]
    new_state: str


# New actions become new members of this union.
Action: TypeAlias = ToggleAction


@dataclass(frozen=True)
class CommandOutcome:
    action: str
    entity_ids: tuple[str, ...]
    new_state: str

    def to_payload(self) -> dict[str, Any]:
        return {"action": self.action, "entity_ids": list(self.entity_ids), "state": self.new_state}


def resolve_action(command: StructuredCommand) -> Action:
    tag = command.action.lower()
    if tag in TOGGLE_ACTIONS:
        return ToggleAction(entity_ids=command.entity_ids, new_state=command.new_state)
    raise UnsupportedActionError(f"Unsupported action {command.action!r}")


class CommandDispatcher:
    """Validate a :class:`StructuredCommand` and execute it through a :class:`HubClient`."""

    def __init__(
        self,
        client: HubClient,
        *,
        validate_targets: bool = False,
        on_success: Callable[[CommandOutcome], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.client = client
        self.validate_targets = validate_targets
        self._on_success = on_success
        self._logger = logger or logging.getLogger(__name__)

    async def dispatch(self, command: StructuredCommand) -> CommandOutcome:
        action = resolve_action(command)
        if isinstance(action, ToggleAction):
            outcome = await self._toggle(action)
        else:
            assert_never(action)
        self._logger.info("%s: %s -> %s", outcome.action, ", ".join(outcome.entity_ids), outcome.new_state)
        if self._on_success:
            self._on_success(outcome)
        return outcome

    async def _toggle(self, action: ToggleAction) -> CommandOutcome:
        if not action.entity_ids:
            raise CommandValidationError("Toggle command has no target entities")
        if not action.new_state:
            raise CommandValidationError("Toggle command has no desired state")
        if self.validate_targets:
            known = set(self.client.entity_ids())
            unknown = [entity_id for entity_id in action.entity_ids if entity_id not in known]
            if unknown:
                raise CommandValidationError(f"Unknown entities: {', '.join(unknown)}")

        switched = await self.client.set_entity_state(action.entity_ids, action.new_state)
        return CommandOutcome(action="toggle", entity_ids=tuple(switched), new_state=action.new_state)
