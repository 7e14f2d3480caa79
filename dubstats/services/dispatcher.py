"""Command dispatch for queue messages.

A message moves through IDLE -> RECEIVED -> DECODING -> ROUTING -> HANDLING
and ends either ACKED (handler succeeded, message deleted) or ABANDONED (not
deleted, so the queue redelivers it). Delivery is at-least-once; every
registered handler must be safe to run twice for the same message.

Poison messages (undecodable bodies, unknown commands) and messages that have
been received ``max_receive_count`` times are moved to the dead-letter queue
when one is configured. Without one they stay on the work queue and its own
redrive policy decides their fate.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from dubstats.errors import DecodeError, TransportError
from dubstats.models.commands import CommandMessage
from dubstats.services.queue import CommandQueue, QueueMessage

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class DispatchState(str, enum.Enum):
    IDLE = "idle"
    RECEIVED = "received"
    DECODING = "decoding"
    ROUTING = "routing"
    HANDLING = "handling"
    ACKED = "acked"
    ABANDONED = "abandoned"


@dataclass
class DispatchResult:
    message_id: str
    state: DispatchState = DispatchState.IDLE
    command: Optional[str] = None
    error: Optional[str] = None
    poison: bool = False
    dead_lettered: bool = False
    trail: List[DispatchState] = field(default_factory=list)

    def move(self, state: DispatchState) -> None:
        self.state = state
        self.trail.append(state)

    @property
    def acked(self) -> bool:
        return self.state is DispatchState.ACKED


def decode_command(body: str) -> CommandMessage:
    try:
        payload = json.loads(body)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"Message body is not JSON: {exc}") from exc
    try:
        return CommandMessage.model_validate(payload)
    except ValidationError as exc:
        raise DecodeError(f"Message is not a command: {exc}") from exc


class CommandDispatcher:
    def __init__(
        self,
        queue: CommandQueue,
        handlers: Dict[str, Handler],
        *,
        max_receive_count: int = 5,
    ) -> None:
        self.queue = queue
        self.handlers = dict(handlers)
        self.max_receive_count = max(1, int(max_receive_count))

    def dispatch(self, message: QueueMessage) -> DispatchResult:
        """Process one message; never raises for message-level failures."""
        result = DispatchResult(message_id=message.message_id)
        result.move(DispatchState.RECEIVED)

        result.move(DispatchState.DECODING)
        try:
            cmd = decode_command(message.body)
        except DecodeError as exc:
            logger.error("Error deserialising message message_id=%s: %s", message.message_id, exc)
            return self._abandon(message, result, str(exc), poison=True)
        result.command = cmd.command
        logger.info("Received command command=%s message_id=%s", cmd.command, message.message_id)

        result.move(DispatchState.ROUTING)
        handler = self.handlers.get(cmd.command)
        if handler is None:
            logger.error("Invalid command command=%s message_id=%s", cmd.command, message.message_id)
            return self._abandon(message, result, f"unknown command {cmd.command!r}", poison=True)

        result.move(DispatchState.HANDLING)
        try:
            summary = handler(cmd.args)
        except Exception as exc:
            logger.exception("Command failed command=%s message_id=%s", cmd.command, message.message_id)
            return self._abandon(
                message, result, f"{type(exc).__name__}: {exc}", poison=isinstance(exc, DecodeError)
            )

        try:
            self.queue.delete(message)
        except TransportError as exc:
            logger.error(
                "Command succeeded but message could not be deleted command=%s message_id=%s: %s",
                cmd.command,
                message.message_id,
                exc,
            )
            result.error = str(exc)
            result.move(DispatchState.ABANDONED)
            return result

        result.move(DispatchState.ACKED)
        logger.info("Command completed command=%s message_id=%s summary=%s", cmd.command, message.message_id, summary)
        return result

    def _abandon(self, message: QueueMessage, result: DispatchResult, error: str, *, poison: bool) -> DispatchResult:
        result.error = error
        result.poison = poison
        result.move(DispatchState.ABANDONED)

        exhausted = message.receive_count >= self.max_receive_count
        if not (poison or exhausted):
            return result
        if not self.queue.has_dead_letter:
            logger.warning(
                "Message left for the queue redrive policy message_id=%s receive_count=%d poison=%s",
                message.message_id,
                message.receive_count,
                poison,
            )
            return result
        try:
            result.dead_lettered = self.queue.dead_letter(message)
        except TransportError as exc:
            logger.error("Could not forward message to dead-letter queue message_id=%s: %s", message.message_id, exc)
        return result
