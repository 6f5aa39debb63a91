"""Message router — dispatches incoming messages to handlers.

Routes messages by their ``type`` to the registered gateway handler.
Handlers are async callables that receive the parsed message and the
sender's session id. They may return an optional response dict that
should be sent back to the sender.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

import pydantic

from tableserver.models.messages import GameMessage, parse_message
from tableserver.util.errors import ValidationError

log = logging.getLogger(__name__)

# Handler signature: async (message, sender_sid) -> optional response dict
Handler = Callable[[GameMessage, int], Awaitable[Optional[dict[str, Any]]]]


class Router:
    """Message dispatcher.

    Register handlers for message types, then call route() with raw dicts.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def register(self, msg_type: str, handler: Handler) -> None:
        """Register a handler for a message type.

        Args:
            msg_type: The message type string (e.g. ``"patchWorld"``).
            handler: Async callable ``(message, sender_sid) -> dict | None``.
        """
        self._handlers[msg_type] = handler
        log.debug("Handler registered: %s", msg_type)

    @property
    def registered_types(self) -> list[str]:
        """List of all message types that have a handler."""
        return list(self._handlers.keys())

    async def route(self, raw: dict[str, Any], sender_sid: int) -> Optional[dict[str, Any]]:
        """Parse and dispatch a raw message dict.

        Returns:
            Response dict from the handler, or None if there is no handler
            or the handler returned nothing.

        Raises:
            ValidationError: If the message does not match its type's model.
        """
        try:
            message = parse_message(raw)
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Malformed {raw.get('type', '?')} message: {e.error_count()} error(s)"
            ) from e
        handler = self._handlers.get(message.type)
        if handler is None:
            log.debug("No handler for message type: %s", message.type)
            return None
        return await handler(message, sender_sid)
