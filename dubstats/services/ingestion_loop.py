from __future__ import annotations

import logging
from typing import Optional

from dubstats.errors import TransportError
from dubstats.services.dispatcher import CommandDispatcher
from dubstats.services.queue import CommandQueue

logger = logging.getLogger(__name__)


class IngestionLoop:
    """Long-poll the command queue and dispatch messages one at a time.

    The receive call's own wait bounds the polling rate, so an empty batch is
    followed immediately by the next poll. A TransportError while receiving is
    fatal: it is logged and re-raised for the process to exit.
    """

    def __init__(self, queue: CommandQueue, dispatcher: CommandDispatcher) -> None:
        self.queue = queue
        self.dispatcher = dispatcher

    def run(self, *, max_polls: Optional[int] = None) -> int:
        """Run until the transport fails, or for ``max_polls`` receive calls. Returns messages dispatched."""
        dispatched = 0
        polls = 0
        while max_polls is None or polls < max_polls:
            polls += 1
            try:
                messages = self.queue.receive()
            except TransportError:
                logger.exception("Issue receiving messages queue=%s", self.queue.queue_url)
                raise
            if not messages:
                continue
            logger.debug("Received batch size=%d", len(messages))
            for message in messages:
                self.dispatcher.dispatch(message)
                dispatched += 1
        return dispatched
