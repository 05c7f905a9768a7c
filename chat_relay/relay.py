import asyncio
import logging
from collections import deque
from typing import Optional, Set

from chat_relay.registry import Connection, ConnectionRegistry, Message

logger = logging.getLogger(__name__)

FALLBACK_TEXT = "AI response error"


class FanOutRelay:
    """Bridges client events to registry broadcasts and optional AI replies.

    ``completer`` is any object with a blocking ``complete(prompt) -> str``.
    Replies run as detached tasks so a slow completion never holds up the
    broadcast of other messages.
    """

    def __init__(self, registry=None, completer=None, echo_to_sender=True,
                 history_size=30, max_message_length=0):
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.completer = completer
        self.echo_to_sender = echo_to_sender
        self.max_message_length = max_message_length
        self.history = deque(maxlen=history_size)
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings, completer=None):
        return cls(
            completer=completer,
            echo_to_sender=settings.echo_to_sender,
            history_size=settings.history_size,
            max_message_length=settings.max_message_length,
        )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def on_connect(self, connection: Connection):
        self.registry.register(connection)
        logger.info("Client %s connected (%d connected)", connection.id, len(self.registry))
        history = list(self.history)
        if history:
            # Held as one send so live broadcasts queue behind the replay.
            await self.registry.send(connection, *history)

    async def on_message(self, connection: Connection, payload: str) -> Optional[asyncio.Task]:
        if not connection.alive:
            logger.warning("Dropping message from closed connection %s", connection.id)
            return None
        if self.max_message_length and len(payload) > self.max_message_length:
            logger.warning("Dropping %d-character message from %s", len(payload), connection.id)
            return None

        logger.debug("New message from %s: %r", connection.id, payload)
        message = Message(payload)
        self.history.append(message)
        exclude = None if self.echo_to_sender else connection
        await self.registry.broadcast(message, exclude=exclude)

        if self.completer is None:
            return None
        task = asyncio.ensure_future(self._reply(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def on_disconnect(self, connection: Connection):
        self.registry.unregister(connection)
        logger.info("Client %s disconnected (%d connected)", connection.id, len(self.registry))

    async def _reply(self, prompt: str):
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, self.completer.complete, prompt)
        except Exception as e:
            logger.warning("AI response failed: %s", e)
            await self.registry.broadcast(Message(FALLBACK_TEXT))
            return
        reply = Message(text)
        self.history.append(reply)
        await self.registry.broadcast(reply)

    async def drain(self):
        """Wait for every in-flight reply to be broadcast."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    async def close(self):
        await self.drain()
        self.registry.clear()
