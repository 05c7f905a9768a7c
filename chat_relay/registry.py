import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, Iterator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    text: str


class Connection:
    """One live client socket. ``transport`` only needs an async ``send_text``."""

    def __init__(self, transport, connection_id=None):
        self.transport = transport
        self.id = connection_id or uuid.uuid4().hex
        self.alive = True
        self._lock = asyncio.Lock()

    async def send(self, *messages: Message):
        # Messages passed together go out back to back, never interleaved
        # with another send to this connection.
        async with self._lock:
            for message in messages:
                await self.transport.send_text(message.text)

    def __repr__(self):
        state = "live" if self.alive else "closed"
        return f"<Connection {self.id} {state}>"


class ConnectionRegistry:
    def __init__(self):
        self._connections: Dict[str, Connection] = {}

    def __len__(self):
        return len(self._connections)

    def __contains__(self, connection):
        return self._connections.get(connection.id) is connection

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def register(self, connection: Connection):
        connection.alive = True
        self._connections[connection.id] = connection

    def unregister(self, connection: Connection):
        connection.alive = False
        if self._connections.get(connection.id) is connection:
            del self._connections[connection.id]

    def clear(self):
        for connection in self._connections.values():
            connection.alive = False
        self._connections.clear()

    async def send(self, connection: Connection, *messages: Message) -> bool:
        """Deliver to one connection, dropping it from the registry on failure."""
        if not connection.alive:
            return False
        try:
            await connection.send(*messages)
        except Exception as e:
            logger.warning("Delivery to %s failed: %s", connection.id, e)
            self.unregister(connection)
            return False
        return True

    async def broadcast(self, message: Message, exclude=None) -> int:
        # Snapshot first: connections registered during delivery are not targeted.
        targets = [c for c in self._connections.values() if c is not exclude]
        if not targets:
            return 0
        results = await asyncio.gather(*[self.send(c, message) for c in targets])
        return sum(results)
