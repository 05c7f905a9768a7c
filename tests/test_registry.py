"""
Unit tests for the connection registry.
"""

import itertools
import random
import unittest

from chat_relay.registry import Connection, ConnectionRegistry, Message


class FakeSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("socket is half-closed")
        self.sent.append(text)


class TestMembership(unittest.TestCase):

    def setUp(self):
        self.registry = ConnectionRegistry()

    def test_register_and_unregister(self):
        a = Connection(FakeSocket())
        b = Connection(FakeSocket())
        self.registry.register(a)
        self.registry.register(b)
        self.assertEqual(len(self.registry), 2)
        self.assertIn(a, self.registry)

        self.registry.unregister(a)
        self.assertNotIn(a, self.registry)
        self.assertFalse(a.alive)
        self.assertEqual(list(self.registry), [b])

    def test_unregister_is_idempotent(self):
        a = Connection(FakeSocket())
        self.registry.register(a)
        self.registry.unregister(a)
        self.registry.unregister(a)
        self.registry.unregister(Connection(FakeSocket()))
        self.assertEqual(len(self.registry), 0)

    def test_clear_drops_everything(self):
        conns = [Connection(FakeSocket()) for _ in range(3)]
        for c in conns:
            self.registry.register(c)
        self.registry.clear()
        self.assertEqual(len(self.registry), 0)
        self.assertTrue(all(not c.alive for c in conns))

    def test_random_interleavings_match_live_set(self):
        rng = random.Random(42)
        for _ in range(50):
            registry = ConnectionRegistry()
            conns = [Connection(FakeSocket(), connection_id=str(i)) for i in range(6)]
            expected = set()
            ops = list(itertools.chain(
                (("connect", c) for c in conns),
                (("disconnect", c) for c in conns if rng.random() < 0.5),
            ))
            rng.shuffle(ops)
            for op, conn in ops:
                if op == "connect":
                    registry.register(conn)
                    expected.add(conn.id)
                else:
                    registry.unregister(conn)
                    expected.discard(conn.id)
            # Shuffled disconnects can precede connects; only the last event counts.
            self.assertEqual({c.id for c in registry}, expected)


class TestBroadcast(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.registry = ConnectionRegistry()

    async def test_one_attempt_per_registered_connection(self):
        sockets = [FakeSocket() for _ in range(4)]
        conns = [Connection(s) for s in sockets]
        for c in conns:
            self.registry.register(c)
        self.registry.unregister(conns[0])

        delivered = await self.registry.broadcast(Message("hello"))

        self.assertEqual(delivered, 3)
        self.assertEqual(sockets[0].sent, [])
        for s in sockets[1:]:
            self.assertEqual(s.sent, ["hello"])

    async def test_failed_delivery_does_not_stop_others(self):
        good = FakeSocket()
        bad = FakeSocket(fail=True)
        good_conn = Connection(good)
        bad_conn = Connection(bad)
        self.registry.register(bad_conn)
        self.registry.register(good_conn)

        with self.assertLogs("chat_relay.registry", level="WARNING"):
            delivered = await self.registry.broadcast(Message("x"))

        self.assertEqual(delivered, 1)
        self.assertEqual(good.sent, ["x"])
        self.assertNotIn(bad_conn, self.registry)
        self.assertFalse(bad_conn.alive)

    async def test_exclude_skips_one_connection(self):
        a, b = FakeSocket(), FakeSocket()
        conn_a = Connection(a)
        self.registry.register(conn_a)
        self.registry.register(Connection(b))

        await self.registry.broadcast(Message("hi"), exclude=conn_a)

        self.assertEqual(a.sent, [])
        self.assertEqual(b.sent, ["hi"])

    async def test_broadcast_to_empty_registry(self):
        self.assertEqual(await self.registry.broadcast(Message("nobody")), 0)

    async def test_send_to_closed_connection_is_skipped(self):
        sock = FakeSocket()
        conn = Connection(sock)
        self.registry.register(conn)
        self.registry.unregister(conn)
        self.assertFalse(await self.registry.send(conn, Message("late")))
        self.assertEqual(sock.sent, [])


if __name__ == "__main__":
    unittest.main()
