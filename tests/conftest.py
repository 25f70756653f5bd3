import asyncio
from types import SimpleNamespace

import pytest


class FakeSubscription:
    def __init__(self, subject):
        self.subject = subject
        self.queue = asyncio.Queue()
        self.unsubscribed = False

    @property
    def messages(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            msg = await self.queue.get()
            if msg is None:
                return
            yield msg

    async def unsubscribe(self):
        self.unsubscribed = True
        self.queue.put_nowait(None)


class FakeConnection:
    """In-memory stand-in for a NATS connection.

    Every publish with a reply subject is answered with the scheduled
    (delay seconds, data) or (delay seconds, data, headers) replies.
    """

    def __init__(self, replies=(), fail_publish=False):
        self.replies = list(replies)
        self.fail_publish = fail_publish
        self.subscriptions = []
        self.published = []
        self.flushed = False
        self.closed = False
        self._tasks = []

    def new_inbox(self):
        return "_INBOX.test"

    async def subscribe(self, subject):
        sub = FakeSubscription(subject)
        self.subscriptions.append(sub)
        return sub

    async def publish(self, subject, payload=b"", reply="", headers=None):
        if self.fail_publish:
            raise ConnectionError("connection closed")
        self.published.append((subject, payload, reply, headers))
        for sub in self.subscriptions:
            if sub.subject != reply:
                continue
            for delay, data, *extra in self.replies:
                task = asyncio.create_task(self._deliver(sub, delay, data, *extra))
                self._tasks.append(task)

    async def _deliver(self, sub, delay, data, headers=None):
        await asyncio.sleep(delay)
        if not sub.unsubscribed:
            sub.queue.put_nowait(SimpleNamespace(subject=sub.subject, data=data, headers=headers))

    async def flush(self):
        self.flushed = True

    async def close(self):
        self.closed = True
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)


@pytest.fixture
def fake_connection():
    """Factory for in-memory NATS connections"""
    return FakeConnection


@pytest.fixture(autouse=True)
def clean_nats_env(monkeypatch):
    """Keep the user's NATS environment out of the tests"""
    for var in ("NATS_CONTEXT", "NATS_URL", "NATS_USER", "NATS_PASSWORD", "NATS_CREDS",
                "NATS_NKEY", "NATS_CERT", "NATS_KEY", "NATS_CA", "NATS_TIMEOUT"):
        monkeypatch.delenv(var, raising=False)
