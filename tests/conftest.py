"""Shared test fixtures for chatsync."""

import asyncio
from datetime import datetime, timezone

import pytest

from chatsync.backends.memory import MemoryGateway
from chatsync.engine import SyncEngine
from chatsync.errors import StorageUnavailable
from chatsync.replies import ReplyGenerator
from chatsync.store import seed_chats

FIXED_NOW = datetime(2025, 1, 15, 10, 0, 0, 123000, tzinfo=timezone.utc)


class FlakyGateway(MemoryGateway):
    """Memory gateway whose saves can be made to fail or to take a while."""

    def __init__(self, blob=None, save_delay=0.0, load_delay=0.0):
        super().__init__(blob)
        self.fail_saves = False
        self.save_delay = save_delay
        self.load_delay = load_delay
        self.loads = 0

    async def load(self):
        self.loads += 1
        blob = await super().load()
        if self.load_delay:
            await asyncio.sleep(self.load_delay)
        return blob

    async def save(self, blob):
        if self.save_delay:
            await asyncio.sleep(self.save_delay)
        if self.fail_saves:
            raise StorageUnavailable("disk on fire")
        await super().save(blob)


class ManualReplyGenerator(ReplyGenerator):
    """Reply generator the test resolves by hand, one call at a time."""

    def __init__(self):
        self.calls = []  # (text, future)

    async def generate(self, text):
        future = asyncio.get_running_loop().create_future()
        self.calls.append((text, future))
        return await future

    async def wait_for_calls(self, count):
        for _ in range(100):
            if len(self.calls) >= count:
                return
            await asyncio.sleep(0)
        raise AssertionError(f"expected {count} reply requests, got {len(self.calls)}")

    def resolve(self, index, reply):
        self.calls[index][1].set_result(reply)

    def fail(self, index, exc):
        self.calls[index][1].set_exception(exc)


@pytest.fixture
def fixed_now():
    """A UTC instant with whole milliseconds."""
    return FIXED_NOW


@pytest.fixture
def seed():
    """The seed collection at a fixed point in time."""
    return seed_chats(FIXED_NOW)


@pytest.fixture
def make_gateway():
    """Factory for memory gateways that can fail or stall on demand."""
    return FlakyGateway


@pytest.fixture
def gateway(make_gateway):
    return make_gateway()


@pytest.fixture
def replies():
    return ManualReplyGenerator()


@pytest.fixture
def engine(gateway, replies, seed):
    """An engine over the seed chats with a controllable reply generator."""
    return SyncEngine(gateway, replies, seed)


@pytest.fixture
def store_path(tmp_path):
    """Location of a JSON store that does not exist yet."""
    return tmp_path / "data" / "chats.json"
