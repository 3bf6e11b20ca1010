import asyncio
import json

import pytest

from main import create_app
from poker.config import Settings
from poker.dispatch import Broadcaster
from poker.presence import PresenceManager
from poker.rooms import RoomService
from poker.store import RoomStore

GRACE = 0.05


class FakeSocket:
    """Stands in for a WebSocketResponse; records what was sent"""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent = []

    async def send_str(self, data: str) -> None:
        if self.fail:
            raise ConnectionResetError("socket gone")
        self.sent.append(data if data == "pong" else json.loads(data))

    def events(self, event_type=None):
        messages = [m for m in self.sent if isinstance(m, dict)]
        if event_type is None:
            return messages
        return [m for m in messages if m.get("type") == event_type]


@pytest.fixture
def store():
    return RoomStore()


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def rooms(store, broadcaster):
    return RoomService(store, broadcaster)


@pytest.fixture
def presence(rooms):
    return PresenceManager(rooms, grace_seconds=GRACE)


@pytest.fixture
def room_code(rooms):
    return rooms.create_room("Sprint 42")["code"]


@pytest.fixture
def settings():
    return Settings(grace_seconds=0.3, rate_limit=0, cleanup_interval=3600)


@pytest.fixture
async def client(aiohttp_client, settings):
    return await aiohttp_client(create_app(settings))


async def recv_until(ws, msg_type, max_messages=20, timeout=2.0):
    """Receive WS messages until one of the expected type shows up"""
    for _ in range(max_messages):
        data = await asyncio.wait_for(ws.receive_json(), timeout)
        if data.get("type") == msg_type:
            return data
    raise AssertionError(f"Never received {msg_type} after {max_messages} messages")


@pytest.fixture
def sockets():
    return FakeSocket
