import os
import sys
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest

# Ensure the project root (flat module layout) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from backend import RedisBackend
from errors import DeliveryFailure, RoomConflict, RoomNotFound
from schemas.events import RoomWriteEvent
from schemas.rooms import RoomSnapshot


NOW = datetime(2025, 11, 17, 12, 0, 0, tzinfo=timezone.utc)


def make_room(status, **fields) -> RoomSnapshot:
    return RoomSnapshot(status=status, **fields)


class FakeRoomStore:
    """In-memory stand-in for RedisBackend."""

    def __init__(self):
        self.rooms = {}
        self.events = []
        self.delete_calls = []

    def get_room(self, room_id):
        return self.rooms.get(room_id)

    def create_room(self, room_id, room):
        event = RoomWriteEvent(room_id=room_id, before=self.rooms.get(room_id), after=room)
        self.rooms[room_id] = room
        self.events.append(event)
        return event

    def update_room(self, room_id, changes, from_statuses=None):
        before = self.rooms.get(room_id)
        if before is None:
            raise RoomNotFound(room_id)
        if from_statuses is not None and before.status not in from_statuses:
            raise RoomConflict(room_id, before.status)
        after = before.model_copy(update=changes)
        self.rooms[room_id] = after
        event = RoomWriteEvent(room_id=room_id, before=before, after=after)
        self.events.append(event)
        return event

    def delete_room(self, room_id):
        return self.rooms.pop(room_id, None) is not None

    def query_expired_rooms(self, now, statuses):
        return [
            room_id for room_id, room in self.rooms.items()
            if room.expires_at is not None and room.expires_at < now and room.status in statuses
        ]

    def delete_rooms(self, room_ids, only_statuses=None):
        self.delete_calls.append((list(room_ids), only_statuses))
        deleted = []
        for room_id in room_ids:
            room = self.rooms.get(room_id)
            if room is None:
                continue
            if only_statuses is not None and room.status not in only_statuses:
                continue
            del self.rooms[room_id]
            deleted.append(room_id)
        return deleted


class RecordingPushClient:
    def __init__(self, reject: Exception = None):
        self.sent = []
        self.reject = reject

    async def send(self, address, payload):
        self.sent.append((address, payload))
        if self.reject is not None:
            raise self.reject
        return f"projects/test/messages/{len(self.sent)}"


@pytest.fixture()
def store():
    return FakeRoomStore()


@pytest.fixture()
def push_client():
    return RecordingPushClient()


@pytest.fixture()
def rejecting_push_client():
    return RecordingPushClient(reject=DeliveryFailure("registration-token-not-registered", status_code=404))


@pytest.fixture()
def expiry_fixture(store):
    """Rooms A-D: only A and B are expired and still in matchmaking."""
    past = NOW - timedelta(minutes=5)
    future = NOW + timedelta(minutes=5)
    store.rooms.update({
        "A": make_room("waiting", expires_at=past),
        "B": make_room("pendingJoin", expires_at=past),
        "C": make_room("active", expires_at=past),
        "D": make_room("waiting", expires_at=future),
    })
    return store


@pytest.fixture()
def fake_redis():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture()
def redis_store(fake_redis):
    """RedisBackend running against an in-process Redis."""
    return RedisBackend(client=fake_redis, events_client=fake_redis)
