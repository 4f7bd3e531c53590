import redis
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Tuple

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, EVENTS_STREAM_MAXLEN
from errors import RoomConflict, RoomNotFound, StoreDeleteFailure, StoreQueryFailure
from redis_keys import REDIS_META_KEY, REDIS_EXPIRY_INDEX_KEY, REDIS_EVENTS_STREAM, REDIS_EVENTS_GROUP
from schemas.events import RoomWriteEvent
from schemas.rooms import RoomSnapshot
from logging_config import get_logger

logger = get_logger(__name__)

# Connections are opened lazily on first command; the app pings on startup.
redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)


class RedisBackend:
    """Room document store on Redis.

    Each room is a hash under `room:meta:{id}`; `rooms:expiry` indexes rooms
    by expiresAt for the sweep. Writes run in a WATCH/MULTI transaction that
    also appends the write event to the `rooms:events` stream, so events are
    recorded in the store's write order and survive listener restarts.
    """

    def __init__(self, client: Optional[redis.Redis] = None, events_client: Optional[redis.Redis] = None):
        self.redis_client = client if client is not None else redis_client
        # Separate connection for blocking stream reads
        self.events_client = events_client if events_client is not None else redis.Redis(
            host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True
        )
        logger.info(f"Initializing RedisBackend with connection to {REDIS_HOST}:{REDIS_PORT}")

    def ping(self) -> bool:
        return bool(self.redis_client.ping())

    def get_room(self, room_id: str) -> Optional[RoomSnapshot]:
        logger.debug(f"Fetching room {room_id}")
        room_data = self.redis_client.hgetall(REDIS_META_KEY.format(slug=room_id))
        if not room_data:
            logger.debug(f"Room {room_id} not found in Redis")
            return None
        return RoomSnapshot.model_validate(room_data)

    def create_room(self, room_id: str, room: RoomSnapshot) -> RoomWriteEvent:
        logger.info(f"Creating room {room_id} with status {room.status_value}, expires_at {room.expires_at}")
        return self._write(room_id, lambda before: room)

    def update_room(self, room_id: str, changes: dict, from_statuses: Optional[Iterable[str]] = None) -> RoomWriteEvent:
        """Apply field changes to an existing room; a None value clears the field.

        With `from_statuses`, the write only goes through if the room is in one
        of those statuses when the transaction reads it; otherwise RoomConflict.
        """
        logger.debug(f"Updating room {room_id}: {sorted(changes)}")
        allowed = {str(getattr(s, "value", s)) for s in from_statuses} if from_statuses is not None else None

        def apply(before: Optional[RoomSnapshot]) -> RoomSnapshot:
            if before is None:
                raise RoomNotFound(room_id)
            if allowed is not None and before.status_value not in allowed:
                raise RoomConflict(room_id, before.status)
            return before.model_copy(update=changes)

        return self._write(room_id, apply)

    def _write(self, room_id: str, build_after: Callable[[Optional[RoomSnapshot]], RoomSnapshot]) -> RoomWriteEvent:
        key = REDIS_META_KEY.format(slug=room_id)

        def run(pipe):
            # Runs again from the top if the key changes before EXEC
            before_raw = pipe.hgetall(key)
            before = RoomSnapshot.model_validate(before_raw) if before_raw else None
            after = build_after(before)
            event = RoomWriteEvent(room_id=room_id, before=before, after=after)

            pipe.multi()
            pipe.delete(key)
            pipe.hset(key, mapping={k: str(v) for k, v in after.to_document().items()})
            if after.expires_at is not None:
                pipe.zadd(REDIS_EXPIRY_INDEX_KEY, {room_id: after.expires_at.timestamp()})
            else:
                pipe.zrem(REDIS_EXPIRY_INDEX_KEY, room_id)
            pipe.xadd(REDIS_EVENTS_STREAM, {"event": event.model_dump_json()}, maxlen=EVENTS_STREAM_MAXLEN, approximate=True)
            return event

        event = self.redis_client.transaction(run, key, value_from_callable=True)
        before_status = event.before.status_value if event.before else None
        logger.debug(f"Room {room_id} written (event {event.event_id}): {before_status} -> {event.after.status_value}")
        return event

    def delete_room(self, room_id: str) -> bool:
        logger.info(f"Deleting room {room_id}")
        pipe = self.redis_client.pipeline(transaction=True)
        pipe.delete(REDIS_META_KEY.format(slug=room_id))
        pipe.zrem(REDIS_EXPIRY_INDEX_KEY, room_id)
        deleted, _ = pipe.execute()
        logger.debug(f"Room {room_id} deleted: meta_key={deleted}")
        return bool(deleted)

    def query_expired_rooms(self, now: datetime, statuses: Iterable[str]) -> List[str]:
        """Room ids with expiresAt strictly before `now` and a status in `statuses`."""
        wanted = {str(getattr(s, "value", s)) for s in statuses}
        try:
            candidates = self.redis_client.zrangebyscore(REDIS_EXPIRY_INDEX_KEY, "-inf", f"({now.timestamp()}")
            if not candidates:
                return []
            pipe = self.redis_client.pipeline(transaction=False)
            for room_id in candidates:
                pipe.hget(REDIS_META_KEY.format(slug=room_id), "status")
            room_statuses = pipe.execute()
        except redis.RedisError as e:
            raise StoreQueryFailure(f"Expired room query failed: {e}") from e

        matched = [room_id for room_id, status in zip(candidates, room_statuses) if status in wanted]
        logger.debug(f"{len(candidates)} rooms past expiry, {len(matched)} in {sorted(wanted)}")
        return matched

    def delete_rooms(self, room_ids: List[str], only_statuses: Optional[Iterable[str]] = None) -> List[str]:
        """Delete rooms in one MULTI/EXEC batch and return the ids actually removed.

        With `only_statuses`, the batch runs under WATCH and skips rooms whose
        status has moved out of that set since they were queried.
        """
        if not room_ids:
            return []
        keys = [REDIS_META_KEY.format(slug=room_id) for room_id in room_ids]
        try:
            if only_statuses is None:
                pipe = self.redis_client.pipeline(transaction=True)
                for key in keys:
                    pipe.delete(key)
                pipe.zrem(REDIS_EXPIRY_INDEX_KEY, *room_ids)
                results = pipe.execute()
                return [room_id for room_id, deleted in zip(room_ids, results) if deleted]

            wanted = {str(getattr(s, "value", s)) for s in only_statuses}

            def run(pipe):
                still_reclaimable = [
                    (room_id, key) for room_id, key in zip(room_ids, keys)
                    if pipe.hget(key, "status") in wanted
                ]
                pipe.multi()
                for _, key in still_reclaimable:
                    pipe.delete(key)
                if still_reclaimable:
                    pipe.zrem(REDIS_EXPIRY_INDEX_KEY, *[room_id for room_id, _ in still_reclaimable])
                return [room_id for room_id, _ in still_reclaimable]

            return self.redis_client.transaction(run, *keys, value_from_callable=True)
        except redis.RedisError as e:
            raise StoreDeleteFailure(f"Batch delete of {len(room_ids)} rooms failed: {e}") from e

    def ensure_event_group(self):
        """Create the dispatcher consumer group (and the stream) if missing."""
        try:
            self.events_client.xgroup_create(REDIS_EVENTS_STREAM, REDIS_EVENTS_GROUP, id="0", mkstream=True)
            logger.info(f"Created consumer group {REDIS_EVENTS_GROUP} on {REDIS_EVENTS_STREAM}")
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise
            logger.debug(f"Consumer group {REDIS_EVENTS_GROUP} already exists")

    def read_events(self, consumer: str, pending: bool = False, count: int = 100, block_ms: Optional[int] = None) -> List[Tuple[str, Optional[str]]]:
        """Read write events for `consumer` as (entry_id, event_json) pairs.

        `pending=True` re-reads entries delivered to this consumer but never
        acknowledged (e.g. before a restart); otherwise only new entries.
        The JSON is None for pending entries trimmed from the stream.
        """
        response = self.events_client.xreadgroup(
            REDIS_EVENTS_GROUP,
            consumer,
            {REDIS_EVENTS_STREAM: "0" if pending else ">"},
            count=count,
            block=None if pending else block_ms,
        )
        events = []
        for _, entries in response or []:
            for entry_id, fields in entries:
                events.append((entry_id, (fields or {}).get("event")))
        return events

    def ack_event(self, entry_id: str) -> int:
        return self.events_client.xack(REDIS_EVENTS_STREAM, REDIS_EVENTS_GROUP, entry_id)


redis_backend = RedisBackend()
