from fastapi import APIRouter, HTTPException, Request
from schemas.rooms import (
    CreateRoomRequest,
    CreateRoomResponse,
    HostTokenRequest,
    JoinRequestRequest,
    RefreshRoomRequest,
    RoomDetailsResponse,
    RoomSnapshot,
    RoomStatus,
    RECLAIMABLE_STATUSES,
)
from schemas.events import SweepResult
from backend import redis_backend
from constants import ROOM_TTL_SECONDS
from errors import RoomConflict, RoomNotFound, RoomPulseError
from workers import run_sweep
import uuid
from datetime import datetime, timedelta, timezone
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _get_room_or_404(room_id: str) -> RoomSnapshot:
    room = redis_backend.get_room(room_id)
    if not room:
        logger.warning(f"Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")
    return room


def _update_room(room_id: str, changes: dict, from_statuses=None, conflict_detail: str = "Room status changed"):
    # The status check happens inside the store transaction, not on an earlier read
    try:
        return redis_backend.update_room(room_id, changes, from_statuses=from_statuses)
    except RoomNotFound:
        logger.warning(f"Update failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")
    except RoomConflict as e:
        logger.warning(f"Update failed: {e}")
        raise HTTPException(status_code=409, detail=conflict_detail)


def _to_details(room_id: str, room: RoomSnapshot) -> RoomDetailsResponse:
    return RoomDetailsResponse(
        room_id=room_id,
        status=room.status_value,
        host_name=room.host_name,
        pending_guest_name=room.pending_guest_name,
        has_host_token=bool(room.host_fcm_token),
        created_at=room.created_at.isoformat() if room.created_at else "",
        expires_at=room.expires_at.isoformat() if room.expires_at else "",
        is_expired=bool(room.expires_at and room.expires_at < _now()),
    )


@rooms_router.post("/sweep", response_model=SweepResult)
async def sweep_rooms(request: Request):
    """Run one expiry sweep now, outside the regular schedule."""
    logger.info(f"Manual sweep requested from {request.client.host if request.client else 'unknown'}")
    try:
        return await run_sweep(request.app.state.sweeper)
    except RoomPulseError as e:
        raise HTTPException(status_code=503, detail=f"Sweep failed: {e}")


@rooms_router.post("/", response_model=CreateRoomResponse, status_code=201)
def create_room(room: CreateRoomRequest):
    expiry_seconds = room.expiry_seconds or ROOM_TTL_SECONDS
    room_id = uuid.uuid4().hex
    now = _now()
    snapshot = RoomSnapshot(
        status=RoomStatus.WAITING,
        host_name=room.host_name,
        host_fcm_token=room.host_fcm_token or None,
        created_at=now,
        expires_at=now + timedelta(seconds=expiry_seconds),
    )
    try:
        redis_backend.create_room(room_id, snapshot)
    except Exception as e:
        logger.error(f"Error creating room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create room")

    logger.info(f"Room {room_id} created successfully: host={room.host_name}, expires_at={snapshot.expires_at.isoformat()}")
    return CreateRoomResponse(room_id=room_id, status=RoomStatus.WAITING.value, expires_at=snapshot.expires_at.isoformat())



@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
def get_room_details(room_id: str):
    room = _get_room_or_404(room_id)
    return _to_details(room_id, room)


@rooms_router.post("/{room_id}/join-request", response_model=RoomDetailsResponse)
def request_join(room_id: str, join_request: JoinRequestRequest):
    logger.info(f"Join request for room {room_id} from guest {join_request.guest_name}")
    room = _get_room_or_404(room_id)
    if room.status not in RECLAIMABLE_STATUSES:
        logger.warning(f"Join request failed: Room {room_id} is {room.status_value}")
        raise HTTPException(status_code=409, detail="Room is not accepting join requests")
    if room.expires_at and room.expires_at < _now():
        logger.warning(f"Join request failed: Room {room_id} expired")
        raise HTTPException(status_code=400, detail="Room expired")

    event = _update_room(
        room_id,
        {
            "status": RoomStatus.PENDING_JOIN,
            "pending_guest_name": (join_request.guest_name or "").strip() or None,
        },
        from_statuses=RECLAIMABLE_STATUSES,
        conflict_detail="Room is not accepting join requests",
    )
    return _to_details(room_id, event.after)


@rooms_router.post("/{room_id}/accept", response_model=RoomDetailsResponse)
def accept_join(room_id: str):
    event = _update_room(
        room_id,
        {"status": RoomStatus.ACTIVE},
        from_statuses=[RoomStatus.PENDING_JOIN],
        conflict_detail="No pending join request",
    )
    logger.info(f"Room {room_id} is now active with guest {event.after.pending_guest_name}")
    return _to_details(room_id, event.after)


@rooms_router.post("/{room_id}/reject", response_model=RoomDetailsResponse)
def reject_join(room_id: str):
    event = _update_room(
        room_id,
        {"status": RoomStatus.WAITING, "pending_guest_name": None},
        from_statuses=[RoomStatus.PENDING_JOIN],
        conflict_detail="No pending join request",
    )
    logger.info(f"Join request for room {room_id} rejected")
    return _to_details(room_id, event.after)


@rooms_router.put("/{room_id}/host-token", response_model=RoomDetailsResponse)
def set_host_token(room_id: str, token_request: HostTokenRequest):
    event = _update_room(room_id, {"host_fcm_token": token_request.host_fcm_token or None})
    logger.info(f"Host token for room {room_id} {'updated' if event.after.host_fcm_token else 'cleared'}")
    return _to_details(room_id, event.after)


@rooms_router.post("/{room_id}/refresh", response_model=RoomDetailsResponse)
def refresh_room(room_id: str, refresh_request: RefreshRoomRequest):
    expiry_seconds = refresh_request.expiry_seconds or ROOM_TTL_SECONDS
    event = _update_room(room_id, {"expires_at": _now() + timedelta(seconds=expiry_seconds)})
    logger.info(f"Room {room_id} refreshed, expires_at={event.after.expires_at.isoformat()}")
    return _to_details(room_id, event.after)


@rooms_router.delete("/{room_id}")
def delete_room(room_id: str):
    if not redis_backend.delete_room(room_id):
        raise HTTPException(status_code=404, detail="Room not found")
    logger.info(f"Room {room_id} deleted")
    return {"message": "Room deleted successfully"}
