from typing import Optional


class RoomPulseError(Exception):
    """Base class for errors raised by the room event engine."""


class RoomNotFound(RoomPulseError):
    def __init__(self, room_id: str):
        super().__init__(f"Room {room_id} not found")
        self.room_id = room_id


class DeliveryFailure(RoomPulseError):
    """The push collaborator rejected a send."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class StoreQueryFailure(RoomPulseError):
    pass


class StoreDeleteFailure(RoomPulseError):
    pass


class RoomConflict(RoomPulseError):
    """The room's current status does not allow the requested write."""

    def __init__(self, room_id: str, status):
        super().__init__(f"Room {room_id} is {getattr(status, 'value', status)}")
        self.room_id = room_id
        self.status = status
