from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RoomStatus(str, Enum):
    WAITING = "waiting"
    PENDING_JOIN = "pendingJoin"
    ACTIVE = "active"
    FINISHED = "finished"


# Only rooms still in matchmaking may be reclaimed by the expiry sweep
RECLAIMABLE_STATUSES = (RoomStatus.WAITING, RoomStatus.PENDING_JOIN)


class RoomSnapshot(BaseModel):
    """State of one room document as read from the store.

    Field aliases follow the stored (camelCase) names; snake_case names are
    accepted too. Status strings this service does not know about are kept
    as plain strings.
    """
    model_config = ConfigDict(populate_by_name=True)

    status: Union[RoomStatus, str] = Field(union_mode="left_to_right")
    host_name: Optional[str] = Field(default=None, alias="hostName")
    host_fcm_token: Optional[str] = Field(default=None, alias="hostFcmToken")
    pending_guest_name: Optional[str] = Field(default=None, alias="pendingGuestName")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")

    @field_validator("created_at", "expires_at")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def status_value(self) -> str:
        return str(getattr(self.status, "value", self.status))

    def to_document(self) -> dict:
        """Serialize to the stored field names, dropping unset values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CreateRoomRequest(BaseModel):
    host_name: Optional[str] = None
    host_fcm_token: Optional[str] = None
    expiry_seconds: Optional[int] = None

class CreateRoomResponse(BaseModel):
    room_id: str
    status: str
    expires_at: str

class JoinRequestRequest(BaseModel):
    guest_name: Optional[str] = None

class HostTokenRequest(BaseModel):
    host_fcm_token: Optional[str] = None

class RefreshRoomRequest(BaseModel):
    expiry_seconds: Optional[int] = None

class RoomDetailsResponse(BaseModel):
    room_id: str
    status: str
    host_name: Optional[str]
    pending_guest_name: Optional[str]
    has_host_token: bool
    created_at: str
    expires_at: str
    is_expired: bool
