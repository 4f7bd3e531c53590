import uuid
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from schemas.rooms import RoomSnapshot


class RoomWriteEvent(BaseModel):
    """One write to a room document, as delivered by the store.

    `before` is None when the write created the room.
    """
    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    room_id: str
    before: Optional[RoomSnapshot] = None
    after: RoomSnapshot


class TransitionKind(str, Enum):
    JOIN_REQUESTED = "JoinRequested"
    NO_OP = "NoOp"


class DispatchOutcome(str, Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


class SkipReason(str, Enum):
    NO_OP = "NoOp"
    NO_TOKEN = "NoToken"


class DispatchResult(BaseModel):
    outcome: DispatchOutcome
    delivery_handle: Optional[str] = None
    skip_reason: Optional[SkipReason] = None
    error: Optional[str] = None

    @classmethod
    def sent(cls, delivery_handle: str) -> "DispatchResult":
        return cls(outcome=DispatchOutcome.SENT, delivery_handle=delivery_handle)

    @classmethod
    def skipped(cls, reason: SkipReason) -> "DispatchResult":
        return cls(outcome=DispatchOutcome.SKIPPED, skip_reason=reason)

    @classmethod
    def failed(cls, error: str) -> "DispatchResult":
        return cls(outcome=DispatchOutcome.FAILED, error=error)


class AndroidHints(BaseModel):
    priority: str = "high"
    channel_id: str
    notification_priority: str = "high"
    click_action: Optional[str] = None


class ApnsHints(BaseModel):
    sound: str = "default"
    badge: int = 1


class NotificationPayload(BaseModel):
    """Platform-agnostic push notification.

    `data` is for client-side deep-linking and does not depend on the
    human-readable title/body. Values are strings because FCM data blocks
    only carry strings.
    """
    title: str
    body: str
    data: Dict[str, str] = Field(default_factory=dict)
    android: AndroidHints
    apns: ApnsHints = Field(default_factory=ApnsHints)


class SweepResult(BaseModel):
    sweep_id: str
    deleted_count: int
    room_ids: List[str] = Field(default_factory=list)
