from typing import Optional

from schemas.events import TransitionKind
from schemas.rooms import RoomSnapshot, RoomStatus


def classify(before: Optional[RoomSnapshot], after: RoomSnapshot) -> TransitionKind:
    """Classify one write to a room from its before/after snapshots.

    Edge-triggered: only a write that moves the room *into* pendingJoin is a
    join request. A missing `before` (room creation) counts as "no status",
    so a room created directly in pendingJoin is a join request too. Whether
    the host can actually be reached is decided later by the dispatcher.
    """
    before_status = before.status if before is not None else None
    if before_status != RoomStatus.PENDING_JOIN and after.status == RoomStatus.PENDING_JOIN:
        return TransitionKind.JOIN_REQUESTED
    return TransitionKind.NO_OP
