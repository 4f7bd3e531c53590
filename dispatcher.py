from constants import (
    CLICK_ACTION,
    DEFAULT_GUEST_NAME,
    JOIN_REQUEST_BODY,
    JOIN_REQUEST_CHANNEL_ID,
    JOIN_REQUEST_TITLE,
    JOIN_REQUEST_TYPE,
)
from errors import DeliveryFailure
from logging_config import get_logger
from schemas.events import (
    AndroidHints,
    ApnsHints,
    DispatchResult,
    NotificationPayload,
    RoomWriteEvent,
    SkipReason,
    TransitionKind,
)
from watcher import classify

logger = get_logger(__name__)


def build_join_request_payload(room_id: str, guest_name: str = None) -> NotificationPayload:
    guest_name = guest_name or DEFAULT_GUEST_NAME
    body = JOIN_REQUEST_BODY.format(guest_name=guest_name)
    return NotificationPayload(
        title=JOIN_REQUEST_TITLE,
        body=body,
        data={
            "type": JOIN_REQUEST_TYPE,
            "roomId": room_id,
            "guestName": guest_name,
            "click_action": CLICK_ACTION,
        },
        android=AndroidHints(
            priority="high",
            channel_id=JOIN_REQUEST_CHANNEL_ID,
            notification_priority="high",
            click_action=CLICK_ACTION,
        ),
        apns=ApnsHints(sound="default", badge=1),
    )


class NotificationDispatcher:
    """Turns room write events into push notifications for the host.

    Delivery is best-effort: a rejected send is logged and reported as a
    `failed` result, never raised, so the write that triggered it is not
    retried or rolled back. Nothing is remembered between calls, so a
    redelivered event simply sends again.
    """

    def __init__(self, push_client):
        self.push_client = push_client

    async def dispatch(self, event: RoomWriteEvent) -> DispatchResult:
        room_id = event.room_id
        transition = classify(event.before, event.after)
        if transition == TransitionKind.NO_OP:
            logger.debug(f"No notifiable transition for room {room_id} (event {event.event_id})")
            return DispatchResult.skipped(SkipReason.NO_OP)

        host_token = event.after.host_fcm_token
        if not host_token:
            logger.info(f"No FCM token for host of room {room_id}, skipping notification (event {event.event_id})")
            return DispatchResult.skipped(SkipReason.NO_TOKEN)

        payload = build_join_request_payload(room_id, event.after.pending_guest_name)
        try:
            delivery_handle = await self.push_client.send(host_token, payload)
        except DeliveryFailure as e:
            logger.error(f"Push rejected for room {room_id} (event {event.event_id}): {e}")
            return DispatchResult.failed(str(e))
        except Exception as e:
            logger.error(f"Error sending notification for room {room_id} (event {event.event_id}): {e}", exc_info=True)
            return DispatchResult.failed(str(e))

        logger.info(f"Sent join request notification for room {room_id} (event {event.event_id}): {delivery_handle}")
        return DispatchResult.sent(delivery_handle)
