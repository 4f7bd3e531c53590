import asyncio
from datetime import datetime, timezone

from pydantic import ValidationError

from constants import EVENTS_BLOCK_MS, EVENTS_CONSUMER_NAME
from errors import RoomPulseError
from logging_config import get_logger
from schemas.events import RoomWriteEvent

logger = get_logger(__name__)


async def handle_event_message(dispatcher, data):
    """Parse one stored write event and hand it to the dispatcher.

    Never raises: a bad or failing event must not stop the listener.
    """
    try:
        event = RoomWriteEvent.model_validate_json(data)
    except (ValidationError, TypeError) as e:
        logger.error(f"Dropping malformed room event: {e}")
        return None

    try:
        result = await dispatcher.dispatch(event)
    except Exception as e:
        logger.error(f"Error dispatching event {event.event_id} for room {event.room_id}: {e}", exc_info=True)
        return None
    logger.debug(f"Event {event.event_id} for room {event.room_id}: {result.outcome.value}")
    return result


async def process_events(backend, dispatcher, entries):
    """Dispatch a batch of stream entries, acknowledging each once handled.

    An entry is acknowledged whatever the dispatch outcome; delivery is
    best-effort. Only a crash before the ack leaves it pending for replay.
    """
    loop = asyncio.get_running_loop()
    for entry_id, data in entries:
        if data is not None:
            await handle_event_message(dispatcher, data)
        await loop.run_in_executor(None, backend.ack_event, entry_id)
    return len(entries)


async def listen_to_room_events(backend, dispatcher, consumer: str = EVENTS_CONSUMER_NAME):
    """Background task: dispatch every room write event recorded by the store.

    Starts by replaying entries this consumer read but never acknowledged,
    then follows new entries.
    """
    logger.info(f"Starting room event listener as consumer {consumer}")
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, backend.ensure_event_group)

    pending = await loop.run_in_executor(None, lambda: backend.read_events(consumer, pending=True))
    if pending:
        logger.info(f"Replaying {len(pending)} unacknowledged room events")
        await process_events(backend, dispatcher, pending)

    try:
        while True:
            try:
                entries = await loop.run_in_executor(
                    None, lambda: backend.read_events(consumer, block_ms=EVENTS_BLOCK_MS)
                )
            except Exception as e:
                logger.error(f"Error reading room events: {e}", exc_info=True)
                await asyncio.sleep(1.0)
                continue

            if entries:
                await process_events(backend, dispatcher, entries)
    except asyncio.CancelledError:
        logger.info("Room event listener task cancelled")
        raise


async def run_sweep(sweeper):
    """Run one sweep off the event loop."""
    now = datetime.now(timezone.utc)
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, sweeper.sweep, now)


async def run_sweep_loop(sweeper, interval_seconds: int):
    """Background task: sweep expired rooms every `interval_seconds`.

    A failed sweep is logged and left for the next tick.
    """
    logger.info(f"Starting expiry sweep loop, every {interval_seconds}s")
    try:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await run_sweep(sweeper)
            except RoomPulseError as e:
                logger.error(f"Scheduled sweep failed: {e}")
            except Exception as e:
                logger.error(f"Unexpected error in scheduled sweep: {e}", exc_info=True)
    except asyncio.CancelledError:
        logger.info("Expiry sweep loop cancelled")
        raise
