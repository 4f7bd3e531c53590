import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_room
from dispatcher import NotificationDispatcher
from errors import StoreQueryFailure
from schemas.events import DispatchOutcome, RoomWriteEvent
from workers import handle_event_message, listen_to_room_events, process_events, run_sweep, run_sweep_loop


@pytest.mark.asyncio
async def test_stored_event_round_trips_into_dispatch(push_client):
    event = RoomWriteEvent(
        room_id="r1",
        before=make_room("waiting", host_fcm_token="tok"),
        after=make_room("pendingJoin", host_fcm_token="tok", pending_guest_name="Ann"),
    )
    result = await handle_event_message(NotificationDispatcher(push_client), event.model_dump_json())

    assert result.outcome == DispatchOutcome.SENT
    address, payload = push_client.sent[0]
    assert address == "tok"
    assert payload.data["roomId"] == "r1"


@pytest.mark.asyncio
async def test_malformed_message_is_dropped(push_client):
    result = await handle_event_message(NotificationDispatcher(push_client), "{not json")
    assert result is None
    assert push_client.sent == []


@pytest.mark.asyncio
async def test_dispatch_crash_does_not_escape():
    dispatcher = MagicMock()
    dispatcher.dispatch = AsyncMock(side_effect=RuntimeError("boom"))
    event = RoomWriteEvent(room_id="r1", after=make_room("pendingJoin"))
    assert await handle_event_message(dispatcher, event.model_dump_json()) is None


@pytest.mark.asyncio
async def test_every_entry_is_acked_whatever_the_outcome(rejecting_push_client):
    backend = MagicMock()
    event = RoomWriteEvent(room_id="r1", after=make_room("pendingJoin", host_fcm_token="tok"))
    entries = [("1-0", event.model_dump_json()), ("2-0", "{not json"), ("3-0", None)]

    handled = await process_events(backend, NotificationDispatcher(rejecting_push_client), entries)

    assert handled == 3
    assert len(rejecting_push_client.sent) == 1
    assert [c.args for c in backend.ack_event.call_args_list] == [("1-0",), ("2-0",), ("3-0",)]


@pytest.mark.asyncio
async def test_listener_replays_pending_entries_before_new_ones(push_client):
    event = RoomWriteEvent(room_id="r1", after=make_room("pendingJoin", host_fcm_token="tok"))
    backend = MagicMock()
    backend.read_events.side_effect = lambda consumer, pending=False, **kwargs: (
        [("1-0", event.model_dump_json())] if pending else []
    )

    task = asyncio.create_task(listen_to_room_events(backend, NotificationDispatcher(push_client), consumer="worker-1"))
    while backend.read_events.call_count < 2:
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    backend.ensure_event_group.assert_called_once()
    first = backend.read_events.call_args_list[0]
    assert first.args == ("worker-1",) and first.kwargs["pending"] is True
    backend.ack_event.assert_any_call("1-0")
    assert len(push_client.sent) == 1


@pytest.mark.asyncio
async def test_run_sweep_passes_an_aware_timestamp():
    sweeper = MagicMock()
    await run_sweep(sweeper)
    (now,), _ = sweeper.sweep.call_args
    assert now.tzinfo is not None


@pytest.mark.asyncio
async def test_sweep_loop_survives_failed_sweeps():
    sweeper = MagicMock()
    sweeper.sweep.side_effect = StoreQueryFailure("redis down")

    task = asyncio.create_task(run_sweep_loop(sweeper, 0))
    while sweeper.sweep.call_count < 2:
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert sweeper.sweep.call_count >= 2
