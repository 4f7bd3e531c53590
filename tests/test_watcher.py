import pytest

from conftest import make_room
from schemas.events import TransitionKind
from schemas.rooms import RoomStatus
from watcher import classify


@pytest.mark.parametrize("before_status", [None, "waiting", "active", "finished", "someNewStatus"])
def test_entering_pending_join_is_a_join_request(before_status):
    before = make_room(before_status) if before_status else None
    after = make_room("pendingJoin", host_fcm_token="tok")
    assert classify(before, after) == TransitionKind.JOIN_REQUESTED


@pytest.mark.parametrize("before_status,after_status", [
    ("pendingJoin", "pendingJoin"),
    ("waiting", "waiting"),
    ("waiting", "active"),
    ("pendingJoin", "active"),
    ("pendingJoin", "waiting"),
    ("active", "finished"),
])
def test_other_pairs_are_no_op(before_status, after_status):
    assert classify(make_room(before_status), make_room(after_status)) == TransitionKind.NO_OP


def test_room_created_directly_in_pending_join():
    assert classify(None, make_room(RoomStatus.PENDING_JOIN)) == TransitionKind.JOIN_REQUESTED


def test_room_created_waiting_is_no_op():
    assert classify(None, make_room(RoomStatus.WAITING)) == TransitionKind.NO_OP


def test_missing_host_token_does_not_change_classification():
    after = make_room("pendingJoin", host_fcm_token=None)
    assert classify(make_room("waiting"), after) == TransitionKind.JOIN_REQUESTED


def test_repeated_writes_in_pending_join_do_not_refire():
    first = make_room("pendingJoin", pending_guest_name="Ann")
    second = make_room("pendingJoin", pending_guest_name="Bob")
    assert classify(first, second) == TransitionKind.NO_OP


def test_each_write_is_classified_on_its_own_pair():
    waiting = make_room("waiting")
    pending = make_room("pendingJoin")
    active = make_room("active")
    assert classify(waiting, pending) == TransitionKind.JOIN_REQUESTED
    assert classify(pending, active) == TransitionKind.NO_OP
    assert classify(active, pending) == TransitionKind.JOIN_REQUESTED


def test_unknown_status_is_kept_as_string():
    room = make_room("spectating")
    assert room.status == "spectating"
    assert make_room("pendingJoin").status is RoomStatus.PENDING_JOIN
