import pytest

from poker import store as store_module
from poker.errors import RoomNotFound, ValidationError
from poker.state import Participant


def test_create_and_lookup_is_case_insensitive(store):
    room = store.create("  Team Rocket ")
    assert room.name == "Team Rocket"
    assert store.get(room.code.lower()) is room
    assert store.get(f" {room.code} ") is room
    assert len(store) == 1


@pytest.mark.parametrize("name", ["", "   ", None, 42])
def test_create_requires_a_name(store, name):
    with pytest.raises(ValidationError):
        store.create(name)
    assert len(store) == 0


def test_unknown_room(store):
    assert store.get("NOPE00") is None
    with pytest.raises(RoomNotFound):
        with store.locked("NOPE00"):
            pass


def test_code_collisions_are_retried(store, monkeypatch):
    codes = iter(["AAAAAA", "AAAAAA", "BBBBBB"])
    monkeypatch.setattr(store_module, "generate_room_code", lambda: next(codes))

    first = store.create("One")
    second = store.create("Two")

    assert first.code == "AAAAAA"
    assert second.code == "BBBBBB"


def test_gives_up_after_repeated_collisions(store, monkeypatch):
    monkeypatch.setattr(store_module, "generate_room_code", lambda: "AAAAAA")
    store.create("One")
    with pytest.raises(RuntimeError):
        store.create("Two")


def test_locked_yields_the_room(store):
    room = store.create("Team")
    with store.locked(room.code.lower()) as locked:
        assert locked is room


def test_discard(store):
    room = store.create("Team")
    assert store.discard(room.code) is room
    assert store.get(room.code) is None
    assert store.discard(room.code) is None


def test_prune_idle_only_removes_empty_stale_rooms(store):
    empty = store.create("Empty")
    busy = store.create("Busy")
    fresh = store.create("Fresh")
    busy.add_participant(Participant(id="p", name="P", avatar={"emoji": "🐶"}))
    now = empty.last_activity + 100
    busy.last_activity = empty.last_activity
    fresh.last_activity = now

    pruned = store.prune_idle(50, now=now)

    assert pruned == [empty.code]
    assert store.get(empty.code) is None
    assert store.get(busy.code) is busy
    assert store.get(fresh.code) is fresh
    assert len(store) == 2
