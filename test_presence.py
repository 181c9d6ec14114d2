import asyncio

import pytest

from spacezone.realtime.groups import BroadcastGroups
from spacezone.realtime.presence import PresenceTracker


@pytest.fixture
def offline_log():
    return []


@pytest.fixture
async def tracker(offline_log):
    async def _on_offline(user_id, last_seen):
        offline_log.append(user_id)

    presence = PresenceTracker(offline_delay=0.05, on_offline=_on_offline)
    yield presence
    presence.shutdown()


async def test_first_handle_brings_user_online(tracker, make_connection):
    first = make_connection(1)
    second = make_connection(1)

    assert tracker.register(first) is True
    assert tracker.register(second) is False
    assert tracker.is_online(1)
    assert set(tracker.lookup(1)) == {first, second}
    assert [u["userId"] for u in tracker.online_users()] == [1]


async def test_offline_only_after_delay_and_last_handle(tracker, offline_log, make_connection):
    first = make_connection(1)
    second = make_connection(1)
    tracker.register(first)
    tracker.register(second)

    assert tracker.deregister(first) is False
    assert tracker.is_online(1)

    assert tracker.deregister(second) is True
    assert not tracker.is_online(1)
    assert tracker.lookup(1) == []
    assert tracker.is_pending_offline(1)
    assert offline_log == []

    await asyncio.sleep(0.15)
    assert offline_log == [1]
    assert not tracker.is_pending_offline(1)
    assert tracker.online_users() == []


async def test_reconnect_within_window_never_goes_offline(tracker, offline_log, make_connection):
    conn = make_connection(7)
    tracker.register(conn)
    tracker.deregister(conn)

    await asyncio.sleep(0.01)
    again = make_connection(7)
    tracker.register(again)
    assert not tracker.is_pending_offline(7)

    await asyncio.sleep(0.15)
    assert offline_log == []
    assert tracker.is_online(7)


async def test_deregister_unknown_handle_is_ignored(tracker, make_connection):
    assert tracker.deregister(make_connection(3)) is False


async def test_shutdown_cancels_pending_timers(offline_log, make_connection):
    async def _on_offline(user_id, last_seen):
        offline_log.append(user_id)

    presence = PresenceTracker(offline_delay=0.05, on_offline=_on_offline)
    conn = make_connection(2)
    presence.register(conn)
    presence.deregister(conn)
    presence.shutdown()

    await asyncio.sleep(0.15)
    assert offline_log == []
    assert presence.online_users() == []


async def test_broadcast_groups_exclude_sender(make_connection):
    groups = BroadcastGroups()
    a, b, c = make_connection(1), make_connection(2), make_connection(3)
    groups.join("conversation:1", a)
    groups.join("conversation:1", b)
    groups.join("conversation:2", c)

    sent = await groups.broadcast("conversation:1", "message:new", {"x": 1}, exclude_handle=a.handle)
    assert sent == 1
    assert a.frames == []
    assert b.events() == ["message:new"]
    assert b.frames[0]["data"]["x"] == 1
    assert "timestamp" in b.frames[0]["data"]
    assert c.frames == []

    assert groups.leave("conversation:1", b) is True
    assert groups.leave("conversation:1", b) is False
    assert "conversation:1" not in b.rooms
    assert groups.members("conversation:1") == [a]
    assert groups.groups_of(c, "conversation:") == ["conversation:2"]
