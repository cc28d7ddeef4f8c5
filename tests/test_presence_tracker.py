"""Tests for presence tracking."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from artchat.core.conversation_id import user_room
from artchat.schemas.user import ConnectionIdentity
from artchat.services.presence_tracker import PresenceTracker
from tests.fixtures.realtime_fixtures import FakeWebSocket


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def clocked_presence(db, connections, clock):
    return PresenceTracker(connections, clock=clock)


async def _connect(connections, tracker, user):
    socket = FakeWebSocket()
    connection_id = connections.register(socket)
    connections.join(connection_id, user_room(user.id))
    await tracker.connect(ConnectionIdentity.from_user(user), connection_id)
    return connection_id, socket


def _status_events(socket):
    return [f["data"] for f in socket.events("user_status_change")]


@pytest.mark.asyncio
async def test_connect_brings_user_online(db, presence, connect_user, setup_artist):
    _, connection_id, _ = await connect_user(setup_artist)

    assert presence.is_online(setup_artist.id)
    assert presence.socket_of(setup_artist.id) == connection_id
    db.refresh(setup_artist)
    assert setup_artist.is_online is True
    assert setup_artist.last_seen is not None


@pytest.mark.asyncio
async def test_multiple_connections(db, presence, connect_user, setup_artist):
    _, first, _ = await connect_user(setup_artist)
    _, second, _ = await connect_user(setup_artist)
    assert presence.get(setup_artist.id).connection_ids == {first, second}

    assert await presence.disconnect(first) is False
    assert presence.is_online(setup_artist.id)
    assert presence.socket_of(setup_artist.id) == second

    assert await presence.disconnect(second) is True
    assert not presence.is_online(setup_artist.id)
    db.refresh(setup_artist)
    assert setup_artist.is_online is False


@pytest.mark.asyncio
async def test_disconnect_unknown_connection_is_noop(presence, connect_user, setup_artist):
    _, connection_id, _ = await connect_user(setup_artist)
    assert await presence.disconnect("unknown") is False
    assert await presence.disconnect(connection_id) is True
    assert await presence.disconnect(connection_id) is False


@pytest.mark.asyncio
async def test_status_broadcast_to_conversation_partners(
    presence, connect_user, setup_conversation, setup_artist, setup_buyer, make_user
):
    _, _, buyer_socket = await connect_user(setup_buyer)
    stranger = make_user()
    _, _, stranger_socket = await connect_user(stranger)

    _, artist_connection, _ = await connect_user(setup_artist)
    await presence.disconnect(artist_connection)

    events = _status_events(buyer_socket)
    assert [(e["userId"], e["isOnline"]) for e in events] == [
        (str(setup_artist.id), True),
        (str(setup_artist.id), False),
    ]
    assert events[0]["role"] == "artist"
    assert _status_events(stranger_socket) == []


@pytest.mark.asyncio
async def test_second_connection_does_not_rebroadcast(
    presence, connect_user, setup_conversation, setup_artist, setup_buyer
):
    _, _, buyer_socket = await connect_user(setup_buyer)
    await connect_user(setup_artist)
    await connect_user(setup_artist)
    assert len(_status_events(buyer_socket)) == 1


@pytest.mark.asyncio
async def test_sweep_removes_idle_users(
    db, connections, clocked_presence, clock, setup_artist, setup_buyer
):
    connected_at = clock()
    artist_connection, _ = await _connect(connections, clocked_presence, setup_artist)
    await _connect(connections, clocked_presence, setup_buyer)

    clock.advance(minutes=20)
    await clocked_presence.touch(ConnectionIdentity.from_user(setup_buyer))
    clock.advance(minutes=15)

    removed = await clocked_presence.sweep_inactive(1800)

    assert removed == [setup_artist.id]
    assert not clocked_presence.is_online(setup_artist.id)
    assert clocked_presence.is_online(setup_buyer.id)
    assert artist_connection not in clocked_presence.user_connections

    db.refresh(setup_artist)
    assert setup_artist.is_online is False
    # last_seen is the last activity, not the sweep time
    assert setup_artist.last_seen.replace(tzinfo=None) == connected_at.replace(tzinfo=None)


@pytest.mark.asyncio
async def test_sweep_does_not_broadcast(
    connections, clocked_presence, clock, setup_conversation, setup_artist, setup_buyer
):
    _, buyer_socket = await _connect(connections, clocked_presence, setup_buyer)
    clock.advance(minutes=40)
    await _connect(connections, clocked_presence, setup_artist)
    clock.advance(minutes=40)
    await clocked_presence.touch(ConnectionIdentity.from_user(setup_buyer))

    before = len(_status_events(buyer_socket))
    assert await clocked_presence.sweep_inactive(1800) == [setup_artist.id]
    assert len(_status_events(buyer_socket)) == before


@pytest.mark.asyncio
async def test_sweep_keeps_user_exactly_at_threshold(
    connections, clocked_presence, clock, setup_artist
):
    await _connect(connections, clocked_presence, setup_artist)
    clock.advance(seconds=1800)
    assert await clocked_presence.sweep_inactive(1800) == []
    assert clocked_presence.is_online(setup_artist.id)


@pytest.mark.asyncio
async def test_disconnect_after_sweep_is_noop(
    connections, clocked_presence, clock, setup_conversation, setup_artist, setup_buyer
):
    artist_connection, _ = await _connect(connections, clocked_presence, setup_artist)
    clock.advance(hours=1)
    await clocked_presence.sweep_inactive(1800)

    _, buyer_socket = await _connect(connections, clocked_presence, setup_buyer)
    assert await clocked_presence.disconnect(artist_connection) is False
    assert _status_events(buyer_socket) == []


@pytest.mark.asyncio
async def test_activity_after_sweep_restores_presence(
    db, connections, clocked_presence, clock, setup_conversation, setup_artist, setup_buyer
):
    buyer_connection, _ = await _connect(connections, clocked_presence, setup_buyer)
    clock.advance(hours=1)
    _, artist_socket = await _connect(connections, clocked_presence, setup_artist)
    assert await clocked_presence.sweep_inactive(1800) == [setup_buyer.id]

    await clocked_presence.touch(ConnectionIdentity.from_user(setup_buyer), buyer_connection)

    assert clocked_presence.is_online(setup_buyer.id)
    assert clocked_presence.socket_of(setup_buyer.id) == buyer_connection
    assert clocked_presence.user_connections[buyer_connection] == setup_buyer.id
    assert _status_events(artist_socket)[-1]["isOnline"] is True
    db.refresh(setup_buyer)
    assert setup_buyer.is_online is True


@pytest.mark.asyncio
async def test_touch_ignores_closed_connection_after_sweep(
    connections, clocked_presence, clock, setup_buyer
):
    buyer_connection, _ = await _connect(connections, clocked_presence, setup_buyer)
    clock.advance(hours=1)
    await clocked_presence.sweep_inactive(1800)
    connections.unregister(buyer_connection)

    await clocked_presence.touch(ConnectionIdentity.from_user(setup_buyer), buyer_connection)
    assert not clocked_presence.is_online(setup_buyer.id)


@pytest.mark.asyncio
async def test_force_disconnect(db, presence, connect_user, setup_artist):
    _, _, socket = await connect_user(setup_artist)

    assert await presence.force_disconnect(setup_artist.id, "Policy violation") is True

    frame = socket.last("force_disconnect")
    assert frame["data"]["reason"] == "Policy violation"
    assert socket.closed_with == 1000
    assert not presence.is_online(setup_artist.id)
    assert presence.user_connections == {}
    db.refresh(setup_artist)
    assert setup_artist.is_online is False

    assert await presence.force_disconnect(setup_artist.id) is False


@pytest.mark.asyncio
async def test_stats_and_role_queries(presence, connect_user, setup_artist, setup_buyer, setup_admin):
    await connect_user(setup_artist)
    await connect_user(setup_artist)
    await connect_user(setup_buyer)
    await connect_user(setup_admin)

    stats = presence.stats()
    assert stats["total_online"] == 3
    assert stats["total_connections"] == 4
    assert stats["artists"] == 1
    assert stats["buyers"] == 1
    assert stats["admins"] == 1
    assert [r.user_id for r in presence.users_by_role("buyer")] == [setup_buyer.id]

    record = presence.get(setup_artist.id).to_dict()
    assert record["user_id"] == str(setup_artist.id)
    assert record["connections"] == 2


@pytest.mark.asyncio
async def test_online_duration_and_activity(connections, clocked_presence, clock, setup_artist):
    assert clocked_presence.online_duration(setup_artist.id) == 0
    assert not clocked_presence.is_active(setup_artist.id)

    await _connect(connections, clocked_presence, setup_artist)
    clock.advance(minutes=2)
    assert clocked_presence.online_duration(setup_artist.id) == 120
    assert clocked_presence.is_active(setup_artist.id)

    clock.advance(minutes=10)
    assert not clocked_presence.is_active(setup_artist.id)
    assert clocked_presence.is_active(setup_artist.id, window_seconds=3600)


@pytest.mark.asyncio
async def test_sweeper_task(connections, clocked_presence, clock, setup_artist):
    await _connect(connections, clocked_presence, setup_artist)
    clock.advance(seconds=5)

    clocked_presence.start_sweeper(0.01, 1)
    await asyncio.sleep(0.1)
    assert not clocked_presence.is_online(setup_artist.id)

    await clocked_presence.stop_sweeper()
    assert clocked_presence._sweeper is None
