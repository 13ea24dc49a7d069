"""Unit tests for the room entity state machine."""

import pytest

from conftest import OTHER_HASH, ROOM_HASH, FakeClock, SequentialTokens
from sos_relay.adapters.storage.in_memory import InMemoryKeyValueStore
from sos_relay.core.actors import ScopedStorage
from sos_relay.core.errors import ConflictAppError, NotFoundAppError, ValidationAppError
from sos_relay.schemas.room import RoomMode
from sos_relay.services.room_entity import ROOM_RECORD, RoomConfig, RoomEntity


def _entity(storage: ScopedStorage, clock: FakeClock, **config) -> RoomEntity:
    return RoomEntity(storage, RoomConfig(**config), clock=clock, token_factory=SequentialTokens())


@pytest.fixture
def room(room_storage: ScopedStorage, clock: FakeClock) -> RoomEntity:
    return _entity(room_storage, clock)


@pytest.mark.asyncio
async def test_create_returns_summary_and_creator(room: RoomEntity, clock: FakeClock) -> None:
    created = await room.create(ROOM_HASH, ROOM_HASH)

    assert created.room_hash == ROOM_HASH
    assert created.mode is RoomMode.FIXED
    assert created.created_at == clock()
    assert created.expires_at == clock() + 3600
    assert len(created.member_id) == 8
    assert created.members == ["creator"]


@pytest.mark.asyncio
async def test_create_twice_conflicts(room: RoomEntity) -> None:
    await room.create(ROOM_HASH, ROOM_HASH)

    with pytest.raises(ConflictAppError) as exc_info:
        await room.create(ROOM_HASH, ROOM_HASH)

    assert exc_info.value.code == "room_exists"


@pytest.mark.asyncio
async def test_create_with_mismatched_body_hash_is_invalid(room: RoomEntity, room_storage: ScopedStorage) -> None:
    with pytest.raises(ValidationAppError) as exc_info:
        await room.create(ROOM_HASH, OTHER_HASH)

    assert exc_info.value.code == "invalid_room_hash"
    assert await room_storage.get(ROOM_RECORD) is None


@pytest.mark.asyncio
async def test_operations_on_absent_room_raise_not_found(room: RoomEntity) -> None:
    for operation in (
        room.join(ROOM_HASH, "bob"),
        room.send(ROOM_HASH, "hi"),
        room.poll(ROOM_HASH, 0),
        room.leave(ROOM_HASH, "someone"),
        room.info(ROOM_HASH),
    ):
        with pytest.raises(NotFoundAppError) as exc_info:
            await operation
        assert exc_info.value.code == "room_not_found"


@pytest.mark.asyncio
async def test_join_defaults_and_truncates_nickname(room: RoomEntity) -> None:
    await room.create(ROOM_HASH, ROOM_HASH)

    anon = await room.join(ROOM_HASH)
    long = await room.join(ROOM_HASH, "x" * 50)

    assert anon.members[-1] == "anon"
    assert long.members == ["creator", "anon", "x" * 20]
    assert anon.member_id != long.member_id
    assert long.message_count == 0
    assert long.last_message_ts == 0


@pytest.mark.asyncio
async def test_join_reports_last_message_timestamp(room: RoomEntity, clock: FakeClock) -> None:
    await room.create(ROOM_HASH, ROOM_HASH)
    clock.advance(5)
    sent = await room.send(ROOM_HASH, "hello")

    joined = await room.join(ROOM_HASH, "late")

    assert joined.message_count == 1
    assert joined.last_message_ts == sent.timestamp


@pytest.mark.asyncio
async def test_send_uses_stored_nickname_for_known_member(room: RoomEntity) -> None:
    await room.create(ROOM_HASH, ROOM_HASH)
    alice = await room.join(ROOM_HASH, "alice")

    await room.send(ROOM_HASH, "from alice", member_id=alice.member_id, sender="mallory")
    await room.send(ROOM_HASH, "unknown member", member_id="nope0000", sender="carol")
    await room.send(ROOM_HASH, "nobody")

    polled = await room.poll(ROOM_HASH, 0)
    assert [m.sender for m in polled.messages] == ["alice", "carol", "anon"]
    assert all(len(m.id) == 12 for m in polled.messages)


@pytest.mark.asyncio
async def test_send_without_content_is_rejected(room: RoomEntity) -> None:
    await room.create(ROOM_HASH, ROOM_HASH)

    for content in (None, ""):
        with pytest.raises(ValidationAppError) as exc_info:
            await room.send(ROOM_HASH, content)
        assert exc_info.value.code == "missing_content"

    assert (await room.info(ROOM_HASH)).message_count == 0


@pytest.mark.asyncio
async def test_message_window_keeps_most_recent(room: RoomEntity, clock: FakeClock) -> None:
    await room.create(ROOM_HASH, ROOM_HASH)
    for i in range(501):
        clock.advance(0.001)
        await room.send(ROOM_HASH, f"msg-{i}")

    polled = await room.poll(ROOM_HASH, 0)

    assert polled.message_count == 500
    contents = [m.content for m in polled.messages]
    assert contents[0] == "msg-1"
    assert contents[-1] == "msg-500"
    assert "msg-0" not in contents
    assert contents == [f"msg-{i}" for i in range(1, 501)]


@pytest.mark.asyncio
async def test_message_window_respects_configured_bound(room_storage: ScopedStorage, clock: FakeClock) -> None:
    room = _entity(room_storage, clock, max_messages=3)
    await room.create(ROOM_HASH, ROOM_HASH)
    for i in range(5):
        await room.send(ROOM_HASH, str(i))

    polled = await room.poll(ROOM_HASH, 0)
    assert [m.content for m in polled.messages] == ["2", "3", "4"]


@pytest.mark.asyncio
async def test_poll_is_strictly_after_since(room: RoomEntity, clock: FakeClock) -> None:
    await room.create(ROOM_HASH, ROOM_HASH)
    clock.advance(1)
    first = await room.send(ROOM_HASH, "one")
    clock.advance(1)
    await room.send(ROOM_HASH, "two")
    clock.advance(1)
    await room.send(ROOM_HASH, "three")

    newer = await room.poll(ROOM_HASH, first.timestamp)

    assert [m.content for m in newer.messages] == ["two", "three"]
    assert all(m.timestamp > first.timestamp for m in newer.messages)
    assert newer.message_count == 3
    assert newer.members == ["creator"]

    latest = newer.messages[-1].timestamp
    assert (await room.poll(ROOM_HASH, latest)).messages == []


@pytest.mark.asyncio
async def test_leave_is_idempotent(room: RoomEntity) -> None:
    await room.create(ROOM_HASH, ROOM_HASH)
    bob = await room.join(ROOM_HASH, "bob")

    assert (await room.leave(ROOM_HASH, bob.member_id)).status == "left"
    assert (await room.leave(ROOM_HASH, bob.member_id)).status == "left"
    assert (await room.leave(ROOM_HASH, "unknown1")).status == "left"
    assert (await room.leave(ROOM_HASH, None)).status == "left"

    assert (await room.info(ROOM_HASH)).members == ["creator"]


@pytest.mark.asyncio
async def test_info_reports_time_remaining(room: RoomEntity, clock: FakeClock) -> None:
    await room.create(ROOM_HASH, ROOM_HASH)
    clock.advance(100.7)

    info = await room.info(ROOM_HASH)

    assert info.time_remaining == 3499
    assert info.members == ["creator"]
    assert info.message_count == 0


@pytest.mark.asyncio
async def test_room_expires_and_stays_gone(room: RoomEntity, clock: FakeClock, room_storage: ScopedStorage) -> None:
    await room.create(ROOM_HASH, ROOM_HASH)
    clock.advance(3600)
    assert (await room.info(ROOM_HASH)).time_remaining == 0

    clock.advance(0.5)
    for operation in (
        room.info(ROOM_HASH),
        room.poll(ROOM_HASH, 0),
        room.send(ROOM_HASH, "late"),
        room.join(ROOM_HASH, "late"),
    ):
        with pytest.raises(NotFoundAppError):
            await operation

    assert await room_storage.get(ROOM_RECORD) is None
    with pytest.raises(NotFoundAppError):
        await room.info(ROOM_HASH)


@pytest.mark.asyncio
async def test_expired_room_can_be_created_again(room: RoomEntity, clock: FakeClock) -> None:
    first = await room.create(ROOM_HASH, ROOM_HASH)
    clock.advance(3601)

    second = await room.create(ROOM_HASH, ROOM_HASH)

    assert second.created_at > first.created_at
    assert (await room.poll(ROOM_HASH, 0)).messages == []


@pytest.mark.asyncio
async def test_record_under_other_hash_is_not_served(room_storage: ScopedStorage, clock: FakeClock) -> None:
    room = _entity(room_storage, clock)
    await room.create(OTHER_HASH, OTHER_HASH)

    with pytest.raises(NotFoundAppError):
        await room.info(ROOM_HASH)


@pytest.mark.asyncio
async def test_member_cap(room_storage: ScopedStorage, clock: FakeClock) -> None:
    room = _entity(room_storage, clock, max_members=2)
    await room.create(ROOM_HASH, ROOM_HASH)
    await room.join(ROOM_HASH, "second")

    with pytest.raises(ConflictAppError) as exc_info:
        await room.join(ROOM_HASH, "third")

    assert exc_info.value.code == "room_full"
    assert exc_info.value.details == {"max_members": 2}


@pytest.mark.asyncio
async def test_member_cap_zero_means_unbounded(room_storage: ScopedStorage, clock: FakeClock) -> None:
    room = _entity(room_storage, clock, max_members=0)
    await room.create(ROOM_HASH, ROOM_HASH)
    for i in range(10):
        await room.join(ROOM_HASH, f"m{i}")

    assert len((await room.info(ROOM_HASH)).members) == 11


@pytest.mark.asyncio
async def test_colliding_member_id_is_regenerated(room_storage: ScopedStorage, clock: FakeClock) -> None:
    tokens = SequentialTokens("dupe0000", "dupe0000", "fresh000")
    room = RoomEntity(room_storage, RoomConfig(), clock=clock, token_factory=tokens)

    created = await room.create(ROOM_HASH, ROOM_HASH)
    joined = await room.join(ROOM_HASH, "bob")

    assert created.member_id == "dupe0000"
    assert joined.member_id == "fresh000"
    assert joined.members == ["creator", "bob"]


@pytest.mark.asyncio
async def test_purge_if_expired(room: RoomEntity, clock: FakeClock) -> None:
    assert await room.purge_if_expired() is False

    await room.create(ROOM_HASH, ROOM_HASH)
    assert await room.purge_if_expired() is False

    clock.advance(3601)
    assert await room.purge_if_expired() is True
    assert await room.purge_if_expired() is False


@pytest.mark.asyncio
async def test_each_operation_rereads_storage(store: InMemoryKeyValueStore, clock: FakeClock) -> None:
    storage = ScopedStorage(store, f"room:{ROOM_HASH}:")
    writer = _entity(storage, clock)
    reader = _entity(storage, clock)

    await writer.create(ROOM_HASH, ROOM_HASH)
    await writer.send(ROOM_HASH, "hello")

    assert (await reader.info(ROOM_HASH)).message_count == 1
