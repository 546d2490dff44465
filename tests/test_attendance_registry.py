from __future__ import annotations

import pytest

from conftest import GUILD_ID, ROLE_A, ROLE_B, TEXT_CHANNEL, VOICE_1, VOICE_2
from services.errors import (
    AttendanceError,
    DuplicateEventError,
    InvalidRoleError,
    NoMonitoredRoomsError,
    UnknownEventError,
)


@pytest.mark.asyncio
async def test_start_seeds_sessions_only_for_role_holders_in_monitored_rooms(registry, directory, clock):
    directory.rooms[VOICE_1] = {501, 502}
    directory.rooms[VOICE_2] = {503}
    directory.grant(501, ROLE_A)
    directory.grant(503, ROLE_A)

    event = await registry.start(
        guild_id=GUILD_ID,
        name="Raid Night",
        monitored_role_id=ROLE_A,
        channel_ids=[VOICE_1, VOICE_2],
        started_by_id=7,
    )

    assert event.started_at == clock.now
    assert event.channel_ids == frozenset({VOICE_1, VOICE_2})
    assert set(event.attendance) == {501, 503}
    assert all(row.session_started_at == clock.now for row in event.attendance.values())
    assert 502 not in event.attendance


@pytest.mark.asyncio
async def test_start_rejects_duplicate_name_case_insensitive(registry):
    await registry.start(
        guild_id=GUILD_ID,
        name="Raid Night",
        monitored_role_id=ROLE_A,
        channel_ids=[VOICE_1],
        started_by_id=7,
    )

    with pytest.raises(DuplicateEventError):
        await registry.start(
            guild_id=GUILD_ID,
            name="  raid NIGHT ",
            monitored_role_id=ROLE_A,
            channel_ids=[VOICE_2],
            started_by_id=8,
        )


@pytest.mark.asyncio
async def test_same_name_allowed_in_other_guild(registry):
    await registry.start(guild_id=GUILD_ID, name="Raid", monitored_role_id=ROLE_A, channel_ids=[VOICE_1], started_by_id=7)
    other = await registry.start(guild_id=2, name="Raid", monitored_role_id=ROLE_A, channel_ids=[VOICE_1], started_by_id=7)

    assert other.guild_id == 2
    assert [row.name for row in registry.list(GUILD_ID)] == ["Raid"]
    assert [row.name for row in registry.list(2)] == ["Raid"]


@pytest.mark.asyncio
async def test_start_rejects_unknown_role(registry, repo):
    with pytest.raises(InvalidRoleError):
        await registry.start(guild_id=GUILD_ID, name="Raid", monitored_role_id=404, channel_ids=[VOICE_1], started_by_id=7)
    assert repo.events == {}


@pytest.mark.asyncio
async def test_start_requires_at_least_one_voice_channel(registry, repo):
    with pytest.raises(NoMonitoredRoomsError):
        await registry.start(
            guild_id=GUILD_ID,
            name="Raid",
            monitored_role_id=ROLE_A,
            channel_ids=[TEXT_CHANNEL],
            started_by_id=7,
        )
    with pytest.raises(NoMonitoredRoomsError):
        await registry.start(guild_id=GUILD_ID, name="Raid", monitored_role_id=ROLE_A, channel_ids=[], started_by_id=7)
    assert repo.events == {}


@pytest.mark.asyncio
async def test_start_drops_non_voice_channels(registry):
    event = await registry.start(
        guild_id=GUILD_ID,
        name="Raid",
        monitored_role_id=ROLE_A,
        channel_ids=[VOICE_1, TEXT_CHANNEL, VOICE_1],
        started_by_id=7,
    )
    assert event.channel_ids == frozenset({VOICE_1})


@pytest.mark.asyncio
async def test_start_rejects_blank_name(registry):
    with pytest.raises(ValueError, match="must not be empty"):
        await registry.start(guild_id=GUILD_ID, name="   ", monitored_role_id=ROLE_A, channel_ids=[VOICE_1], started_by_id=7)


@pytest.mark.asyncio
async def test_start_skips_channel_whose_members_cannot_be_read(registry, directory):
    directory.rooms[VOICE_2] = {503}
    directory.grant(503, ROLE_A)
    directory.broken_rooms.add(VOICE_1)

    event = await registry.start(
        guild_id=GUILD_ID,
        name="Raid",
        monitored_role_id=ROLE_A,
        channel_ids=[VOICE_1, VOICE_2],
        started_by_id=7,
    )

    assert set(event.attendance) == {503}


@pytest.mark.asyncio
async def test_stop_unknown_event(registry):
    with pytest.raises(UnknownEventError):
        await registry.stop(guild_id=GUILD_ID, name="nope", verification_role_id=ROLE_A)


@pytest.mark.asyncio
async def test_stop_with_invalid_role_keeps_event_open(registry, directory, history):
    directory.rooms[VOICE_1] = {501}
    directory.grant(501, ROLE_A)
    await registry.start(guild_id=GUILD_ID, name="Raid", monitored_role_id=ROLE_A, channel_ids=[VOICE_1], started_by_id=7)

    with pytest.raises(InvalidRoleError):
        await registry.stop(guild_id=GUILD_ID, name="raid", verification_role_id=404)

    event = registry.get(GUILD_ID, "Raid")
    assert event.attendance[501].in_session
    assert history.summaries == []


@pytest.mark.asyncio
async def test_stop_removes_event_and_appends_history(registry, directory, history, clock, repo):
    directory.rooms[VOICE_1] = {501}
    directory.grant(501, ROLE_A)
    await registry.start(guild_id=GUILD_ID, name="Raid", monitored_role_id=ROLE_A, channel_ids=[VOICE_1], started_by_id=7)
    clock.advance(minutes=5)

    result = await registry.stop(guild_id=GUILD_ID, name="RAID", verification_role_id=ROLE_A)

    assert repo.events == {}
    assert history.summaries == [result.summary]
    assert result.summary.ended_at == clock.now
    assert [entry.total_ms for entry in result.present] == [5 * 60 * 1000]


@pytest.mark.asyncio
async def test_list_is_snapshot_ordered_by_start(registry, clock):
    await registry.start(guild_id=GUILD_ID, name="Second", monitored_role_id=ROLE_B, channel_ids=[VOICE_2, VOICE_1], started_by_id=7)
    clock.advance(seconds=1)
    await registry.start(guild_id=GUILD_ID, name="Third", monitored_role_id=ROLE_A, channel_ids=[VOICE_1], started_by_id=8)

    rows = registry.list(GUILD_ID)

    assert [row.name for row in rows] == ["Second", "Third"]
    assert rows[0].channel_ids == (VOICE_1, VOICE_2)
    assert rows[0].monitored_role_id == ROLE_B
    assert rows[1].started_by_id == 8
    assert registry.list(999) == []


def test_get_unknown_event_raises(registry):
    with pytest.raises(UnknownEventError):
        registry.get(GUILD_ID, "missing")


def test_attendance_errors_are_value_errors():
    assert issubclass(DuplicateEventError, AttendanceError)
    assert issubclass(AttendanceError, ValueError)


@pytest.mark.asyncio
async def test_stop_keeps_event_open_when_role_members_cannot_be_read(registry, directory, history, clock, repo):
    directory.rooms[VOICE_1] = {501}
    directory.grant(501, ROLE_A)
    await registry.start(guild_id=GUILD_ID, name="Raid", monitored_role_id=ROLE_A, channel_ids=[VOICE_1], started_by_id=7)
    clock.advance(minutes=30)
    directory.broken_roles.add(ROLE_A)

    with pytest.raises(RuntimeError, match="role member lookup failed"):
        await registry.stop(guild_id=GUILD_ID, name="Raid", verification_role_id=ROLE_A)

    event = registry.get(GUILD_ID, "Raid")
    assert event.attendance[501].in_session
    assert history.summaries == []

    directory.broken_roles.clear()
    result = await registry.stop(guild_id=GUILD_ID, name="Raid", verification_role_id=ROLE_A)

    assert repo.events == {}
    assert [entry.total_ms for entry in result.present] == [30 * 60 * 1000]
    assert history.summaries == [result.summary]
