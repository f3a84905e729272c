# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the speaker/listener matcher.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from ventmatch.core.exceptions import ConflictError, RestrictedError
from ventmatch.schemas.moderation import Restriction, RestrictionKind
from ventmatch.schemas.pairing import Role
from ventmatch.services.matching.service import (
    PERMANENT_RESTRICTION_MESSAGE,
    format_time_remaining,
    restriction_message,
)

START_TIME = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_restriction(kind: RestrictionKind, minutes=None) -> Restriction:
    return Restriction(
        id="r1",
        subject_id="s1",
        kind=kind,
        start_time=START_TIME,
        end_time=START_TIME + timedelta(minutes=minutes) if minutes is not None else None,
        reason="Automatic restriction applied due to 3 reports. Risk level: high",
        triggering_report_count=3,
    )


class TestAdmission:
    """Tests for admit()."""

    @pytest.mark.asyncio
    async def test_speaker_then_listener(self, matching_service, session_manager):
        """Test a speaker waiting and a listener completing the pair."""
        assert await matching_service.admit("S1", Role.SPEAKER) is None
        stats = await matching_service.queue_stats()
        assert stats.speakers_waiting == 1
        assert stats.listeners_waiting == 0

        match = await matching_service.admit("L1", Role.LISTENER)

        assert match.speaker_id == "S1"
        assert match.listener_id == "L1"
        assert match.session_id
        stats = await matching_service.queue_stats()
        assert stats.total == 0

        session = await session_manager.get_session(match.session_id)
        assert session.is_active
        assert session.speaker_id == "S1"

    @pytest.mark.asyncio
    async def test_oldest_speaker_is_matched_first(self, matching_service, clock):
        """Test FIFO order within a role queue."""
        for pid in ("S1", "S2", "S3"):
            await matching_service.admit(pid, Role.SPEAKER)
            clock.advance(seconds=1)

        match = await matching_service.admit("L1", Role.LISTENER)

        assert match.speaker_id == "S1"
        assert (await matching_service.queue_stats()).speakers_waiting == 2

    @pytest.mark.asyncio
    async def test_concurrent_listeners_do_not_share_a_speaker(
        self, matching_service, moderation_engine
    ):
        """Test that one waiting speaker is matched at most once."""
        moderation_engine.is_restricted = AsyncMock(return_value=None)
        await matching_service.admit("S1", Role.SPEAKER)

        results = await asyncio.gather(
            matching_service.admit("L1", Role.LISTENER),
            matching_service.admit("L2", Role.LISTENER),
        )

        matches = [r for r in results if r is not None]
        assert len(matches) == 1
        assert (await matching_service.queue_stats()).listeners_waiting == 1

    @pytest.mark.asyncio
    async def test_readmission_replaces_entry(self, matching_service):
        """Test that a participant waits in at most one queue."""
        await matching_service.admit("P1", Role.SPEAKER)
        await matching_service.admit("P1", Role.LISTENER)

        stats = await matching_service.queue_stats()
        assert stats.speakers_waiting == 0
        assert stats.listeners_waiting == 1

    @pytest.mark.asyncio
    async def test_participant_in_active_session_is_refused(self, matching_service):
        """Test that a matched participant cannot queue again."""
        await matching_service.admit("S1", Role.SPEAKER)
        await matching_service.admit("L1", Role.LISTENER)

        with pytest.raises(ConflictError):
            await matching_service.admit("S1", Role.SPEAKER)

    @pytest.mark.asyncio
    async def test_match_notifies_both_participants(self, matching_service, notifier):
        await matching_service.admit("S1", Role.SPEAKER)
        match = await matching_service.admit("L1", Role.LISTENER)

        assert notifier.matches == [match]

    @pytest.mark.asyncio
    async def test_queue_timer_scheduled_and_cancelled(self, matching_service, tasks):
        """Test that a queued entry gets an expiry timer cleared on match."""
        await matching_service.admit("S1", Role.SPEAKER)
        assert tasks.is_pending("queue:S1")

        await matching_service.admit("L1", Role.LISTENER)
        assert not tasks.is_pending("queue:S1")
        assert not tasks.is_pending("queue:L1")

    @pytest.mark.asyncio
    async def test_failing_listener_is_retried_once(self, matching_service):
        """Test that a match listener failure is retried with the same match."""
        listener = AsyncMock(side_effect=[RuntimeError("boom"), None])
        matching_service.add_match_listener(listener)

        await matching_service.admit("S1", Role.SPEAKER)
        match = await matching_service.admit("L1", Role.LISTENER)

        assert listener.await_count == 2
        assert all(call.args == (match,) for call in listener.await_args_list)

    @pytest.mark.asyncio
    async def test_unusable_match_requeues_admitted_participant(
        self, matching_service, session_manager
    ):
        """Test that a partner already in another session does not leave a dangling match."""
        await matching_service.admit("S1", Role.SPEAKER)
        await session_manager.create_session("busy", "S1", "X")

        result = await matching_service.admit("L1", Role.LISTENER)

        assert result is None
        stats = await matching_service.queue_stats()
        assert stats.speakers_waiting == 0
        assert stats.listeners_waiting == 1
        assert await session_manager.get_session_for_participant("L1") is None
        assert (await session_manager.session_stats()).total_sessions == 1

    @pytest.mark.asyncio
    async def test_unusable_match_pairs_with_next_partner(
        self, matching_service, session_manager
    ):
        await matching_service.admit("S1", Role.SPEAKER)
        await matching_service.admit("S2", Role.SPEAKER)
        await session_manager.create_session("busy", "S1", "X")

        match = await matching_service.admit("L1", Role.LISTENER)

        assert match.speaker_id == "S2"
        session = await session_manager.get_session(match.session_id)
        assert (session.speaker_id, session.listener_id) == ("S2", "L1")


class TestRestrictionCheck:
    """Tests for the moderation veto on admission."""

    @pytest.mark.asyncio
    async def test_restricted_participant_is_blocked(self, matching_service, moderation_engine):
        await moderation_engine.apply_restriction(
            "S1", RestrictionKind.TEMPORARY_BAN, "test", 3, duration_minutes=30
        )

        with pytest.raises(RestrictedError) as exc_info:
            await matching_service.admit("S1", Role.SPEAKER)

        assert exc_info.value.time_remaining == "30 minutes"
        assert exc_info.value.restriction.kind is RestrictionKind.TEMPORARY_BAN
        assert (await matching_service.queue_stats()).total == 0

    @pytest.mark.asyncio
    async def test_permanent_restriction_message(self, matching_service, moderation_engine):
        await moderation_engine.apply_restriction(
            "S1", RestrictionKind.PERMANENT_BAN, "test", 10
        )

        with pytest.raises(RestrictedError) as exc_info:
            await matching_service.admit("S1", Role.SPEAKER)

        assert exc_info.value.message == PERMANENT_RESTRICTION_MESSAGE
        assert exc_info.value.time_remaining is None

    @pytest.mark.asyncio
    async def test_expired_restriction_admits(self, matching_service, moderation_engine, clock):
        await moderation_engine.apply_restriction(
            "S1", RestrictionKind.TEMPORARY_BAN, "test", 3, duration_minutes=30
        )
        clock.advance(minutes=31)

        assert await matching_service.admit("S1", Role.SPEAKER) is None

    @pytest.mark.asyncio
    async def test_moderation_failure_fails_open(self, matching_service, moderation_engine):
        """Test that an unavailable moderation store does not block admission."""
        moderation_engine.is_restricted = AsyncMock(side_effect=RuntimeError("db down"))

        assert await matching_service.admit("S1", Role.SPEAKER) is None
        assert (await matching_service.queue_stats()).speakers_waiting == 1


class TestRestrictionMessages:
    """Tests for the user-facing restriction text."""

    def test_minutes_under_an_hour(self):
        assert format_time_remaining(START_TIME + timedelta(minutes=1), START_TIME) == "1 minute"
        assert (
            format_time_remaining(START_TIME + timedelta(minutes=29, seconds=30), START_TIME)
            == "30 minutes"
        )

    def test_hours_rounded_up(self):
        assert format_time_remaining(START_TIME + timedelta(minutes=60), START_TIME) == "1 hour"
        assert format_time_remaining(START_TIME + timedelta(minutes=61), START_TIME) == "2 hours"

    def test_elapsed(self):
        assert format_time_remaining(START_TIME, START_TIME) is None

    def test_temporary_message(self):
        message, remaining = restriction_message(
            make_restriction(RestrictionKind.TEMPORARY_BAN, minutes=120), START_TIME
        )
        assert remaining == "2 hours"
        assert message.startswith("You are temporarily restricted from joining sessions for 2 hours.")

    def test_warning_uses_temporary_message(self):
        message, remaining = restriction_message(
            make_restriction(RestrictionKind.WARNING, minutes=15), START_TIME
        )
        assert "temporarily restricted" in message
        assert remaining == "15 minutes"

    def test_permanent_message(self):
        message, remaining = restriction_message(
            make_restriction(RestrictionKind.PERMANENT_BAN), START_TIME
        )
        assert message == PERMANENT_RESTRICTION_MESSAGE
        assert remaining is None


class TestQueueLifecycle:
    """Tests for withdraw, expiry and wait estimates."""

    @pytest.mark.asyncio
    async def test_withdraw(self, matching_service, tasks):
        await matching_service.admit("S1", Role.SPEAKER)

        assert await matching_service.withdraw("S1") is True
        assert await matching_service.withdraw("S1") is False
        assert not tasks.is_pending("queue:S1")
        assert (await matching_service.queue_stats()).total == 0

    @pytest.mark.asyncio
    async def test_expire_entry_after_deadline(self, matching_service, clock, test_settings):
        await matching_service.admit("S1", Role.SPEAKER)

        assert await matching_service.expire_entry("S1") is False
        clock.advance(seconds=test_settings.QUEUE_TIMEOUT_SECONDS)

        assert await matching_service.expire_entry("S1") is True
        assert (await matching_service.queue_stats()).total == 0

    @pytest.mark.asyncio
    async def test_stale_timer_leaves_newer_entry(self, matching_service, clock):
        """Test that expiry only removes an entry whose own deadline passed."""
        await matching_service.admit("S1", Role.SPEAKER)
        clock.advance(seconds=200)
        await matching_service.admit("S1", Role.SPEAKER)
        clock.advance(seconds=150)

        assert await matching_service.expire_entry("S1") is False
        assert (await matching_service.queue_stats()).speakers_waiting == 1

    @pytest.mark.asyncio
    async def test_cleanup_expired_entries(self, matching_service, clock, tasks):
        await matching_service.admit("S1", Role.SPEAKER)
        await matching_service.admit("S2", Role.SPEAKER)
        clock.advance(minutes=6)

        assert await matching_service.cleanup_expired_entries() == 2
        assert tasks.pending_keys() == set()

    @pytest.mark.asyncio
    async def test_estimated_wait(self, matching_service, test_settings):
        """Test the wait estimate floor and per-entry growth."""
        assert (
            await matching_service.estimated_wait_seconds(Role.SPEAKER)
            == test_settings.WAIT_ESTIMATE_FLOOR_SECONDS
        )

        for pid in ("S1", "S2", "S3"):
            await matching_service.admit(pid, Role.SPEAKER)

        assert await matching_service.estimated_wait_seconds(Role.SPEAKER) == max(
            test_settings.WAIT_ESTIMATE_FLOOR_SECONDS,
            3 * test_settings.WAIT_SECONDS_PER_ENTRY,
        )
        assert await matching_service.estimated_wait_seconds(Role.LISTENER) == 0
