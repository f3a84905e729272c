# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Speaker/listener matcher.

Two FIFO queues, one per role. An admitted participant is paired with the
longest-waiting participant of the opposite role if there is one, otherwise
it waits in its own queue until matched, withdrawn or expired. The pop and
pair step is a single atomic store operation, so concurrent admissions never
receive the same partner.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from ventmatch.core.clock import Clock, IdGenerator, new_id, utc_now
from ventmatch.core.config import Settings
from ventmatch.core.exceptions import ConflictError, RestrictedError
from ventmatch.core.scheduling import TaskRegistry
from ventmatch.schemas.moderation import Restriction, RestrictionKind
from ventmatch.schemas.pairing import MatchResult, QueueEntry, QueueStats, Role
from ventmatch.services.moderation.engine import ModerationEngine
from ventmatch.services.session.manager import SessionManager
from ventmatch.services.store.base import PairingStore

logger = logging.getLogger(__name__)

MatchListener = Callable[[MatchResult], Awaitable[Any]]

PERMANENT_RESTRICTION_MESSAGE = (
    "Your account has been permanently restricted due to multiple reports."
)


def format_time_remaining(end_time: datetime, now: datetime) -> Optional[str]:
    """Remaining time in minutes under an hour, otherwise in hours (rounded up)."""
    remaining_seconds = (end_time - now).total_seconds()
    if remaining_seconds <= 0:
        return None
    minutes = math.ceil(remaining_seconds / 60)
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    hours = math.ceil(minutes / 60)
    return f"{hours} hour{'s' if hours != 1 else ''}"


def restriction_message(
    restriction: Restriction, now: datetime
) -> Tuple[str, Optional[str]]:
    """User-facing message for a blocked admission, plus the remaining time."""
    if restriction.kind is RestrictionKind.PERMANENT_BAN or restriction.end_time is None:
        return PERMANENT_RESTRICTION_MESSAGE, None
    remaining = format_time_remaining(restriction.end_time, now)
    duration = f" for {remaining}" if remaining else ""
    return (
        f"You are temporarily restricted from joining sessions{duration}. "
        "This restriction was applied due to reported behavior.",
        remaining,
    )


class MatchingService:
    """Admits participants into the role queues and pairs them."""

    def __init__(
        self,
        store: PairingStore,
        sessions: SessionManager,
        settings: Settings,
        moderation: Optional[ModerationEngine] = None,
        tasks: Optional[TaskRegistry] = None,
        clock: Clock = utc_now,
        id_generator: IdGenerator = new_id,
    ):
        self._store = store
        self._sessions = sessions
        self._moderation = moderation
        self._tasks = tasks or TaskRegistry()
        self._clock = clock
        self._new_id = id_generator
        self._listeners: List[MatchListener] = []

        self.queue_timeout_seconds = settings.QUEUE_TIMEOUT_SECONDS
        self.wait_floor_seconds = settings.WAIT_ESTIMATE_FLOOR_SECONDS
        self.wait_seconds_per_entry = settings.WAIT_SECONDS_PER_ENTRY

    def add_match_listener(self, listener: MatchListener) -> None:
        """Register a coroutine called with every new MatchResult."""
        self._listeners.append(listener)

    @staticmethod
    def _expiry_key(participant_id: str) -> str:
        return f"queue:{participant_id}"

    async def admit(self, participant_id: str, role: Role) -> Optional[MatchResult]:
        """
        Admit a participant into matching.

        Args:
            participant_id: Participant being admitted
            role: Role the participant wants to take

        Returns:
            The match if a partner was waiting, otherwise None (queued). A
            match whose session could not be set up is discarded and the
            participant is admitted again.

        Raises:
            RestrictedError: The participant has an active restriction
            ConflictError: The participant is already in an active session
        """
        await self._check_restriction(participant_id)

        if await self._sessions.is_participant_in_active_session(participant_id):
            logger.warning(
                f"[Matcher] {participant_id} tried to queue while in an active session"
            )
            raise ConflictError("Participant is already in an active session")

        # A participant waits in at most one queue
        if await self._store.remove_entry(participant_id) is not None:
            self._tasks.cancel(self._expiry_key(participant_id))
            logger.info(f"[Matcher] Replaced existing queue entry for {participant_id}")

        now = self._clock()
        entry = QueueEntry(
            participant_id=participant_id,
            role=role,
            enqueued_at=now,
            expires_at=now + timedelta(seconds=self.queue_timeout_seconds),
        )
        partner = await self._store.pair_or_enqueue(entry)

        if partner is None:
            self._tasks.schedule(
                self._expiry_key(participant_id),
                self.queue_timeout_seconds,
                lambda: self.expire_entry(participant_id),
            )
            logger.info(f"[Matcher] Queued {participant_id} as {role.value}")
            return None

        self._tasks.cancel(self._expiry_key(partner.participant_id))
        if role is Role.SPEAKER:
            speaker_id, listener_id = participant_id, partner.participant_id
        else:
            speaker_id, listener_id = partner.participant_id, participant_id
        match = MatchResult(
            session_id=self._new_id(), speaker_id=speaker_id, listener_id=listener_id
        )
        logger.info(
            f"[Matcher] Matched speaker {speaker_id} with listener {listener_id} "
            f"in session {match.session_id}"
        )
        if not await self._publish(match):
            # The partner was consumed; the admitted participant tries again
            logger.warning(
                f"[Matcher] Session {match.session_id} was not set up, "
                f"re-admitting {participant_id}; {partner.participant_id} is dropped"
            )
            return await self.admit(participant_id, role)
        return match

    async def _check_restriction(self, participant_id: str) -> None:
        if self._moderation is None:
            return
        try:
            restriction = await self._moderation.is_restricted(participant_id)
        except Exception as e:
            logger.error(
                f"[Matcher] Restriction check failed for {participant_id}, "
                f"admitting without it: {e}",
                exc_info=True,
            )
            return
        if restriction is None:
            return

        message, remaining = restriction_message(restriction, self._clock())
        logger.info(
            f"[Matcher] Blocked restricted participant {participant_id} "
            f"({restriction.kind.value})"
        )
        raise RestrictedError(message, restriction=restriction, time_remaining=remaining)

    async def _publish(self, match: MatchResult) -> bool:
        """Run every match listener. False if one failed on both attempts."""
        # Session creation is idempotent, so a failed listener is retried once
        # with the same MatchResult.
        published = True
        for listener in self._listeners:
            for attempt in (1, 2):
                try:
                    await listener(match)
                    break
                except Exception as e:
                    logger.error(
                        f"[Matcher] Match listener failed for session "
                        f"{match.session_id} (attempt {attempt}): {e}",
                        exc_info=True,
                    )
            else:
                published = False
        return published

    async def withdraw(self, participant_id: str) -> bool:
        """Remove the participant from its queue. True if it was waiting."""
        self._tasks.cancel(self._expiry_key(participant_id))
        entry = await self._store.remove_entry(participant_id)
        if entry is None:
            return False
        logger.info(f"[Matcher] {participant_id} withdrew from the {entry.role.value} queue")
        return True

    async def expire_entry(self, participant_id: str) -> bool:
        """Remove the participant's entry if its deadline has passed."""
        self._tasks.cancel(self._expiry_key(participant_id))
        entry = await self._store.get_entry(participant_id)
        if entry is None or entry.expires_at > self._clock():
            return False
        if await self._store.remove_entry(participant_id) is None:
            return False
        logger.info(f"[Matcher] Queue entry for {participant_id} expired")
        return True

    async def cleanup_expired_entries(self) -> int:
        """Sweep entries past their deadline, including ones timed by other workers."""
        expired = await self._store.remove_expired_entries(self._clock())
        for participant_id in expired:
            self._tasks.cancel(self._expiry_key(participant_id))
        if expired:
            logger.info(f"[Matcher] Removed {len(expired)} expired queue entries")
        return len(expired)

    async def estimated_wait_seconds(self, role: Role) -> int:
        if await self._store.queue_depth(role.opposite) > 0:
            return 0
        depth = await self._store.queue_depth(role)
        return max(self.wait_floor_seconds, depth * self.wait_seconds_per_entry)

    async def queue_stats(self) -> QueueStats:
        return QueueStats(
            speakers_waiting=await self._store.queue_depth(Role.SPEAKER),
            listeners_waiting=await self._store.queue_depth(Role.LISTENER),
        )
