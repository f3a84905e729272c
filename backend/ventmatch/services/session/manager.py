# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Chat session lifecycle.

A session goes ``active -> ended`` and is deleted by ``cleanup`` once the end
notification has gone out. Session records live in the pairing store; which
participants are connected is tracked per process in a presence map.

Every termination (user ended, disconnect, report, expiry) runs the same
sequence: end, notify both parties, clean up.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Set

from ventmatch.core.clock import Clock, IdGenerator, new_id, utc_now
from ventmatch.core.config import Settings
from ventmatch.core.exceptions import (
    ConflictError,
    NotFoundError,
    PairingError,
    ValidationError,
)
from ventmatch.core.scheduling import TaskRegistry
from ventmatch.schemas.pairing import MatchResult, Role
from ventmatch.schemas.session import (
    ChatSession,
    Message,
    Presence,
    SessionStats,
    SessionStatus,
    TerminationReason,
)
from ventmatch.services.session.notifier import NullNotifier, SessionNotifier
from ventmatch.services.store.base import PairingStore

logger = logging.getLogger(__name__)

# Terminations that only a current member may request
_MEMBER_REASONS = (TerminationReason.USER_ENDED, TerminationReason.USER_DISCONNECTED)


class SessionManager:
    """Creates, joins, ends and sweeps chat sessions."""

    def __init__(
        self,
        store: PairingStore,
        settings: Settings,
        tasks: Optional[TaskRegistry] = None,
        notifier: Optional[SessionNotifier] = None,
        clock: Clock = utc_now,
        id_generator: IdGenerator = new_id,
    ):
        self._store = store
        self._tasks = tasks or TaskRegistry()
        self._notifier: SessionNotifier = notifier or NullNotifier()
        self._clock = clock
        self._new_id = id_generator

        self.join_debounce_seconds = settings.JOIN_DEBOUNCE_SECONDS
        self.retention = timedelta(minutes=settings.SESSION_RETENTION_MINUTES)
        self.max_age = timedelta(minutes=settings.SESSION_MAX_AGE_MINUTES)

        # session_id -> role -> presence, for participants connected to this process
        self._presence: Dict[str, Dict[Role, Presence]] = {}
        self._announced: Set[str] = set()

    def set_notifier(self, notifier: SessionNotifier) -> None:
        self._notifier = notifier

    @staticmethod
    def _presence_key(session_id: str) -> str:
        return f"presence:{session_id}"

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_session(
        self,
        session_id: str,
        speaker_id: str,
        listener_id: str,
        speaker_display_name: Optional[str] = None,
        listener_display_name: Optional[str] = None,
    ) -> ChatSession:
        """
        Create a session, or return it if it already exists for the same pair.

        Raises:
            ConflictError: The id is bound to another pair, the session has
                already ended, or a participant is in another active session
        """
        for participant_id in (speaker_id, listener_id):
            current = await self._active_session_id_for(participant_id)
            if current is not None and current != session_id:
                logger.error(
                    f"[SessionManager] {participant_id} is already in active "
                    f"session {current}, refusing {session_id}"
                )
                raise ConflictError("Participant is already in an active session")

        session = ChatSession(
            session_id=session_id,
            speaker_id=speaker_id,
            listener_id=listener_id,
            speaker_display_name=speaker_display_name,
            listener_display_name=listener_display_name,
            created_at=self._clock(),
        )
        stored, created = await self._store.create_session_if_absent(session)
        if created:
            logger.info(
                f"[SessionManager] Created session {session_id} "
                f"(speaker={speaker_id}, listener={listener_id})"
            )
            return stored

        if stored.speaker_id != speaker_id or stored.listener_id != listener_id:
            logger.error(
                f"[SessionManager] Session id {session_id} reused with a different pair"
            )
            raise ConflictError("Session id already bound to different participants")
        if not stored.is_active:
            raise ConflictError("Session has already ended")
        return stored

    async def handle_match(self, match: MatchResult) -> ChatSession:
        """Match listener: create the session, then notify both participants."""
        session = await self.create_session(
            match.session_id, match.speaker_id, match.listener_id
        )
        try:
            await self._notifier.match_found(match)
        except Exception as e:
            logger.warning(
                f"[SessionManager] match-found notification failed for {match.session_id}: {e}"
            )
        return session

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------

    async def join(
        self,
        session_id: str,
        participant_id: str,
        role: Role,
        display_name: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> Optional[ChatSession]:
        """
        Record that a participant connected to a session.

        When both roles are present the "both present" announcement is sent
        once, after a short debounce so simultaneous joins produce a single
        announcement. A rejoin after that announcement notifies the other
        participant only.

        Returns:
            The session, or None while it waits for the other participant of
            an independent arrival
        """
        session = await self._store.get_session(session_id)
        if session is not None:
            if not session.is_active:
                raise NotFoundError("Session not found or already ended")
            if session.participant_for(role) != participant_id:
                logger.error(
                    f"[SessionManager] {participant_id} tried to join {session_id} "
                    f"as {role.value} but is not that member"
                )
                raise ConflictError("Participant is not a member of this session")

        presence = Presence(
            participant_id=participant_id,
            role=role,
            display_name=display_name,
            avatar=avatar,
            joined_at=self._clock(),
        )
        members = self._presence.setdefault(session_id, {})
        members[role] = presence

        if session is None:
            if len(members) < 2:
                logger.info(
                    f"[SessionManager] {participant_id} waiting in {session_id} "
                    "for the other participant"
                )
                return None
            speaker = members[Role.SPEAKER]
            listener = members[Role.LISTENER]
            try:
                session = await self.create_session(
                    session_id,
                    speaker.participant_id,
                    listener.participant_id,
                    speaker_display_name=speaker.display_name,
                    listener_display_name=listener.display_name,
                )
            except PairingError:
                members.pop(role, None)
                if not members:
                    self._presence.pop(session_id, None)
                raise
        elif display_name is not None:
            session.set_display_name(role, display_name)
            await self._store.save_session(session)

        if len(members) == 2:
            if session_id in self._announced:
                await self._notify_rejoin(session, presence)
            else:
                self._tasks.schedule(
                    self._presence_key(session_id),
                    self.join_debounce_seconds,
                    lambda: self._announce_both_present(session_id),
                )
        return session

    async def _notify_rejoin(self, session: ChatSession, presence: Presence) -> None:
        other = session.other_participant(presence.participant_id)
        try:
            await self._notifier.participant_joined(session, presence, other)
        except Exception as e:
            logger.warning(
                f"[SessionManager] user-joined notification failed for {session.session_id}: {e}"
            )

    async def _announce_both_present(self, session_id: str) -> None:
        members = self._presence.get(session_id, {})
        if session_id in self._announced or len(members) < 2:
            return
        session = await self._store.get_session(session_id)
        if session is None or not session.is_active:
            return
        self._announced.add(session_id)
        logger.info(f"[SessionManager] Both participants present in {session_id}")
        await self._notifier.both_present(
            session, [members[Role.SPEAKER], members[Role.LISTENER]]
        )

    def leave(self, session_id: str, participant_id: str) -> bool:
        """Drop a participant's presence without ending the session."""
        members = self._presence.get(session_id)
        if not members:
            return False
        for role, presence in list(members.items()):
            if presence.participant_id == participant_id:
                del members[role]
                if not members:
                    self._presence.pop(session_id, None)
                    self._tasks.cancel(self._presence_key(session_id))
                return True
        return False

    def present_roles(self, session_id: str) -> List[Role]:
        return list(self._presence.get(session_id, {}))

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def post_message(
        self,
        session_id: str,
        sender_role: Role,
        content: str,
        sender_display_name: Optional[str] = None,
    ) -> Optional[Message]:
        """Append a message. None if the session is absent or ended."""
        session = await self._store.get_session(session_id)
        if session is None or not session.is_active:
            return None

        if sender_display_name is None:
            sender_display_name = (
                session.speaker_display_name
                if sender_role is Role.SPEAKER
                else session.listener_display_name
            )
        message = Message(
            id=self._new_id(),
            session_id=session_id,
            sender=sender_role,
            sender_display_name=sender_display_name,
            content=content,
            timestamp=self._clock(),
        )
        await self._store.append_message(message)
        return message

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    async def end(
        self,
        session_id: str,
        ended_by: Optional[str] = None,
        reason: Optional[TerminationReason] = None,
    ) -> bool:
        """Mark the session ended. False if it does not exist."""
        session = await self._store.get_session(session_id)
        if session is None:
            return False
        await self._mark_ended(session, ended_by, reason)
        return True

    async def _mark_ended(
        self,
        session: ChatSession,
        ended_by: Optional[str],
        reason: Optional[TerminationReason],
    ) -> ChatSession:
        if session.is_active:
            session.status = SessionStatus.ENDED
            session.ended_at = self._clock()
            session.ended_by = ended_by
            session.end_reason = reason
            await self._store.save_session(session)
            logger.info(
                f"[SessionManager] Ended session {session.session_id} "
                f"(reason={reason.value if reason else None}, by={ended_by})"
            )
        return session

    async def cleanup(self, session_id: str) -> None:
        """Remove the session and all routing state for it. Idempotent."""
        self._tasks.cancel(self._presence_key(session_id))
        self._presence.pop(session_id, None)
        self._announced.discard(session_id)
        await self._store.delete_session(session_id)

    async def terminate(
        self,
        session_id: str,
        reason: TerminationReason,
        ended_by: Optional[str] = None,
        requested_by: Optional[str] = None,
    ) -> bool:
        """
        End a session, notify both participants and clean up.

        ``user_ended`` and ``user_disconnected`` require ``requested_by`` to be
        a member of the active session. ``reported`` and ``expired`` skip the
        membership check and return False when the session is already gone.

        Raises:
            NotFoundError: Member termination of an absent or ended session
            ValidationError: Member termination by a non-member
        """
        session = await self._store.get_session(session_id)

        if reason in _MEMBER_REASONS:
            if session is None or not session.is_active:
                raise NotFoundError("Session not found or already ended")
            if requested_by is None or session.role_of(requested_by) is None:
                raise ValidationError("User not in specified session")
            ended_by = ended_by or requested_by
        elif session is None:
            return False

        session = await self._mark_ended(session, ended_by or "system", reason)
        try:
            await self._notifier.session_ended(session)
        except Exception as e:
            logger.warning(
                f"[SessionManager] session-ended notification failed for {session_id}: {e}"
            )
        await self.cleanup(session_id)
        return True

    async def sweep(self) -> int:
        """
        End and clean sessions past the retention window or the maximum age.

        Returns:
            Number of sessions removed
        """
        now = self._clock()
        removed = 0
        for session_id in await self._store.list_session_ids():
            session = await self._store.get_session(session_id)
            if session is None:
                continue
            if not session.is_active:
                if session.ended_at is None or session.ended_at <= now - self.retention:
                    await self.cleanup(session_id)
                    removed += 1
            elif session.created_at <= now - self.max_age:
                if await self.terminate(session_id, TerminationReason.EXPIRED):
                    removed += 1
        if removed:
            logger.info(f"[SessionManager] Swept {removed} sessions")
        return removed

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        return await self._store.get_session(session_id)

    async def _active_session_id_for(self, participant_id: str) -> Optional[str]:
        session_id = await self._store.get_session_id_for_participant(participant_id)
        if session_id is None:
            return None
        session = await self._store.get_session(session_id)
        if session is None or not session.is_active:
            return None
        return session_id

    async def get_session_for_participant(self, participant_id: str) -> Optional[ChatSession]:
        """The participant's active session, if any."""
        session_id = await self._active_session_id_for(participant_id)
        if session_id is None:
            return None
        return await self._store.get_session(session_id)

    async def is_participant_in_active_session(self, participant_id: str) -> bool:
        return await self._active_session_id_for(participant_id) is not None

    async def get_other_participant(
        self, session_id: str, participant_id: str
    ) -> Optional[str]:
        session = await self._store.get_session(session_id)
        return session.other_participant(participant_id) if session else None

    async def get_role(self, session_id: str, participant_id: str) -> Optional[Role]:
        session = await self._store.get_session(session_id)
        return session.role_of(participant_id) if session else None

    async def get_active_sessions(self) -> List[ChatSession]:
        sessions = []
        for session_id in await self._store.list_session_ids():
            session = await self._store.get_session(session_id)
            if session is not None and session.is_active:
                sessions.append(session)
        return sessions

    async def session_stats(self) -> SessionStats:
        stats = SessionStats()
        for session_id in await self._store.list_session_ids():
            session = await self._store.get_session(session_id)
            if session is None:
                continue
            stats.total_sessions += 1
            if session.is_active:
                stats.active_sessions += 1
            else:
                stats.ended_sessions += 1
            stats.total_messages += len(session.messages)
        return stats
