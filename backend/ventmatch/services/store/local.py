# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
In-process pairing store.

Used when Redis is disabled and as the failover target when Redis becomes
unreachable. Every mutation runs under one asyncio.Lock, so the queue pop and
the session create are atomic within this process.
"""

import asyncio
from collections import deque
from datetime import datetime
from typing import Deque, Dict, List, Optional, Tuple

from ventmatch.schemas.pairing import QueueEntry, Role
from ventmatch.schemas.session import ChatSession, Message
from ventmatch.services.store.base import PairingStore


class LocalPairingStore(PairingStore):
    """Pairing store backed by in-process deques and dicts."""

    name = "local"

    def __init__(self, max_messages: int = 20):
        self._max_messages = max_messages
        self._lock = asyncio.Lock()
        self._queues: Dict[Role, Deque[QueueEntry]] = {
            Role.SPEAKER: deque(),
            Role.LISTENER: deque(),
        }
        self._entries: Dict[str, QueueEntry] = {}
        self._sessions: Dict[str, ChatSession] = {}
        self._participant_sessions: Dict[str, str] = {}

    async def ping(self) -> bool:
        return True

    async def pair_or_enqueue(self, entry: QueueEntry) -> Optional[QueueEntry]:
        async with self._lock:
            opposite = self._queues[entry.role.opposite]
            while opposite:
                candidate = opposite.popleft()
                self._entries.pop(candidate.participant_id, None)
                if candidate.expires_at > entry.enqueued_at:
                    return candidate

            self._discard(entry.participant_id)
            self._queues[entry.role].append(entry)
            self._entries[entry.participant_id] = entry
            return None

    async def remove_entry(self, participant_id: str) -> Optional[QueueEntry]:
        async with self._lock:
            return self._discard(participant_id)

    async def get_entry(self, participant_id: str) -> Optional[QueueEntry]:
        return self._entries.get(participant_id)

    async def list_entries(self, role: Role) -> List[QueueEntry]:
        return list(self._queues[role])

    async def remove_expired_entries(self, now: datetime) -> List[str]:
        async with self._lock:
            expired = [
                participant_id
                for participant_id, entry in self._entries.items()
                if entry.expires_at <= now
            ]
            for participant_id in expired:
                self._discard(participant_id)
            return expired

    def _discard(self, participant_id: str) -> Optional[QueueEntry]:
        entry = self._entries.pop(participant_id, None)
        if entry is not None:
            try:
                self._queues[entry.role].remove(entry)
            except ValueError:
                pass
        return entry

    async def create_session_if_absent(
        self, session: ChatSession
    ) -> Tuple[ChatSession, bool]:
        async with self._lock:
            existing = self._sessions.get(session.session_id)
            if existing is not None:
                return existing.model_copy(deep=True), False
            self._sessions[session.session_id] = session.model_copy(deep=True)
            self._participant_sessions[session.speaker_id] = session.session_id
            self._participant_sessions[session.listener_id] = session.session_id
            return session, True

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def save_session(self, session: ChatSession) -> bool:
        async with self._lock:
            stored = self._sessions.get(session.session_id)
            if stored is None:
                return False
            updated = session.model_copy(deep=True)
            updated.messages = stored.messages
            self._sessions[session.session_id] = updated
            return True

    async def append_message(self, message: Message) -> None:
        async with self._lock:
            session = self._sessions.get(message.session_id)
            if session is None:
                return
            session.messages.append(message)
            if len(session.messages) > self._max_messages:
                del session.messages[: -self._max_messages]

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return False
            for participant_id in (session.speaker_id, session.listener_id):
                if self._participant_sessions.get(participant_id) == session_id:
                    del self._participant_sessions[participant_id]
            return True

    async def get_session_id_for_participant(self, participant_id: str) -> Optional[str]:
        return self._participant_sessions.get(participant_id)

    async def list_session_ids(self) -> List[str]:
        return list(self._sessions)

    async def clear(self) -> None:
        async with self._lock:
            for queue in self._queues.values():
                queue.clear()
            self._entries.clear()
            self._sessions.clear()
            self._participant_sessions.clear()
