# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Pairing store interface.

A pairing store holds the two role queues and the chat session state. The
matcher and the session manager only talk to this interface, so they behave
the same whichever backend is active.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Tuple

from ventmatch.schemas.pairing import QueueEntry, Role
from ventmatch.schemas.session import ChatSession, Message


class PairingStore(ABC):
    """Queue and session storage used by the matcher and session manager."""

    name: str = "abstract"

    @abstractmethod
    async def ping(self) -> bool:
        """Check the backend is reachable."""

    # ------------------------------------------------------------------
    # Queues
    # ------------------------------------------------------------------

    @abstractmethod
    async def pair_or_enqueue(self, entry: QueueEntry) -> Optional[QueueEntry]:
        """
        Pop the oldest live entry of the opposite role, or enqueue ``entry``.

        This is a single atomic step. When a partner is popped the admitted
        entry is never written to its own queue. Entries already past their
        deadline are discarded while searching for a partner.

        Args:
            entry: The entry being admitted

        Returns:
            The partner's entry, or None if ``entry`` was enqueued
        """

    @abstractmethod
    async def remove_entry(self, participant_id: str) -> Optional[QueueEntry]:
        """Remove the participant from whichever queue holds it."""

    @abstractmethod
    async def get_entry(self, participant_id: str) -> Optional[QueueEntry]:
        pass

    @abstractmethod
    async def list_entries(self, role: Role) -> List[QueueEntry]:
        """Waiting entries of one queue, oldest first."""

    @abstractmethod
    async def remove_expired_entries(self, now: datetime) -> List[str]:
        """Drop entries whose deadline has passed. Returns their participant ids."""

    async def queue_depth(self, role: Role) -> int:
        return len(await self.list_entries(role))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_session_if_absent(
        self, session: ChatSession
    ) -> Tuple[ChatSession, bool]:
        """
        Store ``session`` unless its id is already taken.

        Returns:
            (stored session, created). When the id exists the stored session
            is returned unchanged with created=False.
        """

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        """Session with its retained message history."""

    @abstractmethod
    async def save_session(self, session: ChatSession) -> bool:
        """Overwrite session fields (not messages). False if it no longer exists."""

    @abstractmethod
    async def append_message(self, message: Message) -> None:
        """Append to the session history, keeping only the newest messages."""

    @abstractmethod
    async def delete_session(self, session_id: str) -> bool:
        """Delete the session, its messages and its participant mappings."""

    @abstractmethod
    async def get_session_id_for_participant(self, participant_id: str) -> Optional[str]:
        pass

    @abstractmethod
    async def list_session_ids(self) -> List[str]:
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove every queue entry and session."""
