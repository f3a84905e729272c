# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Outbound notifications raised by the session manager.

The Socket.IO pairing namespace is the production implementation.
"""

from typing import List, Protocol

from ventmatch.schemas.pairing import MatchResult
from ventmatch.schemas.session import ChatSession, Presence


class SessionNotifier(Protocol):
    async def match_found(self, match: MatchResult) -> None:
        """Tell both matched participants which session to join."""

    async def both_present(self, session: ChatSession, presences: List[Presence]) -> None:
        """Announce that both participants are connected to the session."""

    async def participant_joined(
        self, session: ChatSession, presence: Presence, recipient_id: str
    ) -> None:
        """Tell ``recipient_id`` that the other participant (re)joined."""

    async def session_ended(self, session: ChatSession) -> None:
        """Tell both participants the session ended and why."""


class NullNotifier:
    """Notifier used until a transport is attached."""

    async def match_found(self, match: MatchResult) -> None:
        return None

    async def both_present(self, session: ChatSession, presences: List[Presence]) -> None:
        return None

    async def participant_joined(
        self, session: ChatSession, presence: Presence, recipient_id: str
    ) -> None:
        return None

    async def session_ended(self, session: ChatSession) -> None:
        return None
