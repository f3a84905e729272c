# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Pairing store with one-way failover from Redis to the local store.

The first BackendUnavailableError from the primary switches the process to
the fallback for the rest of its lifetime. The failed operation is re-run on
the fallback; the primary is not retried per call.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from ventmatch.core.exceptions import BackendUnavailableError
from ventmatch.schemas.pairing import QueueEntry, Role
from ventmatch.schemas.session import ChatSession, Message
from ventmatch.services.store.base import PairingStore

logger = logging.getLogger(__name__)


class FailoverPairingStore(PairingStore):
    """Delegates to ``primary`` until it fails, then to ``fallback``."""

    def __init__(self, primary: PairingStore, fallback: PairingStore):
        self._primary = primary
        self._fallback = fallback
        self._active = primary
        self._failure_reason: Optional[str] = None

    @property
    def name(self) -> str:
        return self._active.name

    @property
    def active_backend(self) -> str:
        return self._active.name

    @property
    def has_failed_over(self) -> bool:
        return self._active is self._fallback

    @property
    def failure_reason(self) -> Optional[str]:
        return self._failure_reason

    def fail_over(self, reason: str) -> None:
        """Switch to the fallback store. Idempotent."""
        if self.has_failed_over:
            return
        self._active = self._fallback
        self._failure_reason = reason
        logger.error(
            f"[PairingStore] {self._primary.name} backend unavailable, "
            f"switching to {self._fallback.name} for the rest of this process: {reason}"
        )

    async def _call(self, method: str, *args, **kwargs):
        store = self._active
        try:
            return await getattr(store, method)(*args, **kwargs)
        except BackendUnavailableError as e:
            if store is self._fallback:
                raise
            self.fail_over(str(e))
            return await getattr(self._fallback, method)(*args, **kwargs)

    async def ping(self) -> bool:
        return await self._call("ping")

    async def pair_or_enqueue(self, entry: QueueEntry) -> Optional[QueueEntry]:
        return await self._call("pair_or_enqueue", entry)

    async def remove_entry(self, participant_id: str) -> Optional[QueueEntry]:
        return await self._call("remove_entry", participant_id)

    async def get_entry(self, participant_id: str) -> Optional[QueueEntry]:
        return await self._call("get_entry", participant_id)

    async def list_entries(self, role: Role) -> List[QueueEntry]:
        return await self._call("list_entries", role)

    async def remove_expired_entries(self, now: datetime) -> List[str]:
        return await self._call("remove_expired_entries", now)

    async def create_session_if_absent(
        self, session: ChatSession
    ) -> Tuple[ChatSession, bool]:
        return await self._call("create_session_if_absent", session)

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        return await self._call("get_session", session_id)

    async def save_session(self, session: ChatSession) -> bool:
        return await self._call("save_session", session)

    async def append_message(self, message: Message) -> None:
        return await self._call("append_message", message)

    async def delete_session(self, session_id: str) -> bool:
        return await self._call("delete_session", session_id)

    async def get_session_id_for_participant(self, participant_id: str) -> Optional[str]:
        return await self._call("get_session_id_for_participant", participant_id)

    async def list_session_ids(self) -> List[str]:
        return await self._call("list_session_ids")

    async def clear(self) -> None:
        return await self._call("clear")
