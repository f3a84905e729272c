# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Pydantic schemas for the matching queue and admission API.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Literal, Optional, Union

from pydantic import BaseModel, Field


class Role(str, Enum):
    """The two participant roles being paired."""

    SPEAKER = "speaker"
    LISTENER = "listener"

    @property
    def opposite(self) -> "Role":
        return Role.LISTENER if self is Role.SPEAKER else Role.SPEAKER


class QueueEntry(BaseModel):
    """A participant waiting in one of the role queues."""

    participant_id: str
    role: Role
    enqueued_at: datetime
    expires_at: datetime


class MatchResult(BaseModel):
    """A successful pairing. Consumed immediately by the session manager."""

    session_id: str
    speaker_id: str
    listener_id: str

    def participant_for(self, role: Role) -> str:
        return self.speaker_id if role is Role.SPEAKER else self.listener_id


class QueueStats(BaseModel):
    """Number of participants waiting per role."""

    speakers_waiting: int = 0
    listeners_waiting: int = 0

    @property
    def total(self) -> int:
        return self.speakers_waiting + self.listeners_waiting

    def depth(self, role: Role) -> int:
        return self.speakers_waiting if role is Role.SPEAKER else self.listeners_waiting


# =============================================================================
# Admission API
# =============================================================================


class MatchRequest(BaseModel):
    """Request body for POST /match."""

    participant_id: str = Field(..., min_length=1, max_length=128)
    role: Role


class QueuedResponse(BaseModel):
    status: Literal["queued"] = "queued"
    participant_id: str
    role: Role
    estimated_wait_seconds: int
    queue_depths: Dict[Role, int]


class MatchedResponse(BaseModel):
    status: Literal["matched"] = "matched"
    session_id: str
    role: Role


AdmissionResponse = Union[QueuedResponse, MatchedResponse]


class CancelResponse(BaseModel):
    participant_id: str
    cancelled: bool


class MatchStatsResponse(BaseModel):
    waiting_by_role: Dict[Role, int]
    total: int
    backend: Optional[str] = None
