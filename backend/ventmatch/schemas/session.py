# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Pydantic schemas for chat sessions and their messages.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from ventmatch.schemas.pairing import Role


class SessionStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class TerminationReason(str, Enum):
    """Why a session ended. Shown to both participants."""

    USER_ENDED = "user_ended"
    USER_DISCONNECTED = "user_disconnected"
    REPORTED = "reported"
    EXPIRED = "expired"


TERMINATION_MESSAGES = {
    TerminationReason.REPORTED: (
        "This session has been terminated due to a report of inappropriate behavior."
    ),
    TerminationReason.EXPIRED: "This session has reached its time limit.",
}


class Message(BaseModel):
    """A chat message. Immutable once appended."""

    id: str
    session_id: str
    sender: Role
    sender_display_name: Optional[str] = None
    content: str
    timestamp: datetime


class ChatSession(BaseModel):
    """A one-to-one chat between a speaker and a listener."""

    session_id: str
    speaker_id: str
    listener_id: str
    speaker_display_name: Optional[str] = None
    listener_display_name: Optional[str] = None
    status: SessionStatus = SessionStatus.ACTIVE
    created_at: datetime
    ended_at: Optional[datetime] = None
    ended_by: Optional[str] = None
    end_reason: Optional[TerminationReason] = None
    messages: List[Message] = Field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    def participant_for(self, role: Role) -> str:
        return self.speaker_id if role is Role.SPEAKER else self.listener_id

    def role_of(self, participant_id: str) -> Optional[Role]:
        if participant_id == self.speaker_id:
            return Role.SPEAKER
        if participant_id == self.listener_id:
            return Role.LISTENER
        return None

    def other_participant(self, participant_id: str) -> Optional[str]:
        if participant_id == self.speaker_id:
            return self.listener_id
        if participant_id == self.listener_id:
            return self.speaker_id
        return None

    def set_display_name(self, role: Role, display_name: Optional[str]) -> None:
        if display_name is None:
            return
        if role is Role.SPEAKER:
            self.speaker_display_name = display_name
        else:
            self.listener_display_name = display_name


class Presence(BaseModel):
    """A participant connected to a session in this process."""

    participant_id: str
    role: Role
    display_name: Optional[str] = None
    avatar: Optional[str] = None
    joined_at: datetime


class SessionStats(BaseModel):
    total_sessions: int = 0
    active_sessions: int = 0
    ended_sessions: int = 0
    total_messages: int = 0
