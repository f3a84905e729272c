# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Socket.IO event names and payload models for the /pairing namespace.

Inbound payloads use the camelCase field names sent by the web client.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ventmatch.schemas.pairing import Role


class ClientEvents:
    """Events sent by the client."""

    JOIN_SESSION = "join-session"
    SEND_MESSAGE = "send-message"
    END_SESSION = "end-session"
    TYPING = "typing"


class ServerEvents:
    """Events sent by the server."""

    MATCH_FOUND = "match-found"
    SESSION_JOINED = "session-joined"
    USER_JOINED = "user-joined"
    RECEIVE_MESSAGE = "receive-message"
    USER_TYPING = "user-typing"
    SESSION_ENDED = "session-ended"
    ERROR = "error"


class _ClientPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class JoinSessionPayload(_ClientPayload):
    session_id: str = Field(..., alias="sessionId", min_length=1)
    role: Role
    display_name: Optional[str] = Field(default=None, alias="displayName", max_length=64)
    avatar: Optional[str] = Field(default=None, max_length=256)


class SendMessagePayload(_ClientPayload):
    session_id: str = Field(..., alias="sessionId", min_length=1)
    content: str


class EndSessionPayload(_ClientPayload):
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class TypingPayload(_ClientPayload):
    session_id: str = Field(..., alias="sessionId", min_length=1)
    is_typing: bool = Field(default=False, alias="isTyping")
