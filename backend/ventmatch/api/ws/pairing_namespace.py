# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Pairing namespace for Socket.IO.

This module implements the /pairing namespace used by matched participants to
join their session, exchange messages and end the session. It is also the
session manager's notifier: match, presence and termination notifications are
emitted to the participant rooms from here.

Rooms:
- ``participant:{participant_id}``: every socket of one participant
- ``session:{session_id}``: sockets that joined the session
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Type

import socketio
from pydantic import BaseModel
from pydantic import ValidationError as PayloadValidationError

from ventmatch.core.exceptions import NotFoundError, PairingError, ValidationError
from ventmatch.schemas.events import (
    ClientEvents,
    EndSessionPayload,
    JoinSessionPayload,
    SendMessagePayload,
    ServerEvents,
    TypingPayload,
)
from ventmatch.schemas.pairing import MatchResult, Role
from ventmatch.schemas.session import (
    TERMINATION_MESSAGES,
    ChatSession,
    Presence,
    TerminationReason,
)
from ventmatch.services.container import ServiceContainer

logger = logging.getLogger(__name__)

INVALID_SESSION_DATA = "Invalid session data"
NOT_IN_SESSION = "Invalid session or user not in session"
SESSION_ID_REQUIRED = "Session ID is required"
USER_NOT_IN_SESSION = "User not in specified session"
SESSION_NOT_FOUND = "Session not found or already ended"


def participant_room(participant_id: str) -> str:
    return f"participant:{participant_id}"


def session_room(session_id: str) -> str:
    return f"session:{session_id}"


class PairingNamespace(socketio.AsyncNamespace):
    """
    Socket.IO namespace for session chat.

    Client events are parsed into payload models and routed through an
    explicit event table. A payload that does not parse is answered with the
    event's error message; ``typing`` never answers with an error.
    """

    def __init__(self, container: ServiceContainer, namespace: str = "/pairing"):
        super().__init__(namespace)
        self._container = container

        # event -> (handler method, payload model, error for an invalid payload)
        self._commands: Dict[str, Tuple[str, Type[BaseModel], Optional[str]]] = {
            ClientEvents.JOIN_SESSION: (
                "on_join_session",
                JoinSessionPayload,
                INVALID_SESSION_DATA,
            ),
            ClientEvents.SEND_MESSAGE: (
                "on_send_message",
                SendMessagePayload,
                NOT_IN_SESSION,
            ),
            ClientEvents.END_SESSION: (
                "on_end_session",
                EndSessionPayload,
                SESSION_ID_REQUIRED,
            ),
            ClientEvents.TYPING: ("on_typing", TypingPayload, None),
        }

    async def trigger_event(self, event: str, sid: str, *args):
        """
        Route client commands to their typed handlers.

        Connect and disconnect fall through to the default dispatch.
        """
        if event not in self._commands:
            return await super().trigger_event(event, sid, *args)

        handler_name, payload_model, invalid_message = self._commands[event]
        data = args[0] if args else None
        try:
            payload = payload_model.model_validate(data if isinstance(data, dict) else {})
        except PayloadValidationError as e:
            logger.info(f"[WS] Invalid '{event}' payload sid={sid}: {e.error_count()} errors")
            if invalid_message:
                return await self._error(sid, invalid_message)
            return None

        logger.debug(f"[WS] Routing event '{event}' to handler '{handler_name}'")
        return await getattr(self, handler_name)(sid, payload)

    async def _error(self, sid: str, message: str) -> Dict[str, Any]:
        await self.emit(ServerEvents.ERROR, {"message": message}, to=sid)
        return {"error": message}

    async def _participant_id(self, sid: str) -> Optional[str]:
        socket_session = await self.get_session(sid)
        return socket_session.get("participant_id")

    # ============================================================
    # Connection
    # ============================================================

    async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None):
        """
        Handle client connection.

        Args:
            sid: Socket ID
            environ: ASGI environ dict
            auth: Authentication data (expected: {"participant_id": "..."})

        Raises:
            ConnectionRefusedError: If no participant id was supplied
        """
        if not auth or not isinstance(auth, dict) or not auth.get("participant_id"):
            logger.warning(f"[WS] Missing participant id sid={sid}")
            raise socketio.exceptions.ConnectionRefusedError("Missing participant id")

        participant_id = str(auth["participant_id"])
        await self.save_session(sid, {"participant_id": participant_id})
        await self.enter_room(sid, participant_room(participant_id))
        logger.info(f"[WS] Connected participant={participant_id} sid={sid}")

    async def on_disconnect(self, sid: str, *args):
        """
        Handle client disconnection.

        Withdraws any queue entry and ends the participant's active session
        with reason ``user_disconnected``.
        """
        try:
            socket_session = await self.get_session(sid)
        except KeyError:
            socket_session = {}
        participant_id = socket_session.get("participant_id")
        if not participant_id:
            logger.info(f"[WS] Disconnected sid={sid}")
            return

        logger.info(f"[WS] Disconnected participant={participant_id} sid={sid}")
        services = self._container
        try:
            await services.matching.withdraw(participant_id)
        except PairingError as e:
            logger.warning(f"[WS] Withdraw on disconnect failed for {participant_id}: {e}")

        # Presence may exist for a session that was never created
        joined_session_id = socket_session.get("session_id")
        if joined_session_id:
            services.sessions.leave(joined_session_id, participant_id)

        session = await services.sessions.get_session_for_participant(participant_id)
        if session is None:
            return
        services.sessions.leave(session.session_id, participant_id)
        try:
            await services.sessions.terminate(
                session.session_id,
                TerminationReason.USER_DISCONNECTED,
                requested_by=participant_id,
            )
        except (NotFoundError, ValidationError) as e:
            # The session ended concurrently
            logger.debug(f"[WS] Disconnect termination skipped: {e}")

    # ============================================================
    # Session Events
    # ============================================================

    async def on_join_session(self, sid: str, payload: JoinSessionPayload) -> dict:
        """
        Handle join-session event.

        Args:
            sid: Socket ID
            payload: {"sessionId", "role", "displayName"?, "avatar"?}

        Returns:
            {"success": True} or {"error": "..."}
        """
        participant_id = await self._participant_id(sid)
        if not participant_id:
            return await self._error(sid, INVALID_SESSION_DATA)

        try:
            await self._container.sessions.join(
                payload.session_id,
                participant_id,
                payload.role,
                display_name=payload.display_name,
                avatar=payload.avatar,
            )
        except PairingError as e:
            return await self._error(sid, e.message)

        await self.enter_room(sid, session_room(payload.session_id))
        async with self.session(sid) as socket_session:
            socket_session["session_id"] = payload.session_id
            socket_session["role"] = payload.role.value
            socket_session["display_name"] = payload.display_name

        await self.emit(
            ServerEvents.SESSION_JOINED,
            {"sessionId": payload.session_id, "role": payload.role.value},
            to=sid,
        )
        logger.info(
            f"[WS] {participant_id} joined session {payload.session_id} "
            f"as {payload.role.value} sid={sid}"
        )
        return {"success": True}

    async def on_send_message(self, sid: str, payload: SendMessagePayload) -> dict:
        """
        Handle send-message event.

        Args:
            sid: Socket ID
            payload: {"sessionId", "content"}
        """
        participant_id = await self._participant_id(sid)
        sessions = self._container.sessions
        role = await sessions.get_role(payload.session_id, participant_id)
        if role is None:
            return await self._error(sid, NOT_IN_SESSION)

        try:
            content = self._container.content_filter.check(payload.content)
        except ValidationError as e:
            return await self._error(sid, e.message)

        socket_session = await self.get_session(sid)
        message = await sessions.post_message(
            payload.session_id,
            role,
            content,
            sender_display_name=socket_session.get("display_name"),
        )
        if message is None:
            return await self._error(sid, NOT_IN_SESSION)

        await self.emit(
            ServerEvents.RECEIVE_MESSAGE,
            message.model_dump(mode="json"),
            room=session_room(payload.session_id),
        )
        return {"success": True, "message_id": message.id}

    async def on_end_session(self, sid: str, payload: EndSessionPayload) -> dict:
        """
        Handle end-session event.

        Args:
            sid: Socket ID
            payload: {"sessionId"}
        """
        if not payload.session_id:
            return await self._error(sid, SESSION_ID_REQUIRED)

        participant_id = await self._participant_id(sid)
        try:
            await self._container.sessions.terminate(
                payload.session_id,
                TerminationReason.USER_ENDED,
                requested_by=participant_id,
            )
        except ValidationError:
            return await self._error(sid, USER_NOT_IN_SESSION)
        except NotFoundError:
            return await self._error(sid, SESSION_NOT_FOUND)

        await self.leave_room(sid, session_room(payload.session_id))
        return {"success": True}

    async def on_typing(self, sid: str, payload: TypingPayload) -> None:
        """Relay a typing indicator to the other participant. Never errors."""
        try:
            participant_id = await self._participant_id(sid)
            other = await self._container.sessions.get_other_participant(
                payload.session_id, participant_id
            )
            if other:
                await self.emit(
                    ServerEvents.USER_TYPING,
                    {"isTyping": payload.is_typing},
                    room=participant_room(other),
                )
        except Exception as e:
            logger.debug(f"[WS] Typing relay failed sid={sid}: {e}")

    # ============================================================
    # Session notifier
    # ============================================================

    async def match_found(self, match: MatchResult) -> None:
        for role in Role:
            await self.emit(
                ServerEvents.MATCH_FOUND,
                {"sessionId": match.session_id, "role": role.value},
                room=participant_room(match.participant_for(role)),
            )

    async def both_present(self, session: ChatSession, presences: List[Presence]) -> None:
        for presence in presences:
            other = session.other_participant(presence.participant_id)
            if other:
                await self.participant_joined(session, presence, other)

    async def participant_joined(
        self, session: ChatSession, presence: Presence, recipient_id: str
    ) -> None:
        await self.emit(
            ServerEvents.USER_JOINED,
            {
                "role": presence.role.value,
                "displayName": presence.display_name,
                "avatar": presence.avatar,
            },
            room=participant_room(recipient_id),
        )

    async def session_ended(self, session: ChatSession) -> None:
        reason = session.end_reason
        data = {
            "sessionId": session.session_id,
            "endedBy": session.ended_by,
            "reason": reason.value if reason else None,
        }
        if reason in TERMINATION_MESSAGES:
            data["message"] = TERMINATION_MESSAGES[reason]

        await self.emit(
            ServerEvents.SESSION_ENDED,
            data,
            room=[
                participant_room(session.speaker_id),
                participant_room(session.listener_id),
            ],
        )
        await self.close_room(session_room(session.session_id))


def register_pairing_namespace(
    sio: socketio.AsyncServer, container: ServiceContainer
) -> PairingNamespace:
    """
    Register the pairing namespace and attach it as the session notifier.

    Args:
        sio: Socket.IO server instance
        container: Service container shared with the HTTP API
    """
    pairing_ns = PairingNamespace(container, "/pairing")
    sio.register_namespace(pairing_ns)
    container.sessions.set_notifier(pairing_ns)
    logger.info("Pairing namespace registered at /pairing")
    return pairing_ns
