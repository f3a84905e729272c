# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the /pairing Socket.IO namespace.

Socket.IO transport methods (emit, rooms, socket sessions) are replaced with
in-memory fakes so handlers run against the real services.
"""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest
import socketio

from ventmatch.api.ws.pairing_namespace import PairingNamespace
from ventmatch.schemas.events import ClientEvents, ServerEvents
from ventmatch.schemas.pairing import MatchResult, Role
from ventmatch.schemas.session import TerminationReason


def emitted(ns, event):
    """All (data, kwargs) pairs emitted for ``event``."""
    return [
        (call.args[1], call.kwargs)
        for call in ns.emit.await_args_list
        if call.args[0] == event
    ]


@pytest.fixture
def pairing_ns(container):
    ns = PairingNamespace(container)
    socket_sessions = {}

    async def get_session(sid):
        return socket_sessions.setdefault(sid, {})

    async def save_session(sid, data):
        socket_sessions[sid] = dict(data)

    @asynccontextmanager
    async def session(sid):
        yield socket_sessions.setdefault(sid, {})

    ns.get_session = get_session
    ns.save_session = save_session
    ns.session = session
    ns.emit = AsyncMock()
    ns.enter_room = AsyncMock()
    ns.leave_room = AsyncMock()
    ns.close_room = AsyncMock()
    container.sessions.set_notifier(ns)
    yield ns
    container.tasks.cancel_all()


@pytest.fixture
async def active_session(container, pairing_ns):
    """Session s1 between sp and li, with both sockets connected."""
    await container.sessions.create_session("s1", "sp", "li")
    await pairing_ns.on_connect("sid-sp", {}, {"participant_id": "sp"})
    await pairing_ns.on_connect("sid-li", {}, {"participant_id": "li"})
    return "s1"


class TestConnection:
    """Tests for connect and disconnect."""

    @pytest.mark.asyncio
    async def test_connect_requires_participant_id(self, pairing_ns):
        with pytest.raises(socketio.exceptions.ConnectionRefusedError):
            await pairing_ns.on_connect("sid-1", {}, None)

    @pytest.mark.asyncio
    async def test_connect_enters_participant_room(self, pairing_ns):
        await pairing_ns.on_connect("sid-1", {}, {"participant_id": "P1"})

        pairing_ns.enter_room.assert_awaited_once_with("sid-1", "participant:P1")
        assert (await pairing_ns.get_session("sid-1"))["participant_id"] == "P1"

    @pytest.mark.asyncio
    async def test_disconnect_withdraws_from_queue(self, pairing_ns, container):
        await pairing_ns.on_connect("sid-1", {}, {"participant_id": "P1"})
        await container.matching.admit("P1", Role.SPEAKER)

        await pairing_ns.on_disconnect("sid-1")

        assert (await container.matching.queue_stats()).total == 0

    @pytest.mark.asyncio
    async def test_disconnect_before_partner_arrives_clears_presence(
        self, pairing_ns, container
    ):
        """Test that a waiting joiner who disconnects is not paired afterwards."""
        await pairing_ns.on_connect("sid-1", {}, {"participant_id": "P1"})
        await pairing_ns.trigger_event(
            ClientEvents.JOIN_SESSION, "sid-1", {"sessionId": "ghost", "role": "speaker"}
        )

        await pairing_ns.on_disconnect("sid-1")
        assert container.sessions.present_roles("ghost") == []

        await pairing_ns.on_connect("sid-2", {}, {"participant_id": "Q"})
        await pairing_ns.trigger_event(
            ClientEvents.JOIN_SESSION, "sid-2", {"sessionId": "ghost", "role": "listener"}
        )

        assert await container.sessions.get_session("ghost") is None
        assert not await container.sessions.is_participant_in_active_session("P1")
        await container.matching.admit("P1", Role.SPEAKER)
        assert (await container.matching.queue_stats()).total == 1

    @pytest.mark.asyncio
    async def test_disconnect_ends_session(self, pairing_ns, container, active_session):
        await pairing_ns.on_disconnect("sid-li")

        assert await container.sessions.get_session(active_session) is None
        ended = emitted(pairing_ns, ServerEvents.SESSION_ENDED)
        assert len(ended) == 1
        data, _ = ended[0]
        assert data["reason"] == TerminationReason.USER_DISCONNECTED.value
        assert data["endedBy"] == "li"


class TestJoinSession:
    """Tests for the join-session event."""

    @pytest.mark.asyncio
    async def test_join(self, pairing_ns, active_session):
        result = await pairing_ns.trigger_event(
            ClientEvents.JOIN_SESSION,
            "sid-sp",
            {"sessionId": active_session, "role": "speaker", "displayName": "Sky"},
        )

        assert result == {"success": True}
        pairing_ns.enter_room.assert_any_await("sid-sp", "session:s1")
        pairing_ns.emit.assert_any_await(
            ServerEvents.SESSION_JOINED,
            {"sessionId": "s1", "role": "speaker"},
            to="sid-sp",
        )

    @pytest.mark.asyncio
    async def test_invalid_payload(self, pairing_ns, active_session):
        result = await pairing_ns.trigger_event(
            ClientEvents.JOIN_SESSION, "sid-sp", {"sessionId": "s1", "role": "venter"}
        )

        assert result == {"error": "Invalid session data"}
        pairing_ns.emit.assert_awaited_once_with(
            ServerEvents.ERROR, {"message": "Invalid session data"}, to="sid-sp"
        )

    @pytest.mark.asyncio
    async def test_join_ended_session(self, pairing_ns, container, active_session):
        await container.sessions.end(active_session, reason=TerminationReason.USER_ENDED)

        result = await pairing_ns.trigger_event(
            ClientEvents.JOIN_SESSION, "sid-sp", {"sessionId": "s1", "role": "speaker"}
        )

        assert result == {"error": "Session not found or already ended"}


class TestSendMessage:
    """Tests for the send-message event."""

    @pytest.mark.asyncio
    async def test_message_is_broadcast_to_session_room(self, pairing_ns, active_session):
        result = await pairing_ns.trigger_event(
            ClientEvents.SEND_MESSAGE, "sid-li", {"sessionId": "s1", "content": "  hi  "}
        )

        assert result["success"] is True
        messages = emitted(pairing_ns, ServerEvents.RECEIVE_MESSAGE)
        assert len(messages) == 1
        data, kwargs = messages[0]
        assert data["content"] == "hi"
        assert data["sender"] == "listener"
        assert kwargs == {"room": "session:s1"}

    @pytest.mark.asyncio
    async def test_non_member_is_rejected(self, pairing_ns, active_session):
        await pairing_ns.on_connect("sid-x", {}, {"participant_id": "intruder"})

        result = await pairing_ns.trigger_event(
            ClientEvents.SEND_MESSAGE, "sid-x", {"sessionId": "s1", "content": "hi"}
        )

        assert result == {"error": "Invalid session or user not in session"}

    @pytest.mark.asyncio
    async def test_empty_message_is_rejected(self, pairing_ns, active_session):
        result = await pairing_ns.trigger_event(
            ClientEvents.SEND_MESSAGE, "sid-sp", {"sessionId": "s1", "content": "   "}
        )

        assert result == {"error": "Message content cannot be empty"}


class TestEndSession:
    """Tests for the end-session event."""

    @pytest.mark.asyncio
    async def test_session_id_required(self, pairing_ns, active_session):
        result = await pairing_ns.trigger_event(ClientEvents.END_SESSION, "sid-sp", {})

        assert result == {"error": "Session ID is required"}

    @pytest.mark.asyncio
    async def test_member_ends_session(self, pairing_ns, container, active_session):
        result = await pairing_ns.trigger_event(
            ClientEvents.END_SESSION, "sid-sp", {"sessionId": "s1"}
        )

        assert result == {"success": True}
        data, kwargs = emitted(pairing_ns, ServerEvents.SESSION_ENDED)[0]
        assert data["reason"] == "user_ended"
        assert data["endedBy"] == "sp"
        assert kwargs["room"] == ["participant:sp", "participant:li"]
        pairing_ns.close_room.assert_awaited_once_with("session:s1")
        assert await container.sessions.get_session("s1") is None

    @pytest.mark.asyncio
    async def test_non_member_cannot_end(self, pairing_ns, active_session):
        await pairing_ns.on_connect("sid-x", {}, {"participant_id": "intruder"})

        result = await pairing_ns.trigger_event(
            ClientEvents.END_SESSION, "sid-x", {"sessionId": "s1"}
        )

        assert result == {"error": "User not in specified session"}

    @pytest.mark.asyncio
    async def test_unknown_session(self, pairing_ns, active_session):
        result = await pairing_ns.trigger_event(
            ClientEvents.END_SESSION, "sid-sp", {"sessionId": "missing"}
        )

        assert result == {"error": "Session not found or already ended"}


class TestTypingAndNotifications:
    """Tests for typing relay and notifier methods."""

    @pytest.mark.asyncio
    async def test_typing_relayed_to_other_participant(self, pairing_ns, active_session):
        await pairing_ns.trigger_event(
            ClientEvents.TYPING, "sid-sp", {"sessionId": "s1", "isTyping": True}
        )

        pairing_ns.emit.assert_awaited_once_with(
            ServerEvents.USER_TYPING, {"isTyping": True}, room="participant:li"
        )

    @pytest.mark.asyncio
    async def test_invalid_typing_payload_is_silent(self, pairing_ns, active_session):
        result = await pairing_ns.trigger_event(ClientEvents.TYPING, "sid-sp", {})

        assert result is None
        pairing_ns.emit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_match_found_emits_to_both_rooms(self, pairing_ns):
        await pairing_ns.match_found(
            MatchResult(session_id="s1", speaker_id="sp", listener_id="li")
        )

        rooms = {
            kwargs["room"]: data["role"]
            for data, kwargs in emitted(pairing_ns, ServerEvents.MATCH_FOUND)
        }
        assert rooms == {"participant:sp": "speaker", "participant:li": "listener"}

    @pytest.mark.asyncio
    async def test_both_present_announces_each_participant(
        self, pairing_ns, container, active_session
    ):
        await pairing_ns.trigger_event(
            ClientEvents.JOIN_SESSION, "sid-sp", {"sessionId": "s1", "role": "speaker"}
        )
        await pairing_ns.trigger_event(
            ClientEvents.JOIN_SESSION, "sid-li", {"sessionId": "s1", "role": "listener"}
        )
        await asyncio.sleep(0.05)
        await container.tasks.drain()

        joined = emitted(pairing_ns, ServerEvents.USER_JOINED)
        assert sorted(kwargs["room"] for _, kwargs in joined) == [
            "participant:li",
            "participant:sp",
        ]
