# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Redis pairing store.

Key layout (prefix defaults to ``ventmatch``):

- ``{prefix}:queue:{role}``: list of waiting participant ids, oldest first
- ``{prefix}:queue_entry:{participant_id}``: entry payload, expires with the entry
- ``{prefix}:session:{session_id}``: session payload without messages
- ``{prefix}:session:{session_id}:messages``: capped message list
- ``{prefix}:participant_session:{participant_id}``: session id

Operations that must not interleave with other workers (queue pop and pair,
entry removal, session create and delete) run as Lua scripts. Every Redis or
socket failure is raised as BackendUnavailableError.
"""

import logging
import math
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Tuple

import orjson
from redis.asyncio import Redis
from redis.exceptions import RedisError

from ventmatch.core.exceptions import BackendUnavailableError
from ventmatch.schemas.pairing import QueueEntry, Role
from ventmatch.schemas.session import ChatSession, Message
from ventmatch.services.store.base import PairingStore

logger = logging.getLogger(__name__)

# KEYS: opposite queue, own queue, own entry key
# ARGV: entry key prefix, participant id, entry payload, entry ttl
PAIR_OR_ENQUEUE_SCRIPT = """
while true do
    local candidate = redis.call('LPOP', KEYS[1])
    if not candidate then
        break
    end
    local candidate_key = ARGV[1] .. candidate
    local payload = redis.call('GET', candidate_key)
    if payload then
        redis.call('DEL', candidate_key)
        return payload
    end
end
redis.call('LREM', KEYS[2], 0, ARGV[2])
redis.call('RPUSH', KEYS[2], ARGV[2])
redis.call('SET', KEYS[3], ARGV[3], 'EX', ARGV[4])
return false
"""

# KEYS: entry key, speaker queue, listener queue
# ARGV: participant id
REMOVE_ENTRY_SCRIPT = """
local payload = redis.call('GET', KEYS[1])
redis.call('DEL', KEYS[1])
redis.call('LREM', KEYS[2], 0, ARGV[1])
redis.call('LREM', KEYS[3], 0, ARGV[1])
return payload
"""

# KEYS: queue
# ARGV: entry key prefix
PRUNE_QUEUE_SCRIPT = """
local removed = {}
local members = redis.call('LRANGE', KEYS[1], 0, -1)
for _, participant_id in ipairs(members) do
    if redis.call('EXISTS', ARGV[1] .. participant_id) == 0 then
        redis.call('LREM', KEYS[1], 0, participant_id)
        table.insert(removed, participant_id)
    end
end
return removed
"""

# KEYS: session key, speaker mapping key, listener mapping key
# ARGV: session payload, ttl, session id
CREATE_SESSION_SCRIPT = """
local created = redis.call('SET', KEYS[1], ARGV[1], 'NX', 'EX', ARGV[2])
if created then
    redis.call('SET', KEYS[2], ARGV[3], 'EX', ARGV[2])
    redis.call('SET', KEYS[3], ARGV[3], 'EX', ARGV[2])
    return {1, ARGV[1]}
end
return {0, redis.call('GET', KEYS[1])}
"""

# KEYS: session key, messages key
# ARGV: message payload, max messages, ttl
APPEND_MESSAGE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 0 then
    return 0
end
redis.call('RPUSH', KEYS[2], ARGV[1])
redis.call('LTRIM', KEYS[2], -tonumber(ARGV[2]), -1)
redis.call('EXPIRE', KEYS[2], ARGV[3])
return 1
"""

# KEYS: session key, messages key, participant mapping keys...
# ARGV: session id
DELETE_SESSION_SCRIPT = """
local existed = redis.call('DEL', KEYS[1])
redis.call('DEL', KEYS[2])
for i = 3, #KEYS do
    if redis.call('GET', KEYS[i]) == ARGV[1] then
        redis.call('DEL', KEYS[i])
    end
end
return existed
"""


def _dumps(model) -> bytes:
    return orjson.dumps(model.model_dump(mode="json"))


def _decode(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class RedisPairingStore(PairingStore):
    """Pairing store shared by every worker through Redis."""

    name = "redis"

    def __init__(
        self,
        url: str,
        key_prefix: str = "ventmatch",
        session_ttl_seconds: int = 7200,
        max_messages: int = 20,
    ):
        # Use binary responses (decode_responses=False) to store orjson bytes
        self._url = url
        self._prefix = key_prefix
        self._session_ttl = session_ttl_seconds
        self._max_messages = max_messages
        self._connection_params = {
            "encoding": "utf-8",
            "decode_responses": False,
            "max_connections": 10,
            "socket_timeout": 5.0,
            "socket_connect_timeout": 2.0,
            "retry_on_timeout": True,
        }

    async def _get_client(self) -> Redis:
        # Create new client every time to avoid event loop closure issues
        return Redis.from_url(self._url, **self._connection_params)

    async def _execute(self, operation: str, func: Callable[[Redis], Awaitable[Any]]):
        try:
            client = await self._get_client()
            try:
                return await func(client)
            finally:
                await client.aclose()
        except (RedisError, OSError) as e:
            raise BackendUnavailableError(f"Redis {operation} failed: {e}") from e

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def queue_key(self, role: Role) -> str:
        return f"{self._prefix}:queue:{role.value}"

    @property
    def entry_key_prefix(self) -> str:
        return f"{self._prefix}:queue_entry:"

    def entry_key(self, participant_id: str) -> str:
        return f"{self.entry_key_prefix}{participant_id}"

    def session_key(self, session_id: str) -> str:
        return f"{self._prefix}:session:{session_id}"

    def messages_key(self, session_id: str) -> str:
        return f"{self._prefix}:session:{session_id}:messages"

    def participant_key(self, participant_id: str) -> str:
        return f"{self._prefix}:participant_session:{participant_id}"

    # ------------------------------------------------------------------
    # Queues
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        return bool(await self._execute("ping", lambda client: client.ping()))

    async def pair_or_enqueue(self, entry: QueueEntry) -> Optional[QueueEntry]:
        ttl = max(1, math.ceil((entry.expires_at - entry.enqueued_at).total_seconds()))

        async def _pair(client: Redis):
            script = client.register_script(PAIR_OR_ENQUEUE_SCRIPT)
            return await script(
                keys=[
                    self.queue_key(entry.role.opposite),
                    self.queue_key(entry.role),
                    self.entry_key(entry.participant_id),
                ],
                args=[self.entry_key_prefix, entry.participant_id, _dumps(entry), ttl],
            )

        payload = await self._execute("pair_or_enqueue", _pair)
        if payload is None:
            return None
        return QueueEntry.model_validate(orjson.loads(payload))

    async def remove_entry(self, participant_id: str) -> Optional[QueueEntry]:
        async def _remove(client: Redis):
            script = client.register_script(REMOVE_ENTRY_SCRIPT)
            return await script(
                keys=[
                    self.entry_key(participant_id),
                    self.queue_key(Role.SPEAKER),
                    self.queue_key(Role.LISTENER),
                ],
                args=[participant_id],
            )

        payload = await self._execute("remove_entry", _remove)
        if payload is None:
            return None
        return QueueEntry.model_validate(orjson.loads(payload))

    async def get_entry(self, participant_id: str) -> Optional[QueueEntry]:
        payload = await self._execute(
            "get_entry", lambda client: client.get(self.entry_key(participant_id))
        )
        if payload is None:
            return None
        return QueueEntry.model_validate(orjson.loads(payload))

    async def list_entries(self, role: Role) -> List[QueueEntry]:
        async def _list(client: Redis):
            members = await client.lrange(self.queue_key(role), 0, -1)
            if not members:
                return []
            return await client.mget([self.entry_key(_decode(m)) for m in members])

        payloads = await self._execute("list_entries", _list)
        return [
            QueueEntry.model_validate(orjson.loads(payload))
            for payload in payloads
            if payload is not None
        ]

    async def remove_expired_entries(self, now: datetime) -> List[str]:
        # Entry keys expire on their own; this drops the ids left in the lists.
        async def _prune(client: Redis):
            removed: List[str] = []
            for role in Role:
                script = client.register_script(PRUNE_QUEUE_SCRIPT)
                result = await script(
                    keys=[self.queue_key(role)], args=[self.entry_key_prefix]
                )
                removed.extend(_decode(item) for item in result or [])
            return removed

        return await self._execute("remove_expired_entries", _prune)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session_if_absent(
        self, session: ChatSession
    ) -> Tuple[ChatSession, bool]:
        payload = orjson.dumps(session.model_dump(mode="json", exclude={"messages"}))

        async def _create(client: Redis):
            script = client.register_script(CREATE_SESSION_SCRIPT)
            return await script(
                keys=[
                    self.session_key(session.session_id),
                    self.participant_key(session.speaker_id),
                    self.participant_key(session.listener_id),
                ],
                args=[payload, self._session_ttl, session.session_id],
            )

        created, stored = await self._execute("create_session", _create)
        if int(created) == 1:
            return session, True
        return ChatSession.model_validate(orjson.loads(stored)), False

    async def get_session(self, session_id: str) -> Optional[ChatSession]:
        async def _get(client: Redis):
            payload = await client.get(self.session_key(session_id))
            if payload is None:
                return None, []
            messages = await client.lrange(self.messages_key(session_id), 0, -1)
            return payload, messages

        payload, messages = await self._execute("get_session", _get)
        if payload is None:
            return None
        data = orjson.loads(payload)
        data["messages"] = [orjson.loads(item) for item in messages]
        return ChatSession.model_validate(data)

    async def save_session(self, session: ChatSession) -> bool:
        payload = orjson.dumps(session.model_dump(mode="json", exclude={"messages"}))
        result = await self._execute(
            "save_session",
            lambda client: client.set(
                self.session_key(session.session_id), payload, xx=True, keepttl=True
            ),
        )
        return bool(result)

    async def append_message(self, message: Message) -> None:
        async def _append(client: Redis):
            script = client.register_script(APPEND_MESSAGE_SCRIPT)
            return await script(
                keys=[
                    self.session_key(message.session_id),
                    self.messages_key(message.session_id),
                ],
                args=[_dumps(message), self._max_messages, self._session_ttl],
            )

        await self._execute("append_message", _append)

    async def delete_session(self, session_id: str) -> bool:
        session = await self.get_session(session_id)
        keys = [self.session_key(session_id), self.messages_key(session_id)]
        if session is not None:
            keys.append(self.participant_key(session.speaker_id))
            keys.append(self.participant_key(session.listener_id))

        async def _delete(client: Redis):
            script = client.register_script(DELETE_SESSION_SCRIPT)
            return await script(keys=keys, args=[session_id])

        return int(await self._execute("delete_session", _delete)) > 0

    async def get_session_id_for_participant(self, participant_id: str) -> Optional[str]:
        value = await self._execute(
            "get_participant_session",
            lambda client: client.get(self.participant_key(participant_id)),
        )
        return _decode(value) if value is not None else None

    async def list_session_ids(self) -> List[str]:
        prefix = self.session_key("")

        async def _scan(client: Redis):
            session_ids = []
            async for key in client.scan_iter(match=f"{prefix}*"):
                key = _decode(key)
                if key.endswith(":messages"):
                    continue
                session_ids.append(key[len(prefix):])
            return session_ids

        return await self._execute("list_session_ids", _scan)

    async def clear(self) -> None:
        async def _clear(client: Redis):
            keys = [key async for key in client.scan_iter(match=f"{self._prefix}:*")]
            if keys:
                await client.delete(*keys)
            return len(keys)

        deleted = await self._execute("clear", _clear)
        logger.info(f"[PairingStore] Cleared {deleted} redis keys under {self._prefix}")
