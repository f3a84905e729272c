# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Pairing store backends and factory.
"""

import logging

from ventmatch.core.config import Settings
from ventmatch.services.store.base import PairingStore
from ventmatch.services.store.failover import FailoverPairingStore
from ventmatch.services.store.local import LocalPairingStore
from ventmatch.services.store.redis_store import RedisPairingStore

logger = logging.getLogger(__name__)


def session_key_ttl_seconds(settings: Settings) -> int:
    """
    TTL for Redis session keys.

    Covers max age plus retention plus one sweep interval, so the sweep
    always sees an over-age session before its key expires.
    """
    sweep_horizon = (
        (settings.SESSION_MAX_AGE_MINUTES + settings.SESSION_RETENTION_MINUTES) * 60
        + settings.SESSION_SWEEP_INTERVAL_SECONDS
    )
    return max(settings.SESSION_EXPIRE_SECONDS, sweep_horizon)


def create_pairing_store(settings: Settings) -> PairingStore:
    """
    Build the pairing store selected by PAIRING_BACKEND.

    ``redis`` (default) returns a FailoverPairingStore with the local store as
    fallback; ``local`` returns a LocalPairingStore only.
    """
    local = LocalPairingStore(max_messages=settings.CHAT_HISTORY_MAX_MESSAGES)
    backend = settings.PAIRING_BACKEND.lower()
    if backend == "local":
        logger.info("[PairingStore] Using local in-process backend")
        return local
    if backend != "redis":
        raise ValueError(f"Unsupported PAIRING_BACKEND: {settings.PAIRING_BACKEND}")

    redis_store = RedisPairingStore(
        settings.REDIS_URL,
        key_prefix=settings.REDIS_KEY_PREFIX,
        session_ttl_seconds=session_key_ttl_seconds(settings),
        max_messages=settings.CHAT_HISTORY_MAX_MESSAGES,
    )
    logger.info("[PairingStore] Using redis backend with local fallback")
    return FailoverPairingStore(redis_store, local)


__all__ = [
    "FailoverPairingStore",
    "LocalPairingStore",
    "PairingStore",
    "RedisPairingStore",
    "create_pairing_store",
    "session_key_ttl_seconds",
]
