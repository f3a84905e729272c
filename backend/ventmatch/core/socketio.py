# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Socket.IO server configuration and initialization.

This module provides the Socket.IO server instance with Redis adapter
for multi-worker deployments.
"""

import logging
from typing import Optional

import socketio

from ventmatch.core.config import Settings

logger = logging.getLogger(__name__)

# Socket.IO server configuration
SOCKETIO_PATH = "/socket.io"
SOCKETIO_CORS_ORIGINS = "*"
SOCKETIO_PING_INTERVAL = 25  # seconds
SOCKETIO_PING_TIMEOUT = 20  # seconds
SOCKETIO_MAX_HTTP_BUFFER_SIZE = 1000000  # 1MB


def create_socketio_server(settings: Settings) -> socketio.AsyncServer:
    """
    Create and configure the Socket.IO server instance.

    Uses the Redis client manager for cross-worker rooms when the pairing
    backend is Redis; a local-only deployment keeps rooms in memory.

    Returns:
        socketio.AsyncServer: Configured Socket.IO server
    """
    mgr: Optional[socketio.AsyncRedisManager] = None
    if settings.PAIRING_BACKEND.lower() == "redis":
        try:
            mgr = socketio.AsyncRedisManager(settings.REDIS_URL)
            logger.info(f"Socket.IO Redis manager initialized with {settings.REDIS_URL}")
        except Exception as e:
            logger.warning(
                f"Failed to create Redis manager: {e}, falling back to in-memory"
            )
            mgr = None

    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=SOCKETIO_CORS_ORIGINS,
        ping_interval=SOCKETIO_PING_INTERVAL,
        ping_timeout=SOCKETIO_PING_TIMEOUT,
        max_http_buffer_size=SOCKETIO_MAX_HTTP_BUFFER_SIZE,
        logger=False,  # Use our own logger
        engineio_logger=False,
        client_manager=mgr,
    )

    return sio


def create_socketio_app(sio: socketio.AsyncServer, other_asgi_app=None) -> socketio.ASGIApp:
    """
    Create ASGI app for Socket.IO.

    Args:
        sio: The Socket.IO server instance
        other_asgi_app: ASGI app serving every non Socket.IO request

    Returns:
        socketio.ASGIApp: ASGI application wrapping both
    """
    return socketio.ASGIApp(
        sio,
        other_asgi_app=other_asgi_app,
        socketio_path=SOCKETIO_PATH,
    )
