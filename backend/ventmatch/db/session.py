# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ventmatch.db.base import Base

_IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def create_db_engine(database_url: str) -> Engine:
    """
    Create a sync engine for the moderation database.

    SQLite connections are shared with worker threads because the repository
    runs its queries through asyncio.to_thread. In-memory SQLite uses a single
    static connection so every session sees the same tables.
    """
    if database_url.startswith("sqlite"):
        if database_url in _IN_MEMORY_URLS:
            return create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(database_url, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Sync session factory"""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Create the moderation tables if they do not exist."""
    # Import models so they register on Base.metadata
    from ventmatch.models import moderation  # noqa: F401

    Base.metadata.create_all(bind=engine)
