# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Service wiring.

Every service is constructed once per process with its dependencies passed
in explicitly. The FastAPI app keeps the container on ``app.state`` and the
Socket.IO namespace holds a reference to the same instance.
"""

import logging
from typing import Any, Dict

from sqlalchemy.orm import sessionmaker

from ventmatch.core.clock import Clock, IdGenerator, new_id, utc_now
from ventmatch.core.config import Settings
from ventmatch.core.scheduling import TaskRegistry
from ventmatch.services.matching.service import MatchingService
from ventmatch.services.moderation.engine import ModerationEngine, ModerationPolicy
from ventmatch.services.moderation.report_service import ReportService
from ventmatch.services.moderation.repository import ModerationRepository
from ventmatch.services.session.content_filter import ContentFilter
from ventmatch.services.session.manager import SessionManager
from ventmatch.services.store.base import PairingStore
from ventmatch.services.store.failover import FailoverPairingStore

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Holds the matcher, session manager and moderation services."""

    def __init__(
        self,
        settings: Settings,
        store: PairingStore,
        session_factory: sessionmaker,
        clock: Clock = utc_now,
        id_generator: IdGenerator = new_id,
    ):
        self.settings = settings
        self.store = store
        self.tasks = TaskRegistry()

        self.moderation_repository = ModerationRepository(session_factory)
        self.moderation = ModerationEngine(
            self.moderation_repository,
            ModerationPolicy.from_settings(settings),
            clock=clock,
            id_generator=id_generator,
        )
        self.sessions = SessionManager(
            store,
            settings,
            tasks=self.tasks,
            clock=clock,
            id_generator=id_generator,
        )
        self.matching = MatchingService(
            store,
            self.sessions,
            settings,
            moderation=self.moderation,
            tasks=self.tasks,
            clock=clock,
            id_generator=id_generator,
        )
        self.matching.add_match_listener(self.sessions.handle_match)
        self.reports = ReportService(
            self.moderation_repository,
            self.moderation,
            self.sessions,
            clock=clock,
            id_generator=id_generator,
        )
        self.content_filter = ContentFilter(settings.MAX_MESSAGE_LENGTH)

    async def start(self) -> None:
        """Check the pairing backend. An unreachable Redis fails over here."""
        await self.store.ping()
        logger.info(f"[Services] Pairing backend active: {self.store.name}")

    async def shutdown(self) -> None:
        cancelled = self.tasks.cancel_all()
        if cancelled:
            logger.info(f"[Services] Cancelled {cancelled} pending timers")

    def backend_status(self) -> Dict[str, Any]:
        if isinstance(self.store, FailoverPairingStore):
            return {
                "backend": self.store.active_backend,
                "failed_over": self.store.has_failed_over,
                "failure_reason": self.store.failure_reason,
            }
        return {"backend": self.store.name, "failed_over": False, "failure_reason": None}
