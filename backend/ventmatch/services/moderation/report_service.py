# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Report filing and administration.

A filed report is stored first. Pattern analysis and the session takedown run
afterwards and their failures are logged, never raised, so a report is always
recorded once the insert has succeeded.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, List, Optional

from ventmatch.core.clock import Clock, IdGenerator, new_id, utc_now
from ventmatch.core.exceptions import NotFoundError
from ventmatch.schemas.moderation import (
    Report,
    ReportCategory,
    ReportStats,
    ReportSubmission,
)
from ventmatch.schemas.pairing import Role
from ventmatch.schemas.session import TerminationReason
from ventmatch.services.moderation.engine import ModerationEngine
from ventmatch.services.moderation.repository import ModerationRepository

if TYPE_CHECKING:
    from ventmatch.services.session.manager import SessionManager

logger = logging.getLogger(__name__)

DEFAULT_REASON = "No reason provided"
MAX_RECENT_REPORTS = 100

_CATEGORY_KEYWORDS = (
    (ReportCategory.HARASSMENT, ("harassment", "harass", "threat")),
    (ReportCategory.SPAM, ("spam", "repeated", "flooding")),
    (ReportCategory.INAPPROPRIATE_BEHAVIOR, ("inappropriate", "offensive", "abuse")),
)


def categorize_reason(reason: Optional[str]) -> ReportCategory:
    """Map a free-text report reason to a category by keyword."""
    text = (reason or "").lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return ReportCategory.OTHER


class ReportService:
    """Files reports and exposes report statistics."""

    def __init__(
        self,
        repository: ModerationRepository,
        engine: ModerationEngine,
        session_manager: "SessionManager",
        clock: Clock = utc_now,
        id_generator: IdGenerator = new_id,
    ):
        self._repository = repository
        self._engine = engine
        self._sessions = session_manager
        self._clock = clock
        self._new_id = id_generator

    async def submit_report(
        self,
        session_id: str,
        reporter_role: Role,
        reason: Optional[str] = None,
        reported_participant_id: Optional[str] = None,
    ) -> ReportSubmission:
        """
        File a report against the other participant of a session.

        Args:
            session_id: Reported session
            reporter_role: Role of the participant filing the report
            reason: Free-text reason
            reported_participant_id: Reported participant; resolved from the
                session when omitted

        Returns:
            The stored report plus any restriction that was applied
        """
        if reported_participant_id is None:
            reported_participant_id = await self._resolve_reported_participant(
                session_id, reporter_role
            )

        report = Report(
            id=self._new_id(),
            session_id=session_id,
            reporter_role=reporter_role,
            reason=reason or DEFAULT_REASON,
            reported_participant_id=reported_participant_id,
            category=categorize_reason(reason),
            created_at=self._clock(),
            resolved=False,
        )
        await asyncio.to_thread(self._repository.add_report, report)
        logger.info(
            f"[Moderation] Report {report.id} filed by {reporter_role.value} "
            f"for session {session_id} ({report.category.value})"
        )

        submission = ReportSubmission(report=report)
        if reported_participant_id:
            try:
                result = await self._engine.process_report(
                    reported_participant_id,
                    session_id,
                    report.category,
                    reporter_role,
                )
                submission.restriction = result.restriction
                submission.analysis = result.analysis
            except Exception as e:
                logger.error(
                    f"[Moderation] Pattern analysis failed for report {report.id}: {e}",
                    exc_info=True,
                )
        else:
            logger.warning(
                f"[Moderation] Report {report.id} has no reported participant, "
                "skipping restriction processing"
            )

        try:
            submission.session_terminated = await self._sessions.terminate(
                session_id, TerminationReason.REPORTED
            )
        except Exception as e:
            logger.warning(
                f"[Moderation] Takedown of session {session_id} after report "
                f"{report.id} failed: {e}"
            )

        return submission

    async def _resolve_reported_participant(
        self, session_id: str, reporter_role: Role
    ) -> Optional[str]:
        try:
            session = await self._sessions.get_session(session_id)
        except Exception as e:
            logger.warning(f"[Moderation] Could not load session {session_id}: {e}")
            return None
        if session is None:
            return None
        return session.participant_for(reporter_role.opposite)

    async def report_stats(self) -> ReportStats:
        now = self._clock()
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        counts = await asyncio.to_thread(self._repository.report_counts, midnight)
        restrictions = await self._engine.restriction_stats()
        return ReportStats(**counts, restrictions=restrictions)

    async def recent_reports(self, limit: int = 50) -> List[Report]:
        limit = max(1, min(limit, MAX_RECENT_REPORTS))
        return await asyncio.to_thread(self._repository.recent_reports, limit)

    async def resolve_report(self, report_id: str) -> Report:
        resolved = await asyncio.to_thread(self._repository.resolve_report, report_id)
        if not resolved:
            raise NotFoundError(f"Report {report_id} not found")
        return await asyncio.to_thread(self._repository.get_report, report_id)
