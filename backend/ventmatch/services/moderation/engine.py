# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Moderation engine: pattern records, risk analysis and restrictions.

Risk is derived only from the subject's own pattern records. The score is
additive:

    min(total * volume_weight, volume_cap)
    + reports_last_24h * last_24h_weight
    + reports_last_week * last_week_weight
    + serious_reports * serious_weight
    + frequency penalty (short mean interval between reports)

and mapped to a risk level and recommended action by three thresholds. The
weights and thresholds are policy values held in ModerationPolicy.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from ventmatch.core.clock import Clock, IdGenerator, new_id, utc_now
from ventmatch.core.config import Settings
from ventmatch.schemas.moderation import (
    SERIOUS_CATEGORIES,
    PatternAnalysis,
    PatternRecord,
    RecommendedAction,
    ReportCategory,
    ReportProcessingResult,
    Restriction,
    RestrictionKind,
    RestrictionStats,
    RiskLevel,
)
from ventmatch.schemas.pairing import Role
from ventmatch.services.moderation.repository import ModerationRepository

logger = logging.getLogger(__name__)


@dataclass
class ModerationPolicy:
    """Risk weights, thresholds and ban durations."""

    volume_weight: int = 10
    volume_cap: int = 50
    last_24h_weight: int = 20
    last_week_weight: int = 5
    serious_weight: int = 15
    rapid_interval_minutes: int = 60
    rapid_interval_penalty: int = 25
    daily_interval_minutes: int = 24 * 60
    daily_interval_penalty: int = 10
    medium_threshold: int = 25
    high_threshold: int = 50
    critical_threshold: int = 80
    # max report count -> ban minutes, checked in ascending order
    ban_ladder: Dict[int, int] = field(
        default_factory=lambda: {3: 30, 5: 2 * 60, 8: 24 * 60}
    )
    ban_max_minutes: int = 7 * 24 * 60
    warning_duration_minutes: int = 15

    @classmethod
    def from_settings(cls, settings: Settings) -> "ModerationPolicy":
        return cls(
            volume_weight=settings.RISK_VOLUME_WEIGHT,
            volume_cap=settings.RISK_VOLUME_CAP,
            last_24h_weight=settings.RISK_LAST_24H_WEIGHT,
            last_week_weight=settings.RISK_LAST_WEEK_WEIGHT,
            serious_weight=settings.RISK_SERIOUS_WEIGHT,
            rapid_interval_minutes=settings.RISK_RAPID_INTERVAL_MINUTES,
            rapid_interval_penalty=settings.RISK_RAPID_INTERVAL_PENALTY,
            daily_interval_minutes=settings.RISK_DAILY_INTERVAL_MINUTES,
            daily_interval_penalty=settings.RISK_DAILY_INTERVAL_PENALTY,
            medium_threshold=settings.RISK_MEDIUM_THRESHOLD,
            high_threshold=settings.RISK_HIGH_THRESHOLD,
            critical_threshold=settings.RISK_CRITICAL_THRESHOLD,
            ban_ladder=dict(settings.BAN_LADDER),
            ban_max_minutes=settings.BAN_MAX_MINUTES,
            warning_duration_minutes=settings.WARNING_DURATION_MINUTES,
        )

    def score(
        self,
        total: int,
        last_24h: int,
        last_week: int,
        serious: int,
        mean_interval_minutes: float,
    ) -> int:
        score = min(total * self.volume_weight, self.volume_cap)
        score += last_24h * self.last_24h_weight
        score += last_week * self.last_week_weight
        score += serious * self.serious_weight
        # A single report has no interval to measure
        if total >= 2:
            # Simultaneous reports count as daily, not rapid
            if 0 < mean_interval_minutes < self.rapid_interval_minutes:
                score += self.rapid_interval_penalty
            elif mean_interval_minutes < self.daily_interval_minutes:
                score += self.daily_interval_penalty
        return score

    def classify(self, score: int) -> Tuple[RiskLevel, RecommendedAction]:
        if score >= self.critical_threshold:
            return RiskLevel.CRITICAL, RecommendedAction.PERMANENT_BAN
        if score >= self.high_threshold:
            return RiskLevel.HIGH, RecommendedAction.TEMPORARY_BAN
        if score >= self.medium_threshold:
            return RiskLevel.MEDIUM, RecommendedAction.WARNING
        return RiskLevel.LOW, RecommendedAction.NONE

    def ban_duration_minutes(self, report_count: int) -> int:
        for max_reports, minutes in sorted(self.ban_ladder.items()):
            if report_count <= max_reports:
                return minutes
        return self.ban_max_minutes


class ModerationEngine:
    """Records reports against subjects and decides restrictions."""

    def __init__(
        self,
        repository: ModerationRepository,
        policy: Optional[ModerationPolicy] = None,
        clock: Clock = utc_now,
        id_generator: IdGenerator = new_id,
    ):
        self._repository = repository
        self.policy = policy or ModerationPolicy()
        self._clock = clock
        self._new_id = id_generator

    async def record_pattern(
        self,
        subject_id: str,
        session_id: str,
        category: ReportCategory,
        reporter_role: Role,
    ) -> PatternRecord:
        record = PatternRecord(
            id=self._new_id(),
            subject_id=subject_id,
            session_id=session_id,
            category=category,
            reporter_role=reporter_role,
            reported_at=self._clock(),
        )
        return await asyncio.to_thread(self._repository.add_pattern, record)

    async def analyze(self, subject_id: str) -> PatternAnalysis:
        records = await asyncio.to_thread(self._repository.list_patterns, subject_id)
        return self.analyze_records(subject_id, records, self._clock())

    def analyze_records(
        self, subject_id: str, records: List[PatternRecord], now: datetime
    ) -> PatternAnalysis:
        """Pure risk analysis over a subject's records."""
        day_ago = now - timedelta(hours=24)
        week_ago = now - timedelta(days=7)

        total = len(records)
        last_24h = sum(1 for r in records if r.reported_at >= day_ago)
        last_week = sum(1 for r in records if r.reported_at >= week_ago)

        category_counts: Dict[str, int] = {}
        for record in records:
            key = record.category.value
            category_counts[key] = category_counts.get(key, 0) + 1
        serious = sum(1 for r in records if r.category in SERIOUS_CATEGORIES)

        mean_interval = 0.0
        if total > 1:
            times = sorted(r.reported_at for r in records)
            span = (times[-1] - times[0]).total_seconds() / 60
            mean_interval = span / (total - 1)

        score = self.policy.score(total, last_24h, last_week, serious, mean_interval)
        risk_level, action = self.policy.classify(score)
        return PatternAnalysis(
            subject_id=subject_id,
            total_reports=total,
            reports_last_24h=last_24h,
            reports_last_week=last_week,
            category_counts=category_counts,
            mean_inter_report_interval_minutes=mean_interval,
            risk_score=score,
            risk_level=risk_level,
            recommended_action=action,
        )

    def ban_duration_minutes(self, report_count: int) -> int:
        return self.policy.ban_duration_minutes(report_count)

    async def apply_restriction(
        self,
        subject_id: str,
        kind: RestrictionKind,
        reason: str,
        report_count: int,
        duration_minutes: Optional[int] = None,
    ) -> Restriction:
        """
        Issue a restriction, superseding every active one for the subject.

        Args:
            subject_id: Restricted participant
            kind: Restriction kind
            reason: Human-readable reason
            report_count: Reports that triggered the restriction
            duration_minutes: None for a permanent restriction

        Returns:
            The new active restriction
        """
        start = self._clock()
        restriction = Restriction(
            id=self._new_id(),
            subject_id=subject_id,
            kind=kind,
            start_time=start,
            end_time=(
                start + timedelta(minutes=duration_minutes)
                if duration_minutes is not None
                else None
            ),
            reason=reason,
            triggering_report_count=report_count,
            active=True,
        )
        superseded = await asyncio.to_thread(
            self._repository.replace_restriction, restriction
        )
        logger.info(
            f"[Moderation] Applied {kind.value} to {subject_id} "
            f"(duration={duration_minutes}, superseded={superseded})"
        )
        return restriction

    async def is_restricted(self, subject_id: str) -> Optional[Restriction]:
        """Current restriction for the subject. Expired ones are deactivated."""
        restriction = await asyncio.to_thread(
            self._repository.latest_active_restriction, subject_id
        )
        if restriction is None:
            return None
        if restriction.end_time is not None and restriction.end_time <= self._clock():
            await asyncio.to_thread(
                self._repository.deactivate_restriction, restriction.id
            )
            logger.info(f"[Moderation] Restriction {restriction.id} for {subject_id} expired")
            return None
        return restriction

    async def process_report(
        self,
        subject_id: str,
        session_id: str,
        category: ReportCategory,
        reporter_role: Role,
    ) -> ReportProcessingResult:
        """Record the report, analyze the subject and restrict if warranted."""
        await self.record_pattern(subject_id, session_id, category, reporter_role)
        analysis = await self.analyze(subject_id)

        kind = analysis.recommended_action.as_restriction_kind()
        restriction = None
        if kind is not None:
            if kind is RestrictionKind.TEMPORARY_BAN:
                duration = self.ban_duration_minutes(analysis.total_reports)
            elif kind is RestrictionKind.WARNING:
                duration = self.policy.warning_duration_minutes
            else:
                duration = None
            restriction = await self.apply_restriction(
                subject_id,
                kind,
                reason=(
                    f"Automatic restriction applied due to {analysis.total_reports} "
                    f"reports. Risk level: {analysis.risk_level.value}"
                ),
                report_count=analysis.total_reports,
                duration_minutes=duration,
            )

        return ReportProcessingResult(restriction=restriction, analysis=analysis)

    async def get_active_restrictions(self) -> List[Restriction]:
        return await asyncio.to_thread(self._repository.list_active_restrictions)

    async def cleanup_expired_restrictions(self) -> int:
        count = await asyncio.to_thread(
            self._repository.deactivate_expired_restrictions, self._clock()
        )
        if count:
            logger.info(f"[Moderation] Deactivated {count} expired restrictions")
        return count

    async def restriction_stats(self) -> RestrictionStats:
        return await asyncio.to_thread(self._repository.restriction_stats)

    async def recent_patterns(self, limit: int = 50) -> List[PatternRecord]:
        return await asyncio.to_thread(self._repository.recent_patterns, limit)
