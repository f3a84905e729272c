# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Synchronous SQLAlchemy repository for moderation data.

The async services call these methods through asyncio.to_thread. Every method
opens and closes its own session so calls are safe from worker threads.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, sessionmaker

from ventmatch.models.moderation import PatternRecordModel, ReportModel, RestrictionModel
from ventmatch.schemas.moderation import (
    PatternRecord,
    Report,
    Restriction,
    RestrictionStats,
)


def to_db_time(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetime -> naive UTC for storage."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_time(value: Optional[datetime]) -> Optional[datetime]:
    """Naive UTC from storage -> aware datetime."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _pattern_from_row(row: PatternRecordModel) -> PatternRecord:
    return PatternRecord(
        id=row.id,
        subject_id=row.subject_id,
        session_id=row.session_id,
        category=row.category,
        reporter_role=row.reporter_role,
        reported_at=from_db_time(row.reported_at),
    )


def _restriction_from_row(row: RestrictionModel) -> Restriction:
    return Restriction(
        id=row.id,
        subject_id=row.subject_id,
        kind=row.kind,
        start_time=from_db_time(row.start_time),
        end_time=from_db_time(row.end_time),
        reason=row.reason,
        triggering_report_count=row.triggering_report_count,
        active=bool(row.active),
    )


def _report_from_row(row: ReportModel) -> Report:
    return Report(
        id=row.id,
        session_id=row.session_id,
        reporter_role=row.reporter_role,
        reason=row.reason,
        reported_participant_id=row.reported_participant_id,
        category=row.category,
        created_at=from_db_time(row.created_at),
        resolved=bool(row.resolved),
    )


class ModerationRepository:
    """Pattern records, restrictions and reports."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Pattern records
    # ------------------------------------------------------------------

    def add_pattern(self, record: PatternRecord) -> PatternRecord:
        with self._session() as db:
            db.add(
                PatternRecordModel(
                    id=record.id,
                    subject_id=record.subject_id,
                    session_id=record.session_id,
                    category=record.category.value,
                    reporter_role=record.reporter_role.value,
                    reported_at=to_db_time(record.reported_at),
                )
            )
        return record

    def list_patterns(self, subject_id: str) -> List[PatternRecord]:
        """All records for a subject, oldest first."""
        with self._session() as db:
            rows = (
                db.query(PatternRecordModel)
                .filter(PatternRecordModel.subject_id == subject_id)
                .order_by(PatternRecordModel.reported_at.asc())
                .all()
            )
            return [_pattern_from_row(row) for row in rows]

    def recent_patterns(self, limit: int) -> List[PatternRecord]:
        with self._session() as db:
            rows = (
                db.query(PatternRecordModel)
                .order_by(PatternRecordModel.reported_at.desc())
                .limit(limit)
                .all()
            )
            return [_pattern_from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Restrictions
    # ------------------------------------------------------------------

    def replace_restriction(self, restriction: Restriction) -> int:
        """
        Deactivate the subject's active restrictions and insert ``restriction``
        in the same transaction.

        Returns:
            Number of superseded restrictions
        """
        with self._session() as db:
            superseded = (
                db.query(RestrictionModel)
                .filter(
                    RestrictionModel.subject_id == restriction.subject_id,
                    RestrictionModel.active.is_(True),
                )
                .update({RestrictionModel.active: False}, synchronize_session=False)
            )
            db.add(
                RestrictionModel(
                    id=restriction.id,
                    subject_id=restriction.subject_id,
                    kind=restriction.kind.value,
                    start_time=to_db_time(restriction.start_time),
                    end_time=to_db_time(restriction.end_time),
                    reason=restriction.reason,
                    triggering_report_count=restriction.triggering_report_count,
                    active=True,
                )
            )
            return superseded

    def latest_active_restriction(self, subject_id: str) -> Optional[Restriction]:
        with self._session() as db:
            row = (
                db.query(RestrictionModel)
                .filter(
                    RestrictionModel.subject_id == subject_id,
                    RestrictionModel.active.is_(True),
                )
                .order_by(RestrictionModel.start_time.desc())
                .first()
            )
            return _restriction_from_row(row) if row else None

    def deactivate_restriction(self, restriction_id: str) -> bool:
        with self._session() as db:
            updated = (
                db.query(RestrictionModel)
                .filter(RestrictionModel.id == restriction_id)
                .update({RestrictionModel.active: False}, synchronize_session=False)
            )
            return updated > 0

    def list_active_restrictions(self) -> List[Restriction]:
        with self._session() as db:
            rows = (
                db.query(RestrictionModel)
                .filter(RestrictionModel.active.is_(True))
                .order_by(RestrictionModel.start_time.desc())
                .all()
            )
            return [_restriction_from_row(row) for row in rows]

    def deactivate_expired_restrictions(self, now: datetime) -> int:
        with self._session() as db:
            return (
                db.query(RestrictionModel)
                .filter(
                    RestrictionModel.active.is_(True),
                    RestrictionModel.end_time.isnot(None),
                    RestrictionModel.end_time <= to_db_time(now),
                )
                .update({RestrictionModel.active: False}, synchronize_session=False)
            )

    def restriction_stats(self) -> RestrictionStats:
        with self._session() as db:
            total = db.query(func.count(RestrictionModel.id)).scalar() or 0
            active = (
                db.query(func.count(RestrictionModel.id))
                .filter(RestrictionModel.active.is_(True))
                .scalar()
                or 0
            )
            by_kind: Dict[str, int] = {
                kind: count
                for kind, count in db.query(
                    RestrictionModel.kind, func.count(RestrictionModel.id)
                )
                .group_by(RestrictionModel.kind)
                .all()
            }
            average = db.query(func.avg(RestrictionModel.triggering_report_count)).scalar()
            return RestrictionStats(
                total_restrictions=total,
                active_restrictions=active,
                restrictions_by_kind=by_kind,
                average_reports_before_restriction=round(average or 0),
            )

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def add_report(self, report: Report) -> Report:
        with self._session() as db:
            db.add(
                ReportModel(
                    id=report.id,
                    session_id=report.session_id,
                    reporter_role=report.reporter_role.value,
                    reason=report.reason,
                    reported_participant_id=report.reported_participant_id,
                    category=report.category.value,
                    created_at=to_db_time(report.created_at),
                    resolved=report.resolved,
                )
            )
        return report

    def get_report(self, report_id: str) -> Optional[Report]:
        with self._session() as db:
            row = db.query(ReportModel).filter(ReportModel.id == report_id).first()
            return _report_from_row(row) if row else None

    def recent_reports(self, limit: int) -> List[Report]:
        with self._session() as db:
            rows = (
                db.query(ReportModel)
                .order_by(ReportModel.created_at.desc())
                .limit(limit)
                .all()
            )
            return [_report_from_row(row) for row in rows]

    def resolve_report(self, report_id: str) -> bool:
        with self._session() as db:
            updated = (
                db.query(ReportModel)
                .filter(ReportModel.id == report_id)
                .update({ReportModel.resolved: True}, synchronize_session=False)
            )
            return updated > 0

    def report_counts(self, since: datetime) -> Dict[str, object]:
        """Totals used by the report statistics endpoint."""
        with self._session() as db:
            total = db.query(func.count(ReportModel.id)).scalar() or 0
            today = (
                db.query(func.count(ReportModel.id))
                .filter(ReportModel.created_at >= to_db_time(since))
                .scalar()
                or 0
            )
            unresolved = (
                db.query(func.count(ReportModel.id))
                .filter(ReportModel.resolved.is_(False))
                .scalar()
                or 0
            )
            by_role = {
                role: count
                for role, count in db.query(
                    ReportModel.reporter_role, func.count(ReportModel.id)
                )
                .group_by(ReportModel.reporter_role)
                .all()
            }
            return {
                "total_reports": total,
                "reports_today": today,
                "unresolved_reports": unresolved,
                "reports_by_reporter_role": by_role,
            }
