# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Report endpoints.

POST /report files a report and always takes the reported session down. The
remaining routes are for moderators reviewing reports and restrictions.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, status

from ventmatch.api.dependencies import get_moderation_engine, get_report_service
from ventmatch.schemas.moderation import (
    PatternRecord,
    Report,
    ReportCreate,
    ReportListResponse,
    ReportResponse,
    ReportStats,
    RestrictionApplied,
    RestrictionListResponse,
    SubjectAnalysisResponse,
)
from ventmatch.services.moderation.engine import ModerationEngine
from ventmatch.services.moderation.report_service import ReportService

router = APIRouter()


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def submit_report(
    report_create: ReportCreate,
    reports: ReportService = Depends(get_report_service),
):
    """File a report against the other participant of a session."""
    submission = await reports.submit_report(
        report_create.session_id,
        report_create.reporter_role,
        reason=report_create.reason,
        reported_participant_id=report_create.reported_participant_id,
    )

    restriction_applied = None
    if submission.restriction is not None:
        restriction_applied = RestrictionApplied(
            type=submission.restriction.kind,
            duration_minutes=submission.restriction.duration_minutes,
            reason=submission.restriction.reason,
        )
    return ReportResponse(
        message="Report submitted successfully",
        report_id=submission.report.id,
        created_at=submission.report.created_at,
        restriction_applied=restriction_applied,
    )


@router.get("/stats", response_model=ReportStats)
async def get_report_stats(reports: ReportService = Depends(get_report_service)):
    """Report and restriction totals."""
    return await reports.report_stats()


@router.get("/recent", response_model=ReportListResponse)
async def get_recent_reports(
    limit: int = Query(50, ge=1, le=100),
    reports: ReportService = Depends(get_report_service),
):
    """Most recent reports, newest first."""
    items = await reports.recent_reports(limit)
    return ReportListResponse(reports=items, count=len(items))


@router.put("/{report_id}/resolve", response_model=Report)
async def resolve_report(
    report_id: str,
    reports: ReportService = Depends(get_report_service),
):
    """Mark a report as resolved."""
    return await reports.resolve_report(report_id)


@router.get("/subjects/{subject_id}/analysis", response_model=SubjectAnalysisResponse)
async def get_subject_analysis(
    subject_id: str,
    moderation: ModerationEngine = Depends(get_moderation_engine),
):
    """Risk analysis and current restriction for one participant."""
    analysis = await moderation.analyze(subject_id)
    current = await moderation.is_restricted(subject_id)
    return SubjectAnalysisResponse(analysis=analysis, current_restriction=current)


@router.get("/patterns/recent", response_model=List[PatternRecord])
async def get_recent_patterns(
    limit: int = Query(50, ge=1, le=100),
    moderation: ModerationEngine = Depends(get_moderation_engine),
):
    """Most recent pattern records, newest first."""
    return await moderation.recent_patterns(limit)


@router.get("/restrictions/active", response_model=RestrictionListResponse)
async def get_active_restrictions(
    moderation: ModerationEngine = Depends(get_moderation_engine),
):
    """Restrictions currently marked active."""
    restrictions = await moderation.get_active_restrictions()
    return RestrictionListResponse(restrictions=restrictions, count=len(restrictions))


@router.post("/restrictions/cleanup")
async def cleanup_restrictions(
    moderation: ModerationEngine = Depends(get_moderation_engine),
):
    """Deactivate restrictions whose end time has passed."""
    deactivated = await moderation.cleanup_expired_restrictions()
    return {"deactivated": deactivated}
