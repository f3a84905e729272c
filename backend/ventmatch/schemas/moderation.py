# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Pydantic schemas for reports, pattern records, restrictions and risk analysis.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ventmatch.schemas.pairing import Role


class ReportCategory(str, Enum):
    HARASSMENT = "harassment"
    SPAM = "spam"
    INAPPROPRIATE_BEHAVIOR = "inappropriate_behavior"
    OTHER = "other"


SERIOUS_CATEGORIES = (ReportCategory.HARASSMENT, ReportCategory.INAPPROPRIATE_BEHAVIOR)


class RestrictionKind(str, Enum):
    WARNING = "warning"
    TEMPORARY_BAN = "temporary_ban"
    PERMANENT_BAN = "permanent_ban"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecommendedAction(str, Enum):
    NONE = "none"
    WARNING = "warning"
    TEMPORARY_BAN = "temporary_ban"
    PERMANENT_BAN = "permanent_ban"

    def as_restriction_kind(self) -> Optional[RestrictionKind]:
        if self is RecommendedAction.NONE:
            return None
        return RestrictionKind(self.value)


class PatternRecord(BaseModel):
    """One report event attributed to a subject."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    subject_id: str
    session_id: str
    category: ReportCategory
    reporter_role: Role
    reported_at: datetime


class Restriction(BaseModel):
    """A time-bounded or permanent block on admission."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    subject_id: str
    kind: RestrictionKind
    start_time: datetime
    end_time: Optional[datetime] = None
    reason: str
    triggering_report_count: int
    active: bool = True

    @property
    def is_permanent(self) -> bool:
        return self.end_time is None

    @property
    def duration_minutes(self) -> Optional[int]:
        if self.end_time is None:
            return None
        return round((self.end_time - self.start_time).total_seconds() / 60)


class PatternAnalysis(BaseModel):
    """Risk derived from a subject's pattern records."""

    subject_id: str
    total_reports: int
    reports_last_24h: int
    reports_last_week: int
    category_counts: Dict[str, int] = Field(default_factory=dict)
    mean_inter_report_interval_minutes: float = 0.0
    risk_score: int = 0
    risk_level: RiskLevel = RiskLevel.LOW
    recommended_action: RecommendedAction = RecommendedAction.NONE


class ReportProcessingResult(BaseModel):
    restriction: Optional[Restriction] = None
    analysis: PatternAnalysis


class Report(BaseModel):
    """The durable record of a filed report."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    session_id: str
    reporter_role: Role
    reason: str
    reported_participant_id: Optional[str] = None
    category: ReportCategory
    created_at: datetime
    resolved: bool = False


class RestrictionStats(BaseModel):
    total_restrictions: int = 0
    active_restrictions: int = 0
    restrictions_by_kind: Dict[str, int] = Field(default_factory=dict)
    average_reports_before_restriction: int = 0


class ReportStats(BaseModel):
    total_reports: int = 0
    reports_today: int = 0
    unresolved_reports: int = 0
    reports_by_reporter_role: Dict[str, int] = Field(default_factory=dict)
    restrictions: RestrictionStats = Field(default_factory=RestrictionStats)


# =============================================================================
# Report API
# =============================================================================


class ReportCreate(BaseModel):
    """Request body for POST /report."""

    session_id: str = Field(..., min_length=1)
    reporter_role: Role
    reason: Optional[str] = Field(default=None, max_length=500)
    reported_participant_id: Optional[str] = None


class RestrictionApplied(BaseModel):
    type: RestrictionKind
    duration_minutes: Optional[int] = None
    reason: str


class ReportSubmission(BaseModel):
    """Outcome of a filed report."""

    report: Report
    restriction: Optional[Restriction] = None
    analysis: Optional[PatternAnalysis] = None
    session_terminated: bool = False


class ReportResponse(BaseModel):
    message: str
    report_id: str
    created_at: datetime
    restriction_applied: Optional[RestrictionApplied] = None


class SubjectAnalysisResponse(BaseModel):
    analysis: PatternAnalysis
    current_restriction: Optional[Restriction] = None


class RestrictionListResponse(BaseModel):
    restrictions: List[Restriction]
    count: int


class ReportListResponse(BaseModel):
    reports: List[Report]
    count: int
