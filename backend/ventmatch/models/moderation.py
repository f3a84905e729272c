# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Moderation tables: pattern records, restrictions and filed reports.

All timestamps are stored as naive UTC.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from ventmatch.db.base import Base

_TABLE_ARGS = {
    "sqlite_autoincrement": True,
    "mysql_engine": "InnoDB",
    "mysql_charset": "utf8mb4",
    "mysql_collate": "utf8mb4_unicode_ci",
}


class PatternRecordModel(Base):
    """One report event attributed to a subject. Append-only."""

    __tablename__ = "pattern_records"

    id = Column(String(64), primary_key=True)
    subject_id = Column(String(128), nullable=False, index=True)
    session_id = Column(String(64), nullable=False)
    category = Column(String(32), nullable=False)  # ReportCategory value
    reporter_role = Column(String(16), nullable=False)  # Role value
    reported_at = Column(DateTime, nullable=False, index=True)

    __table_args__ = (_TABLE_ARGS,)


class RestrictionModel(Base):
    """Admission restriction. end_time NULL means permanent."""

    __tablename__ = "restrictions"

    id = Column(String(64), primary_key=True)
    subject_id = Column(String(128), nullable=False, index=True)
    kind = Column(String(32), nullable=False)  # RestrictionKind value
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    reason = Column(Text, nullable=False)
    triggering_report_count = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True, index=True)

    __table_args__ = (_TABLE_ARGS,)


class ReportModel(Base):
    """The durable record of a filed report."""

    __tablename__ = "reports"

    id = Column(String(64), primary_key=True)
    session_id = Column(String(64), nullable=False, index=True)
    reporter_role = Column(String(16), nullable=False)
    reason = Column(Text, nullable=False)
    reported_participant_id = Column(String(128), nullable=True, index=True)
    category = Column(String(32), nullable=False)
    created_at = Column(DateTime, nullable=False, index=True)
    resolved = Column(Boolean, nullable=False, default=False)

    __table_args__ = (_TABLE_ARGS,)
