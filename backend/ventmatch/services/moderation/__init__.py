# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from ventmatch.services.moderation.engine import ModerationEngine, ModerationPolicy
from ventmatch.services.moderation.report_service import ReportService, categorize_reason
from ventmatch.services.moderation.repository import ModerationRepository

__all__ = [
    "ModerationEngine",
    "ModerationPolicy",
    "ModerationRepository",
    "ReportService",
    "categorize_reason",
]
