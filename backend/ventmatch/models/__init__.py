# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Models package
"""
from ventmatch.models.moderation import PatternRecordModel, ReportModel, RestrictionModel

__all__ = [
    "PatternRecordModel",
    "ReportModel",
    "RestrictionModel",
]
