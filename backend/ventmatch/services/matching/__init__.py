# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from ventmatch.services.matching.service import (
    MatchingService,
    format_time_remaining,
    restriction_message,
)

__all__ = ["MatchingService", "format_time_remaining", "restriction_message"]
