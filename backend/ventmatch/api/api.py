# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from ventmatch.api.endpoints import health, matching, report
from ventmatch.api.router import api_router

# Health check endpoints (no prefix, directly under /api)
api_router.include_router(health.router, tags=["health"])
api_router.include_router(matching.router, prefix="/match", tags=["match"])
api_router.include_router(report.router, prefix="/report", tags=["report"])
