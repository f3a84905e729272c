# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Liveness endpoint reporting which pairing backend is in use.
"""

from fastapi import APIRouter, Depends

from ventmatch.api.dependencies import get_services
from ventmatch.services.container import ServiceContainer

router = APIRouter()


@router.get("/health")
async def health_check(services: ServiceContainer = Depends(get_services)):
    """
    Liveness probe endpoint.

    Returns:
        dict: Health status with the active pairing backend and failover flag
    """
    status = services.backend_status()
    return {
        "status": "degraded" if status["failed_over"] else "healthy",
        "pairing_backend": status["backend"],
        "failed_over": status["failed_over"],
    }
