# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

"""
Admission endpoints: join matching, cancel, queue statistics.
"""

from fastapi import APIRouter, Depends

from ventmatch.api.dependencies import get_matching_service, get_services
from ventmatch.schemas.pairing import (
    AdmissionResponse,
    CancelResponse,
    MatchedResponse,
    MatchRequest,
    MatchStatsResponse,
    QueuedResponse,
    Role,
)
from ventmatch.services.container import ServiceContainer
from ventmatch.services.matching.service import MatchingService

router = APIRouter()


@router.post("", response_model=AdmissionResponse)
async def join_matching(
    request: MatchRequest,
    matching: MatchingService = Depends(get_matching_service),
):
    """
    Admit a participant into matching.

    Returns the session immediately when a partner of the opposite role is
    waiting, otherwise the queue position estimate. Restricted participants
    get 403 with the restriction details.
    """
    match = await matching.admit(request.participant_id, request.role)
    if match is not None:
        return MatchedResponse(session_id=match.session_id, role=request.role)

    stats = await matching.queue_stats()
    return QueuedResponse(
        participant_id=request.participant_id,
        role=request.role,
        estimated_wait_seconds=await matching.estimated_wait_seconds(request.role),
        queue_depths={role: stats.depth(role) for role in Role},
    )


@router.get("/stats", response_model=MatchStatsResponse)
async def get_match_stats(services: ServiceContainer = Depends(get_services)):
    """Number of participants waiting per role."""
    stats = await services.matching.queue_stats()
    return MatchStatsResponse(
        waiting_by_role={role: stats.depth(role) for role in Role},
        total=stats.total,
        backend=services.store.name,
    )


@router.delete("/{participant_id}", response_model=CancelResponse)
async def cancel_matching(
    participant_id: str,
    matching: MatchingService = Depends(get_matching_service),
):
    """Withdraw a waiting participant from its queue."""
    cancelled = await matching.withdraw(participant_id)
    return CancelResponse(participant_id=participant_id, cancelled=cancelled)
