# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from fastapi import Depends, Request

from ventmatch.services.container import ServiceContainer
from ventmatch.services.matching.service import MatchingService
from ventmatch.services.moderation.engine import ModerationEngine
from ventmatch.services.moderation.report_service import ReportService


def get_services(request: Request) -> ServiceContainer:
    """Service container created in the application lifespan"""
    return request.app.state.services


def get_matching_service(
    services: ServiceContainer = Depends(get_services),
) -> MatchingService:
    return services.matching


def get_report_service(
    services: ServiceContainer = Depends(get_services),
) -> ReportService:
    return services.reports


def get_moderation_engine(
    services: ServiceContainer = Depends(get_services),
) -> ModerationEngine:
    return services.moderation
