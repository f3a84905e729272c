# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from fastapi import status
from starlette.exceptions import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from ventmatch.schemas.moderation import Restriction

logger = logging.getLogger(__name__)


# ============================================================
# Domain errors raised by the services
# ============================================================


class PairingError(Exception):
    """Base class for errors raised by the pairing services"""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PairingError):
    """Malformed or missing input. Never retried."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(PairingError):
    """Session or queue entry absent, usually a benign race"""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(PairingError):
    """Session id reused with different participants, or a participant
    already bound to another active session"""

    status_code = status.HTTP_409_CONFLICT


class BackendUnavailableError(PairingError):
    """Distributed store unreachable. Triggers failover, never shown raw."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class RestrictedError(PairingError):
    """Admission blocked by an active moderation restriction"""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self,
        message: str,
        restriction: Optional["Restriction"] = None,
        time_remaining: Optional[str] = None,
    ):
        super().__init__(message)
        self.restriction = restriction
        self.time_remaining = time_remaining

    def to_dict(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {"message": self.message}
        if self.restriction is not None:
            info["type"] = self.restriction.kind.value
            info["reason"] = self.restriction.reason
            info["end_time"] = (
                self.restriction.end_time.isoformat()
                if self.restriction.end_time
                else None
            )
        if self.time_remaining:
            info["time_remaining"] = self.time_remaining
        return info


# ============================================================
# Exception handlers
# ============================================================


async def http_exception_handler(request, exc: HTTPException):
    """HTTP exception handler"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": getattr(exc, "error_code", exc.status_code),
            "detail": exc.detail,
        },
    )


async def pairing_exception_handler(request, exc: PairingError):
    """Translate domain errors into user-facing responses"""
    content: Dict[str, Any] = {"error_code": exc.status_code, "detail": exc.message}

    if isinstance(exc, RestrictedError):
        content["restriction"] = exc.to_dict()
    elif isinstance(exc, BackendUnavailableError):
        logger.error(f"Backend unavailable while handling {request.url.path}: {exc}")
        content["detail"] = "Service temporarily unavailable, please try again"
    elif isinstance(exc, ConflictError):
        logger.error(f"Conflict while handling {request.url.path}: {exc}")

    return JSONResponse(status_code=exc.status_code, content=content)


async def validation_exception_handler(request, exc: RequestValidationError):
    """Request validation exception handler"""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
            "detail": "Request parameter validation failed",
            "errors": exc.errors(),
        },
    )


async def python_exception_handler(request, exc: Exception):
    """Python exception handler"""
    logger.exception(f"Unhandled error while handling {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "detail": "Internal server error",
        },
    )
