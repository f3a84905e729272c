# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

from ventmatch.api.api import api_router
from ventmatch.api.ws.pairing_namespace import register_pairing_namespace
from ventmatch.core.config import Settings, settings
from ventmatch.core.exceptions import (
    PairingError,
    RequestValidationError,
    http_exception_handler,
    pairing_exception_handler,
    python_exception_handler,
    validation_exception_handler,
)
from ventmatch.core.logging import setup_logging
from ventmatch.core.socketio import create_socketio_app, create_socketio_server
from ventmatch.db.session import create_db_engine, create_session_factory, init_db
from ventmatch.services.container import ServiceContainer
from ventmatch.services.jobs import start_background_jobs, stop_background_jobs
from ventmatch.services.store import create_pairing_store

# Initialize logging at module level for use in lifespan
setup_logging()
_logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.
    Handles startup and shutdown events.
    """
    logger = _logger
    services: ServiceContainer = app.state.services

    # ==================== STARTUP ====================
    init_db(app.state.db_engine)
    logger.info("✓ Moderation tables ready")

    await services.start()
    logger.info(f"✓ Pairing backend: {services.backend_status()['backend']}")

    logger.info("Starting background jobs...")
    start_background_jobs(app)
    logger.info("✓ Background jobs started")

    logger.info("=" * 60)
    logger.info("Application startup completed successfully!")
    logger.info("=" * 60)

    yield

    # ==================== SHUTDOWN ====================
    logger.info("Shutting down application...")
    await stop_background_jobs(app)
    await services.shutdown()
    app.state.db_engine.dispose()
    logger.info("✓ Application shutdown completed")


def create_app(
    app_settings: Optional[Settings] = None,
    services: Optional[ServiceContainer] = None,
) -> FastAPI:
    app_settings = app_settings or settings
    enable_docs = app_settings.ENABLE_API_DOCS
    openapi_url = f"{app_settings.API_PREFIX}/openapi.json" if enable_docs else None
    docs_url = f"{app_settings.API_PREFIX}/docs" if enable_docs else None
    redoc_url = f"{app_settings.API_PREFIX}/redoc" if enable_docs else None

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        description="Anonymous speaker/listener pairing API",
        version=app_settings.VERSION,
        openapi_url=openapi_url,
        docs_url=docs_url,
        redoc_url=redoc_url,
        lifespan=lifespan,
    )

    logger = _logger

    db_engine = create_db_engine(app_settings.DATABASE_URL)
    if services is None:
        services = ServiceContainer(
            app_settings,
            create_pairing_store(app_settings),
            create_session_factory(db_engine),
        )
    app.state.db_engine = db_engine
    app.state.services = services

    sio = create_socketio_server(app_settings)
    register_pairing_namespace(sio, services)
    app.state.sio = sio

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()
        client_ip = request.client.host if request.client else "Unknown"

        logger.info(
            f"request : {request.method} {request.url.path} {request.query_params} {request_id} {client_ip}"
        )

        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        logger.info(
            f"response: {request.method} {request.url.path} {request.query_params} {request_id} {client_ip} {response.status_code} {process_time:.2f}ms"
        )

        response.headers["X-Request-ID"] = request_id

        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(PairingError, pairing_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, python_exception_handler)

    app.include_router(api_router, prefix=app_settings.API_PREFIX)

    @app.get("/")
    async def root():
        """
        Root path, returns API information
        """
        return {
            "name": app_settings.PROJECT_NAME,
            "version": app_settings.VERSION,
            "api_prefix": app_settings.API_PREFIX,
            "docs_url": f"{app_settings.API_PREFIX}/docs",
        }

    return app


app = create_app()

# Served by uvicorn: Socket.IO in front, FastAPI for everything else
asgi_app = create_socketio_app(app.state.sio, other_asgi_app=app)
