from __future__ import annotations

import logging
from typing import Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env at project root
# This runs before the app is created so all downstream modules see the env.
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from formrelay.config import Settings, get_settings
from formrelay.db import create_engine, create_sessionmaker, init_db
from formrelay.intake.rate_limit import RateLimiter
from formrelay.intake.services import IntakeService
from formrelay.intake.spam import SpamFilter
from formrelay.intake.stores import SqlMailLogStore, SqlProjectStore, SqlSubmissionStore
from formrelay.mail.dispatcher import MailDispatcher
from formrelay.mail.render import NotificationRenderer
from formrelay.routers import submit as submit_router

logger = logging.getLogger("formrelay.main")


def build_intake_service(settings: Settings, sessionmaker) -> IntakeService:
    """Wire the process-wide rate limiter and transport cache into one service."""
    rate_limiter = RateLimiter.in_memory(
        max_entries=settings.rate_limit_max_entries,
        window_ms=settings.rate_limit_window_ms,
        max_requests=settings.rate_limit_max_requests,
    )
    dispatcher = MailDispatcher(
        max_connections=settings.smtp_pool_max_connections,
        max_messages=settings.smtp_pool_max_messages,
        timeout=settings.smtp_timeout_seconds,
    )
    return IntakeService(
        projects=SqlProjectStore(sessionmaker),
        submissions=SqlSubmissionStore(sessionmaker),
        mail_logs=SqlMailLogStore(sessionmaker),
        spam_filter=SpamFilter(rate_limiter),
        dispatcher=dispatcher,
        renderer=NotificationRenderer(),
    )


def create_app(
    settings: Optional[Settings] = None,
    intake_service: Optional[IntakeService] = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name, debug=settings.debug)

    engine = None
    if intake_service is None:
        engine = create_engine(settings.database_url)
        intake_service = build_intake_service(settings, create_sessionmaker(engine))
    app.state.settings = settings
    app.state.intake_service = intake_service

    # Public form endpoint: any site may post; origin policy is per project.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(submit_router.router)

    @app.on_event("startup")
    async def on_startup() -> None:
        """Initialize resources on startup."""
        logger.info("Starting %s...", settings.app_name)
        if engine is not None:
            await init_db(engine)
        logger.info("%s started.", settings.app_name)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await app.state.intake_service.dispatcher.close()
        if engine is not None:
            await engine.dispose()
        logger.info("%s stopped.", settings.app_name)

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok", "app": settings.app_name}

    return app
