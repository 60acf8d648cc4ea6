"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, CORS, Sentry,
domain error handlers, lifespan wiring of repositories and meeting
services, and the v1 API router.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles

from src.meeting_tracker.config import get_settings
from src.meeting_tracker.core.database import close_db, get_session, init_db
from src.meeting_tracker.core.errors import register_error_handlers
from src.meeting_tracker.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry
from src.meeting_tracker.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.meeting_tracker.api.v1.router import router as v1_router
from src.meeting_tracker.meetings.actions.extractor import ActionItemExtractor
from src.meeting_tracker.meetings.lifecycle import MeetingLifecycleEngine
from src.meeting_tracker.meetings.notifications.dispatcher import NotificationDispatcher
from src.meeting_tracker.meetings.repository import MeetingRepository
from src.meeting_tracker.meetings.transcription.client import VexaClient
from src.meeting_tracker.meetings.transcription.gateway import TranscriptionGateway
from src.meeting_tracker.meetings.transcription.links import default_link_parser
from src.meeting_tracker.users.accounts import AccountService
from src.meeting_tracker.users.repository import UserRepository
from src.meeting_tracker.users.storage import LocalAvatarStorage

AVATAR_MOUNT_PATH = "/static/avatars"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: init DB, Sentry and services on startup, close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    # Initialize Sentry if DSN is configured
    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    user_repository = UserRepository(session_factory=get_session)
    meeting_repository = MeetingRepository(session_factory=get_session)
    app.state.user_repository = user_repository
    app.state.meeting_repository = meeting_repository

    # Transcription bot service (gateway reports "not configured" without a key)
    link_parser = default_link_parser()
    vexa_client = None
    if settings.VEXA_API_KEY:
        vexa_client = VexaClient(
            api_key=settings.VEXA_API_KEY,
            base_url=settings.VEXA_BASE_URL,
        )
    else:
        log.warning("startup.transcription_not_configured")
    gateway = TranscriptionGateway(client=vexa_client, link_parser=link_parser)

    # Gmail delivery (dispatcher logs instead of sending without credentials)
    gmail_service = None
    try:
        sa_path = settings.get_service_account_path()
        if sa_path and settings.GOOGLE_DELEGATED_USER_EMAIL:
            from src.meeting_tracker.services.gsuite import GSuiteAuthManager, GmailService

            gsuite_auth = GSuiteAuthManager(
                service_account_file=sa_path,
                delegated_user_email=settings.GOOGLE_DELEGATED_USER_EMAIL,
            )
            gmail_service = GmailService(
                auth_manager=gsuite_auth,
                default_user_email=settings.GOOGLE_DELEGATED_USER_EMAIL,
            )
        else:
            log.warning("startup.email_not_configured")
    except Exception:
        log.warning("startup.email_init_failed", exc_info=True)
    app.state.email_configured = gmail_service is not None

    extractor = ActionItemExtractor(
        user_directory=user_repository,
        model=settings.LLM_MODEL,
        timeout=settings.LLM_TIMEOUT,
    )
    dispatcher = NotificationDispatcher(email_service=gmail_service)

    app.state.meeting_engine = MeetingLifecycleEngine(
        meetings=meeting_repository,
        users=user_repository,
        gateway=gateway,
        extractor=extractor,
        dispatcher=dispatcher,
        link_parser=link_parser,
        bot_name=settings.TRANSCRIPTION_BOT_NAME,
    )
    app.state.account_service = AccountService(
        users=user_repository,
        avatar_storage=LocalAvatarStorage(
            upload_dir=settings.AVATAR_UPLOAD_DIR,
            public_base_url=settings.AVATAR_PUBLIC_BASE_URL,
        ),
    )
    log.info(
        "startup.services_initialized",
        transcription=vexa_client is not None,
        email=gmail_service is not None,
        llm_model=settings.LLM_MODEL,
    )

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Meeting Action Tracker API",
        version="0.1.0",
        description="Meeting scheduling, transcription and action-item tracking",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)

    # CORS middleware
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Logging middleware (logs every request with timing)
    app.add_middleware(LoggingMiddleware)

    # Metrics middleware (outermost -- records Prometheus metrics for all requests)
    app.add_middleware(MetricsMiddleware)

    register_error_handlers(app)

    # Include v1 API router (health, meetings, users)
    app.include_router(v1_router)

    # Uploaded avatars
    app.mount(
        AVATAR_MOUNT_PATH,
        StaticFiles(directory=settings.AVATAR_UPLOAD_DIR, check_dir=False),
        name="avatars",
    )

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()
