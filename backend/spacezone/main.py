import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker

from spacezone.api.routes.auth import router as auth_router
from spacezone.api.routes.chat import router as chat_router
from spacezone.api.routes.friends import router as friends_router
from spacezone.api.routes.users import router as users_router
from spacezone.api.routes.ws import router as ws_router
from spacezone.core.config import Settings, settings as default_settings
from spacezone.core.errors import DomainError, ServerError, ValidationError
from spacezone.core.logs import configure_logging
from spacezone.db.init_db import init_db
from spacezone.db.session import SessionLocal
from spacezone.realtime.calls import CallRelay
from spacezone.realtime.groups import BroadcastGroups
from spacezone.realtime.manager import MessagingSessionManager
from spacezone.realtime.presence import PresenceTracker
from spacezone.schemas.common import iso_now
from spacezone.security.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


def _error_response(exc: DomainError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "code": exc.code, "timestamp": iso_now()},
    )


def create_app(session_factory: sessionmaker | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    session_factory = session_factory or SessionLocal

    app = FastAPI(title="SpaceZone", version="0.1.0")

    presence = PresenceTracker(offline_delay=settings.PRESENCE_OFFLINE_DELAY_SECONDS)
    groups = BroadcastGroups()
    calls = CallRelay(presence)
    rate_limiter = RateLimiter(
        max_attempts=settings.MESSAGE_RATE_LIMIT,
        window_seconds=settings.MESSAGE_RATE_WINDOW_SECONDS,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.presence = presence
    app.state.groups = groups
    app.state.calls = calls
    app.state.rate_limiter = rate_limiter
    app.state.manager = MessagingSessionManager(session_factory, presence, groups, calls, rate_limiter, settings)

    @app.exception_handler(DomainError)
    async def _domain_error(request: Request, exc: DomainError):
        if isinstance(exc, ServerError):
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid input") if errors else "Invalid input"
        return _error_response(ValidationError(message))

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(ServerError())

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(friends_router)
    app.include_router(chat_router)
    app.include_router(ws_router)

    @app.on_event("startup")
    def _startup() -> None:
        configure_logging(settings.LOG_LEVEL)
        init_db(session_factory)
        logger.info("%s started (%s)", settings.app_name, settings.app_env)

    @app.on_event("shutdown")
    def _shutdown() -> None:
        presence.shutdown()

    @app.get("/health")
    def health():
        return {"success": True, "status": "ok", "timestamp": iso_now()}

    return app


app = create_app()
