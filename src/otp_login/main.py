"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from otp_login.api.dependencies import Services
from otp_login.api.router import router as auth_router
from otp_login.auth.otp import OTPChallenge, OTPGenerator
from otp_login.auth.rate_limiter import RateLimiter
from otp_login.auth.session import SessionResolver
from otp_login.auth.tokens import TokenIssuer, TokenValidator
from otp_login.cache.ephemeral import EphemeralStore, InMemoryEphemeralStore, RedisEphemeralStore
from otp_login.config import Settings, settings
from otp_login.database.engine import build_engine, build_session_factory, init_db
from otp_login.errors import OTPLoginError, RateLimited
from otp_login.services.auth_service import OTPAuthService

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


def build_ephemeral_store(cfg: Settings) -> EphemeralStore:
    if cfg.ephemeral_backend == "memory":
        logger.warning("Using in-memory ephemeral store; state is per-process only")
        return InMemoryEphemeralStore()
    return RedisEphemeralStore.from_url(cfg.redis_url, timeout=cfg.store_timeout_seconds)


def build_services(cfg: Settings, store: EphemeralStore, engine: AsyncEngine) -> Services:
    """Wire every component explicitly from settings and store clients."""
    session_factory = build_session_factory(engine)
    challenge = OTPChallenge(
        store,
        OTPGenerator(),
        ttl_seconds=cfg.otp_ttl_seconds,
        single_use=cfg.otp_single_use,
    )
    rate_limiter = RateLimiter(
        store, limit=cfg.rate_limit_max, window_seconds=cfg.rate_limit_window_seconds
    )
    issuer = TokenIssuer(
        cfg.jwt_secret, algorithm=cfg.jwt_algorithm, ttl=timedelta(hours=cfg.token_ttl_hours)
    )
    validator = TokenValidator(
        cfg.jwt_secret, algorithm=cfg.jwt_algorithm, leeway=cfg.token_leeway_seconds
    )
    return Services(
        auth=OTPAuthService(
            rate_limiter=rate_limiter,
            challenge=challenge,
            issuer=issuer,
            session_factory=session_factory,
            db_timeout=cfg.database_timeout_seconds,
            log_codes=cfg.log_otp_codes,
        ),
        sessions=SessionResolver(
            validator, session_factory, db_timeout=cfg.database_timeout_seconds
        ),
        ephemeral_store=store,
        engine=engine,
    )


def create_app(
    app_settings: Settings | None = None,
    *,
    ephemeral_store: EphemeralStore | None = None,
    engine: AsyncEngine | None = None,
) -> FastAPI:
    """Build the application with its own store clients.

    Components are created here rather than at import time; the lifespan
    hook ties their connections to server start/stop.
    """
    cfg = app_settings or settings
    services = build_services(
        cfg,
        ephemeral_store or build_ephemeral_store(cfg),
        engine or build_engine(cfg),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle hook."""
        logger.info("Starting %s …", cfg.app_name)
        await init_db(services.engine)
        logger.info("Database initialised")
        await services.ephemeral_store.ping()
        logger.info("Ephemeral store reachable")
        yield
        logger.info("Shutting down %s …", cfg.app_name)
        await services.ephemeral_store.close()
        await services.engine.dispose()

    app = FastAPI(
        title=cfg.app_name,
        description="Phone-number login with one-time codes and bearer tokens",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services
    app.include_router(auth_router)

    @app.middleware("http")
    async def vary_on_authorization(request: Request, call_next):
        response = await call_next(request)
        response.headers.append("Vary", "Authorization")
        return response

    @app.exception_handler(OTPLoginError)
    async def handle_login_error(request: Request, exc: OTPLoginError) -> JSONResponse:
        headers = None
        if isinstance(exc, RateLimited) and exc.retry_after:
            headers = {"Retry-After": str(exc.retry_after)}
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_bad_payload(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Rejected payload on %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"error": "Invalid request payload"})

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        # ServerErrorMiddleware re-raises afterwards; the server logs the traceback
        logger.error("Unhandled error on %s %s: %r", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.get("/", response_class=PlainTextResponse)
    async def welcome() -> str:
        return f"Welcome to {cfg.app_name}\n"

    @app.get("/health")
    async def health_check():
        """Simple liveness probe."""
        return {"status": "healthy", "app": cfg.app_name}

    return app


def run() -> None:
    uvicorn.run(
        "otp_login.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    run()
