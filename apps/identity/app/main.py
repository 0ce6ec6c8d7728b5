import asyncio
import contextlib
import datetime as dt
import logging
import time
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from fastapi import FastAPI, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException

from phoneauth_shared import OTPConfig, build_sms_provider

from .config import settings
from .database import make_engine, make_sessionmaker
from .errors import AppError, app_error_handler, http_exception_handler, request_validation_handler
from .middleware_api_version import APIVersionMiddleware
from .middleware_request_id import RequestIDMiddleware
from .models import Base
from .routers import auth as auth_router
from .routers import system as system_router
from .routers import users as users_router
from .store import CredentialStore, SqlCredentialStore
from .tasks import cleanup_loop
from .utils.audit import AuditSink, LoggingAuditSink
from .utils.otp import OTPDelivery, OTPEngine
from .utils.users import UserDirectory


API_PREFIX = "/api/v1"

REQ = Counter("http_requests_total", "HTTP requests", ["method", "path", "status"])
REQ_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format="%(asctime)s %(levelname)s %(name)s %(message)s")


def _default_store() -> CredentialStore:
    engine = make_engine(settings.DB_URL, echo=settings.DB_ECHO)
    if settings.AUTO_CREATE_SCHEMA:
        Base.metadata.create_all(bind=engine)
    return SqlCredentialStore(make_sessionmaker(engine))


def _default_delivery() -> OTPDelivery:
    return build_sms_provider(
        settings.OTP_SMS_PROVIDER,
        http_url=settings.OTP_SMS_HTTP_URL,
        http_auth_token=settings.OTP_SMS_HTTP_AUTH_TOKEN,
        sender_name=settings.OTP_SMS_SENDER_NAME,
        template=settings.OTP_SMS_TEMPLATE,
        reveal_code=settings.DEV_MODE,
    )


def create_app(
    store: Optional[CredentialStore] = None,
    *,
    otp_config: Optional[OTPConfig] = None,
    delivery: Optional[OTPDelivery] = None,
    audit: Optional[AuditSink] = None,
    jwt_secret: Optional[str] = None,
    clock: Optional[Callable[[], dt.datetime]] = None,
) -> FastAPI:
    configure_logging(settings.LOG_LEVEL)
    app = FastAPI(title="Identity API", version=settings.API_VERSION)

    store = store if store is not None else _default_store()
    audit = audit if audit is not None else LoggingAuditSink()
    clock = clock or dt.datetime.utcnow
    app.state.store = store
    app.state.audit = audit
    app.state.otp_engine = OTPEngine(
        store,
        otp_config or settings.OTP,
        delivery=delivery if delivery is not None else _default_delivery(),
        audit=audit,
        clock=clock,
    )
    app.state.directory = UserDirectory(store, clock=clock, tz=ZoneInfo(settings.STATS_TIMEZONE) if settings.STATS_TIMEZONE else None)
    app.state.jwt_secret = jwt_secret or settings.JWT_SECRET
    app.state.jwt_expires = settings.jwt_expires_delta
    app.state.otp_dev_echo = settings.DEV_MODE and settings.OTP_DEV_ECHO
    app.state.supported_versions = settings.SUPPORTED_API_VERSIONS
    app.state.deprecated_versions = settings.DEPRECATED_API_VERSIONS

    app.add_middleware(
        APIVersionMiddleware,
        supported=settings.SUPPORTED_API_VERSIONS,
        deprecated=settings.DEPRECATED_API_VERSIONS,
        sunset=settings.API_SUNSET_DATE,
    )
    # Request ID + JSON logs
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS or ["*"],
        allow_credentials="*" not in settings.ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _metrics_mw(request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start
        route = getattr(request.scope.get("route"), "path", None) or request.url.path
        REQ.labels(request.method, route, str(response.status_code)).inc()
        REQ_DURATION.labels(request.method, route).observe(duration)
        return response

    @app.get("/metrics", include_in_schema=False)
    def metrics():
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(system_router.router)
    app.include_router(auth_router.router, prefix=API_PREFIX)
    app.include_router(users_router.router, prefix=API_PREFIX)

    if settings.CLEANUP_INTERVAL_SECS > 0:
        @app.on_event("startup")
        async def _start_cleanup_loop():
            app.state.cleanup_task = asyncio.create_task(
                cleanup_loop(app.state.otp_engine, settings.CLEANUP_INTERVAL_SECS)
            )

        @app.on_event("shutdown")
        async def _stop_cleanup_loop():
            task = app.state.cleanup_task
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("app.main:app", host=settings.APP_HOST, port=settings.APP_PORT, log_level=settings.LOG_LEVEL.lower())
