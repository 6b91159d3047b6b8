import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from identity.auth.otp import InMemoryOTPLedger, OTPLedger, RedisOTPLedger
from identity.auth.router import router as auth_router
from identity.config import Settings
from identity.database import create_tables, dispose_db, init_db
from identity.exceptions import ServiceError
from identity.middleware.error_handler import (
    error_envelope_middleware,
    http_error_handler,
    service_error_handler,
    validation_error_handler,
)
from identity.middleware.request_id import RequestIdFilter, request_id_middleware
from identity.redis_client import close_redis_client, get_redis_client

logger = logging.getLogger(__name__)


# ── OpenAPI metadata ──────────────────────────────────────────────────────────

_DESCRIPTION = """
## CoinCraze Identity Service

Credential issuance and account recovery:

* **Signup / login**: email + password, returns a 24-hour bearer token.
* **Password reset**: 4-digit code emailed on `forgot-password`, checked on
  `verify-otp`, redeemed on `reset-password`. Codes expire after 10 minutes;
  requesting a new one replaces the old one.

### Error shape
All errors return a consistent JSON envelope:
```json
{ "error": { "code": "otp_expired", "message": "Human-readable message" }, "request_id": "..." }
```
"""

_TAGS_METADATA = [
    {
        "name": "auth",
        "description": "Signup, login, and the OTP password reset flow.",
    },
]


# ── Health schema ─────────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    service: str


# ── App factory ───────────────────────────────────────────────────────────────

def get_settings() -> Settings:
    return Settings()


def _configure_logging(settings: Settings) -> None:
    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s [%(request_id)s]: %(message)s",
        handlers=[handler],
    )


def build_otp_ledger(settings: Settings) -> OTPLedger:
    if settings.otp_backend == "redis":
        return RedisOTPLedger(
            get_redis_client(settings.redis_url),
            expire_seconds=settings.otp_expire_seconds,
        )
    return InMemoryOTPLedger(expire_seconds=settings.otp_expire_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    init_db(settings.database_url)
    if settings.database_create_tables:
        await create_tables()

    sweeper: asyncio.Task | None = None
    if settings.otp_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(
            app.state.otp_ledger.run_sweeper(settings.otp_sweep_interval_seconds)
        )
    yield
    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await close_redis_client()
    await dispose_db()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    _configure_logging(settings)

    app = FastAPI(
        title="CoinCraze Identity Service",
        version="1.0.0",
        description=_DESCRIPTION,
        openapi_tags=_TAGS_METADATA,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.otp_ledger = build_otp_ledger(settings)

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    # Middleware is applied in reverse-registration order (last added = outermost).
    app.middleware("http")(error_envelope_middleware)
    app.middleware("http")(request_id_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    app.include_router(auth_router, prefix="/api/v1")

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", service="identity")

    logger.info(
        "Identity service configured (env=%s, otp_backend=%s)",
        settings.env_name,
        settings.otp_backend,
    )
    return app
