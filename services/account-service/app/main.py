"""FastAPI application wiring for the account service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.errors import install_error_handlers
from .api.routes import router as v1_router
from .config import get_settings
from .domain.service import AccountService
from .logging_config import configure_logging, request_id_middleware
from .notifications import build_notifier
from .repository import AccountRepository
from .security.access import AccessGate
from .security.passwords import PasswordHasher
from .security.rate_limiter import build_rate_limiter
from .security.tokens import TokenService
from .storage import LocalAvatarStore

settings = get_settings()
configure_logging(settings.log_level, json_output=settings.is_production)
logger = logging.getLogger(__name__)

avatar_dir = Path(settings.avatar_dir)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    repository = AccountRepository(pool)
    repository.ensure_schema()
    avatar_dir.mkdir(parents=True, exist_ok=True)

    tokens = TokenService.from_settings(settings)
    service = AccountService(
        repository,
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        tokens=tokens,
        notifier=build_notifier(settings),
        avatars=LocalAvatarStore(
            avatar_dir,
            settings.avatar_base_url,
            max_bytes=settings.avatar_max_bytes,
            default_name=settings.default_avatar_name,
        ),
        public_base_url=settings.public_base_url,
        mail_from=settings.mail_from,
    )
    if settings.superadmin_email and settings.superadmin_password:
        service.ensure_super_admin(
            settings.superadmin_email, settings.superadmin_password, settings.superadmin_name
        )

    app.state.pool = pool
    app.state.settings = settings
    app.state.account_service = service
    app.state.access_gate = AccessGate(tokens)
    app.state.rate_limiter = build_rate_limiter(settings)
    logger.info("%s %s started (%s)", settings.app_name, settings.version, settings.environment)
    try:
        yield
    finally:
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)
app.middleware("http")(request_id_middleware)
install_error_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
app.mount("/uploads", StaticFiles(directory=avatar_dir, check_dir=False), name="uploads")
