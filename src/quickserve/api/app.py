"""FastAPI application with lifespan management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from functools import partial

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from quickserve.api.errors import register_exception_handlers
from quickserve.api.middleware import RequestLoggingMiddleware
from quickserve.api.routes.public import router as public_router
from quickserve.api.routes.session import router as session_router
from quickserve.auth.rate_limiter import FixedWindowRateLimiter
from quickserve.auth.tokens import TokenAuthenticator
from quickserve.config import Settings, settings
from quickserve.logging_config import configure_logging
from quickserve.storage.database import async_session, engine
from quickserve.tenancy.provisioning import SeedAccount, TenantSchemaProvisioner
from quickserve.tenancy.registry import TenantRegistry, build_data_handle
from quickserve.tenancy.resolver import TenantResolver

logger = structlog.get_logger()

CLEANUP_INTERVAL_SECONDS = 300


async def _cleanup_loop(limiter: FixedWindowRateLimiter) -> None:
    """Periodic cleanup of expired rate limit windows between requests."""
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
        try:
            cleaned = limiter.purge()
            if cleaned:
                logger.debug("rate_limiter_cleanup", keys_removed=cleaned)
        except Exception:
            logger.exception("rate_limiter_cleanup_error")


def build_authenticator(config: Settings) -> TokenAuthenticator:
    return TokenAuthenticator(
        config.jwt_secret.get_secret_value(),
        algorithm=config.jwt_algorithm,
        owner_ttl=timedelta(hours=config.owner_token_ttl_hours),
        staff_ttl=timedelta(hours=config.staff_token_ttl_hours),
    )


def build_tenant_registry(config: Settings) -> TenantRegistry:
    return TenantRegistry(
        partial(build_data_handle, engine, schema_prefix=config.tenant_schema_prefix)
    )


def build_provisioner(
    config: Settings, registry: TenantRegistry
) -> TenantSchemaProvisioner:
    seed = SeedAccount(
        username=config.tenant_seed_username,
        password=config.tenant_seed_password.get_secret_value(),
        display_name=config.tenant_seed_display_name,
    )
    return TenantSchemaProvisioner(
        engine, registry, seed, schema_prefix=config.tenant_schema_prefix
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown.

    Startup:
        - Build the authenticator from the process-wide secret.
        - Create the rate limiter, tenant registry, resolver and provisioner.
        - Start rate limiter cleanup task.
    Shutdown:
        - Cancel cleanup task.
        - Dispose tenant handles and the database engine.
    """
    configure_logging(
        environment=str(settings.environment),
        log_level=settings.log_level,
    )
    app.state.authenticator = build_authenticator(settings)
    app.state.rate_limiter = FixedWindowRateLimiter(
        window_seconds=settings.rate_limit_window_seconds,
        max_requests=settings.rate_limit_max_requests,
    )
    registry = build_tenant_registry(settings)
    app.state.tenant_registry = registry
    app.state.tenant_resolver = TenantResolver(registry)
    app.state.provisioner = build_provisioner(settings, registry)

    cleanup_task = asyncio.create_task(_cleanup_loop(app.state.rate_limiter))

    logger.info("app_started", environment=str(settings.environment))
    yield

    cleanup_task.cancel()
    registry.dispose()
    await engine.dispose()
    logger.info("app_stopped")


app = FastAPI(
    title="QuickServe Gate",
    description="Multi-tenant request gate for the QuickServe restaurant API",
    version="0.1.0",
    lifespan=lifespan,
    debug=settings.is_dev,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)
register_exception_handlers(app)


HEALTH_CHECK_TIMEOUT = 5.0


@app.get("/health")
async def health() -> JSONResponse:
    """Deep health check: verifies DB connectivity."""
    checks: dict[str, str] = {}
    overall = "ok"

    try:
        async with async_session() as session:
            await asyncio.wait_for(
                session.execute(text("SELECT 1")),
                timeout=HEALTH_CHECK_TIMEOUT,
            )
        checks["db"] = "ok"
    except (TimeoutError, OperationalError, SQLAlchemyError) as e:
        logger.warning("health_check_db_error", error=type(e).__name__)
        checks["db"] = f"error: {type(e).__name__}"
        overall = "degraded"
    except Exception as e:
        logger.error("health_check_db_unexpected", error=str(e), exc_info=True)
        checks["db"] = f"error: {type(e).__name__}"
        overall = "degraded"

    status_code = 200 if overall == "ok" else 503
    return JSONResponse(
        status_code=status_code,
        content={
            "status": overall,
            "checks": checks,
            "tenants_loaded": len(getattr(app.state, "tenant_registry", ())),
            "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
        },
    )


app.include_router(session_router, prefix="/api/v1")
app.include_router(public_router, prefix="/api/v1")
