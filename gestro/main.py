"""
Gestro API

Wires the routers, the change feed and its listeners into one FastAPI
app. Run with:

    uvicorn gestro.main:app --port 8001

On startup the database schema is created, the change feed is started
and both notification listeners (staff alerts and customer status
messages) subscribe to it. Shutdown undoes the same in reverse.

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from gestro.api import routers
from gestro.api.deps import get_feed, get_gateway
from gestro.core.config import get_settings, setup_logging
from gestro.database import async_session_maker, engine, get_db, init_db
from gestro.exceptions import GestroError
from gestro.schemas import HealthResponse
from gestro.services.assistant import get_assistant_backend
from gestro.services.notifications import (
    CustomerStatusNotifier,
    get_notification_service,
    get_staff_notification_center,
)
from gestro.services.payment import BasePaymentService, get_payment_service
from gestro.services.realtime import BaseChangeFeed, get_change_feed

settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 {settings.app_name} {settings.app_version} ({settings.env_mode.value}, debug={settings.debug})")

    await init_db()

    feed = get_change_feed()
    await feed.start()

    staff_center = get_staff_notification_center()
    staff_center.attach(feed)

    sender = get_notification_service()
    customer_notifier = CustomerStatusNotifier(async_session_maker, sender)
    customer_notifier.attach(feed)

    logger.info(
        f"Providers: feed={feed.provider_name} payments={get_payment_service().provider_name} "
        f"notifications={sender.provider_name} assistant={get_assistant_backend().provider_name}"
    )

    missing = settings.validate_production_config()
    if missing:
        logger.warning(f"⚠️ Missing provider settings: {', '.join(missing)}")

    yield

    customer_notifier.detach()
    staff_center.detach()
    await feed.stop()
    await engine.dispose()
    logger.info("👋 Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Menu, orders, checkout, table reservations and the staff back-office.",
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in routers:
    app.include_router(router)


# =============================================================================
# ROOT & HEALTH
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    return {
        "message": f"🍽️ {settings.restaurant_name} API",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


def _state(ok: bool) -> str:
    return "healthy" if ok else "unhealthy"


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(
    db: AsyncSession = Depends(get_db),
    feed: BaseChangeFeed = Depends(get_feed),
    gateway: BasePaymentService = Depends(get_gateway),
) -> HealthResponse:
    """Probe the database and every provider; any failure marks the API degraded."""
    try:
        await db.execute(text("SELECT 1"))
        database = "healthy"
    except SQLAlchemyError as e:
        logger.error(f"Database probe failed: {e}")
        database = f"unhealthy: {e}"

    components = {
        "database": database,
        "change_feed": _state(await feed.health_check()),
        "payment_service": _state(await gateway.health_check()),
        "notification_service": _state(await get_notification_service().health_check()),
    }
    overall = "operational" if set(components.values()) == {"healthy"} else "degraded"

    return HealthResponse(status=overall, timestamp=datetime.now(), **components)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(GestroError)
async def domain_exception_handler(request: Request, exc: GestroError) -> JSONResponse:
    """Service errors carry their own HTTP status."""
    logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "detail": exc.detail},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
