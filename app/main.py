"""
FastAPI application entry point.
Configures routes, middleware, and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.database import close_db
from app.logging_config import configure_logging
from app.redis import RedisClient

from app.api.cron import router as cron_router
from app.api.dashboard.api_keys import router as api_keys_router
from app.api.dashboard.notifications import router as notifications_router
from app.api.dashboard.payments import router as payments_router
from app.api.dashboard.subscriptions import router as subscriptions_router
from app.api.dashboard.webhooks import router as webhooks_router
from app.api.portal import router as portal_router
from app.api.v1.access import router as v1_access_router
from app.api.v1.payments import router as v1_payments_router
from app.api.v1.products import router as v1_products_router
from app.api.v1.subscriptions import router as v1_subscriptions_router
from app.api.v1.webhooks import router as v1_webhooks_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifecycle manager."""
    configure_logging()
    logger.info("Starting up Payssd...")

    try:
        RedisClient.get_client()
    except Exception as e:
        logger.warning(f"Failed to initialize Redis: {e}")

    yield

    await RedisClient.close()
    await close_db()
    logger.info("Shutting down...")


app = FastAPI(
    title="Payssd",
    description="Manual mobile-money and bank-transfer subscription payments",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "error": message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )


origins = [settings.app_url]
if settings.is_development:
    origins.append("*")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "env": settings.app_env,
    }


# Dashboard routes (session token)
app.include_router(payments_router, prefix="/payments", tags=["payments"])
app.include_router(subscriptions_router, prefix="/subscriptions", tags=["subscriptions"])
app.include_router(notifications_router, prefix="/notifications", tags=["notifications"])
app.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
app.include_router(api_keys_router, prefix="/api-keys", tags=["api-keys"])

# Merchant API routes (secret key)
app.include_router(v1_products_router, prefix="/v1", tags=["v1"])
app.include_router(v1_access_router, prefix="/v1", tags=["v1"])
app.include_router(v1_payments_router, prefix="/v1", tags=["v1"])
app.include_router(v1_subscriptions_router, prefix="/v1", tags=["v1"])
app.include_router(v1_webhooks_router, prefix="/v1", tags=["v1"])

# Customer portal (public)
app.include_router(portal_router, prefix="/portal", tags=["portal"])

# Scheduled jobs (cron secret)
app.include_router(cron_router, prefix="/cron", tags=["cron"])
