"""
FastAPI application entry point for the NCF Shopify connector.

Embedded app routes authenticate with Shopify session tokens; webhook
routes authenticate with the HMAC signature instead.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from ncf_connector import __version__
from ncf_connector.api.routes import health
from ncf_connector.api.routes import app_home
from ncf_connector.api.routes import billing
from ncf_connector.api.routes import webhooks_shopify
from ncf_connector.config.settings import get_settings

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

REQUIRED_ENV_VARS = ["DATABASE_URL", "SHOPIFY_API_KEY", "SHOPIFY_API_SECRET"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting NCF Shopify connector")

    missing_vars = [var for var in REQUIRED_ENV_VARS if not os.getenv(var)]
    app.state.configured = len(missing_vars) == 0

    if missing_vars:
        logger.warning(
            f"Connector not fully configured (missing: {missing_vars}). "
            "Affected endpoints will return 503."
        )

    settings = get_settings()
    logger.info("Connector settings loaded", extra={
        "environment": settings.environment,
        "ncf_manager_url": settings.ncf_manager_url,
        "billing_test_mode": settings.billing_test_mode,
    })

    if settings.is_production and settings.billing_test_mode:
        logger.warning("Billing test mode is enabled in production; charges will not be collected")

    database_url = os.getenv("DATABASE_URL")
    if database_url:
        # Mask credentials for safe logging
        masked = database_url.split("@")[-1] if "@" in database_url else "(local)"
        logger.info("DATABASE_URL configured", extra={"host_db": masked})

    yield

    # Shutdown
    logger.info("Shutting down NCF Shopify connector")


# Create FastAPI app
app = FastAPI(
    title="NCF Shopify Connector",
    description="Connects Shopify stores to NCF Manager for fiscal invoicing",
    version=__version__,
    lifespan=lifespan
)

# Include Shopify Admin in CORS origins for embedding
cors_origins = [o for o in os.getenv("CORS_ORIGINS", "").split(",") if o]
if "https://admin.shopify.com" not in cors_origins:
    cors_origins.append("https://admin.shopify.com")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include health route (bypasses authentication)
app.include_router(health.router)

# Include embedded app routes (requires Shopify session token)
app.include_router(app_home.router)

# Include billing routes (requires Shopify session token)
app.include_router(billing.router)

# Include Shopify webhook routes (uses HMAC verification, not JWT)
app.include_router(webhooks_shopify.router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
