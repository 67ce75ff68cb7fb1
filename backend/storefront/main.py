"""
Storefront Payments Backend - FastAPI Application

Payment creation, checkout session resolution, webhook reconciliation and
integrator notifications for a small commerce storefront.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from . import __version__
from .config import settings
from .exceptions import StorefrontError
from .db.init_db import initialize_database
from .services.encryption import CredentialVault
from .services.gateways.registry import GatewayRegistry
from .services.notifier import IntegratorNotifier
from .api.payments import router as payments_router
from .api.services import router as services_router
from .api.gateways import router as gateways_router
from .api.webhooks import router as webhooks_router


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    - Startup: initialize the database, build the gateway registry, credential
      vault and integrator notifier
    - Shutdown: wait for in-flight integrator notifications, close HTTP clients
    """
    logger.info("Starting storefront payments backend...")
    logger.info(f"Payment gateway: {settings.payment_gateway}")

    try:
        initialize_database()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    # Bad gateway settings or a missing vault secret stop startup
    try:
        app.state.registry = GatewayRegistry.from_settings(settings)
        app.state.vault = CredentialVault.from_settings()
    except (StorefrontError, ValueError) as e:
        logger.error(f"Failed to initialize payment services: {e}")
        raise

    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET is not set; only integrator webhook secrets will verify")

    app.state.notifier = IntegratorNotifier.from_settings(settings)
    logger.info("Server startup complete")

    yield

    logger.info("Shutting down storefront payments backend...")
    try:
        await app.state.notifier.aclose()
        logger.info("Integrator notifier closed")
    except Exception as e:
        logger.error(f"Error closing integrator notifier: {e}")


app = FastAPI(
    title="Storefront Payments API",
    description="Cash App Pay checkout, webhook reconciliation and integrator notifications",
    version=__version__,
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    """
    Handle storefront errors with the standard `{error, errorCode, details}` body.

    The HTTP status comes from the error class.
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"{exc.error_code} ({exc.status_code}) on {request.url.path}: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Input validation failures not caught by Pydantic."""
    logger.warning(f"Validation error: {str(exc)}")

    return JSONResponse(
        status_code=400,
        content={"error": str(exc), "errorCode": "INVALID_REQUEST"}
    )


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    """
    Catch-all handler for unexpected errors.

    Logs the full exception but returns a generic message to the client.
    """
    logger.error(f"Unexpected error: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred", "errorCode": "INTERNAL_ERROR"}
    )


@app.get("/api/health")
async def health_check(request: Request):
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        Server status, version and the platform default gateway
    """
    registry = getattr(request.app.state, "registry", None)
    return {
        "status": "healthy",
        "version": __version__,
        "paymentGateway": registry.active_gateway_name if registry else settings.payment_gateway,
    }


app.include_router(payments_router, prefix="/api", tags=["Payments"])
app.include_router(services_router, prefix="/api/services", tags=["Services"])
app.include_router(gateways_router, prefix="/api/payment-gateways", tags=["Gateways"])
app.include_router(webhooks_router, prefix="/api", tags=["Webhooks"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "storefront.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
