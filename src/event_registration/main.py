#!/usr/bin/env python3
"""Event Registration - registration forms, submissions, payments and review"""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from event_registration.config import config
from event_registration.errors import RegistrationError
from event_registration.logging_config import get_logger, setup_logging
from event_registration.routers.health import health
from event_registration.routers.payments import router as payments_router
from event_registration.routers.registration_config import (
    router as registration_config_router,
)
from event_registration.routers.registrations import router as registrations_router

# Configure logging (INFO -> stdout, WARNING/ERROR -> stderr)
setup_logging()
logger = get_logger(__name__)


# Create FastAPI app
app = FastAPI(
    title="Event Registration",
    description="Registration forms, participant submissions, payment tracking and vendor review for marketplace events",
    version="1.0.0",
)

# Trust proxy headers (TLS is terminated in front of the app)
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")


@app.exception_handler(RegistrationError)
async def registration_error_handler(request: Request, exc: RegistrationError) -> JSONResponse:
    """Render domain errors as ``{"error", "detail", "errors"?}``"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include routers
app.include_router(health)
app.include_router(registration_config_router)
app.include_router(registrations_router)
app.include_router(payments_router)


if __name__ == "__main__":
    port = config.get("port")
    logger.info(f"Starting Event Registration on 0.0.0.0:{port}")
    logger.info("Health check available at /health")

    try:
        uvicorn.run(
            app, host="0.0.0.0", port=port, log_level=config["log_level"].lower()
        )
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
