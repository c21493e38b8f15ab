from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, text

from event_registration.config import config
from event_registration.models.database import engine

health = APIRouter(tags=["Health"])


@health.get("/health")
async def health_check():
    """Basic health check endpoint"""
    return {
        "status": "healthy",
        "service": "event-registration",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": config["environment"],
    }


@health.get("/health/detailed")
async def detailed_health_check():
    """Detailed health check with database and backend configuration checks"""
    health_status = {
        "status": "healthy",
        "service": "event-registration",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": config["environment"],
        "checks": {},
    }

    # Database connectivity check
    try:
        with Session(engine) as session:
            result = session.exec(text("SELECT 1")).first()
            health_status["checks"]["database"] = "healthy" if result else "unhealthy"
    except SQLAlchemyError as e:
        health_status["checks"]["database"] = f"unhealthy: {e.__class__.__name__}"
        health_status["status"] = "unhealthy"

    if health_status["checks"]["database"] != "healthy":
        health_status["status"] = "unhealthy"

    # Backends the submission pipeline cannot run without
    required_settings = ["stripe_secret_key", "storage_base_url"]
    missing = [key for key in required_settings if not config.get(key)]
    if missing:
        health_status["checks"]["configuration"] = f"missing: {', '.join(missing)}"
        health_status["status"] = "unhealthy"
    else:
        health_status["checks"]["configuration"] = "healthy"

    # Email is optional; report it without failing the check
    health_status["checks"]["email"] = (
        "enabled" if config.get("mailgun_api_key") and config.get("mailgun_domain") else "disabled"
    )

    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status
