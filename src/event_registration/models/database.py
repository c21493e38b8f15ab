"""Database engine and per-request sessions"""

import os

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlmodel import Session

from event_registration.config import config

DATABASE_URL = config["database_url"]

if not DATABASE_URL:
    raise ValueError(
        "DATABASE_URL environment variable is not set. "
        "Set DATABASE_URL in the deployment environment or a local .env file."
    )


def build_engine(url: str):
    """Engine for ``url``; SQLite (local runs) is shared across the worker threads"""
    echo = os.getenv("DEBUG", "false").lower() == "true"
    if make_url(url).get_backend_name() == "sqlite":
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    return create_engine(url, echo=echo, pool_pre_ping=True)


engine = build_engine(DATABASE_URL)


def get_db():
    """Get database session"""
    with Session(engine) as session:
        yield session
