"""Configuration loader for the event registration service"""

import os
from pathlib import Path

from dotenv import load_dotenv

project_dir = Path(__file__).parent.parent.parent
env_path = project_dir / ".env"

# Load .env file if it exists. For local development only.
if env_path.exists():
    load_dotenv(env_path)

# Configuration dictionary - set once at initialization
config = {
    "database_url": os.getenv("DATABASE_URL"),
    "port": int(os.getenv("PORT", "8000")),
    "log_level": os.getenv("LOG_LEVEL", "INFO"),
    "environment": os.getenv("ENVIRONMENT", "development"),
    "auth0_domain": os.getenv("AUTH0_DOMAIN"),
    "auth0_audience": os.getenv("AUTH0_AUDIENCE"),
    "stripe_secret_key": os.getenv("STRIPE_SECRET_KEY"),
    "stripe_webhook_secret": os.getenv("STRIPE_WEBHOOK_SECRET"),
    "storage_base_url": os.getenv("STORAGE_BASE_URL"),
    "storage_api_key": os.getenv("STORAGE_API_KEY"),
    "mailgun_api_key": os.getenv("MAILGUN_API_KEY"),
    "mailgun_domain": os.getenv("MAILGUN_DOMAIN"),
    "sender_email": os.getenv("SENDER_EMAIL"),
    "default_page_size": int(os.getenv("DEFAULT_PAGE_SIZE", "20")),
    "max_page_size": int(os.getenv("MAX_PAGE_SIZE", "100")),
}
