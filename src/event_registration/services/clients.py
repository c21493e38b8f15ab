"""Centralized backend clients for the application"""

import logging
from typing import Optional

from event_registration.backends.email_client import EmailClient
from event_registration.backends.payment_client import PaymentClient
from event_registration.backends.storage_client import StorageClient
from event_registration.config import config

logger = logging.getLogger(__name__)

# Global client instances
_payment_client = None
_storage_client = None
_email_client = None


def get_payment_client() -> PaymentClient:
    """Get or create the global payment client instance"""
    global _payment_client
    if _payment_client is None:
        _payment_client = PaymentClient(config)
        logger.info("Initialized global payment client")
    return _payment_client


def get_storage_client() -> StorageClient:
    """Get or create the global storage client instance"""
    global _storage_client
    if _storage_client is None:
        _storage_client = StorageClient(config)
        logger.info("Initialized global storage client")
    return _storage_client


def get_email_client() -> Optional[EmailClient]:
    """Get the global email client, or None when Mailgun is not configured"""
    global _email_client
    if _email_client is None:
        if not (config.get("mailgun_api_key") and config.get("mailgun_domain")):
            logger.warning("Mailgun is not configured, notification emails are disabled")
            return None
        _email_client = EmailClient(config)
        logger.info("Initialized global email client")
    return _email_client
