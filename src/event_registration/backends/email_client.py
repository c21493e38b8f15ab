"""Mailgun client for registration notification emails"""

import logging
from typing import Dict, Optional

from fastapi.concurrency import run_in_threadpool
from mailgun.client import Client

logger = logging.getLogger(__name__)


class EmailClient:
    """Sends plain-text emails through Mailgun.

    The Mailgun SDK is synchronous, so requests run in the thread pool.
    """

    def __init__(self, config: dict):
        self.domain = config["mailgun_domain"]
        self.sender_email = config["sender_email"]
        self.client = Client(auth=("api", config["mailgun_api_key"]))

    def _message(
        self, to: str, text: str, subject: str, tag: Optional[str], reply_to: Optional[str]
    ) -> Dict[str, str]:
        data = {
            "from": self.sender_email,
            "to": to,
            "subject": subject,
            "text": text,
            "o:tag": tag or "registration",
        }
        if reply_to:
            data["h:Reply-To"] = reply_to
        return data

    async def send_email(
        self,
        to: str,
        text: str,
        subject: str,
        tag: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Dict:
        """
        Send one email

        Args:
            to: Recipient email address
            text: Email body text
            subject: Email subject
            tag: Mailgun tag used to group messages in delivery reports
            reply_to: Address replies should go to, e.g. the event's contact

        Returns:
            Dict containing the Mailgun API response

        Raises:
            RuntimeError: If Mailgun is unreachable or rejects the message
        """
        data = self._message(to, text, subject, tag, reply_to)
        try:
            req = await run_in_threadpool(
                self.client.messages.create, data=data, domain=self.domain
            )
            response = req.json()
        except Exception as e:
            logger.error(f"Failed to send email to {to}: {e}")
            raise RuntimeError(f"Email sending failed: {e}") from e

        if req.status_code != 200:
            logger.error(f"Mailgun API error: {req.status_code} - {response}")
            raise RuntimeError(f"Failed to send email: {response}")

        logger.info(f"Email {data['o:tag']} sent to {to}: {response.get('id', 'unknown')}")
        return response
