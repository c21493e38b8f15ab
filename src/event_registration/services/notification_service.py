"""Notification emails for submissions and review decisions"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from event_registration.backends.email_client import EmailClient
from event_registration.models.event import Event
from event_registration.models.registration import Registration, RegistrationStatus
from event_registration.models.registration_config import RegistrationConfig

logger = logging.getLogger(__name__)


@dataclass
class RegistrationNotice:
    """Plain snapshot of what a notification needs.

    Built while the request's session is open; the emails go out from a
    background task after the response.
    """

    event_title: str
    vendor_email: Optional[str]
    participant_name: str
    participant_email: Optional[str]
    confirmation_number: Optional[str]
    status: RegistrationStatus
    payment_required: bool
    payment_amount: float
    payment_currency: Optional[str]
    review_remarks: Optional[str]
    to_vendor: bool
    to_participant: bool
    custom_message: Optional[str]

    @classmethod
    def build(
        cls, event: Event, config: Optional[RegistrationConfig], registration: Registration
    ) -> "RegistrationNotice":
        flags = config.notifications() if config else None
        return cls(
            event_title=event.title,
            vendor_email=event.contact_email,
            participant_name=registration.participant_name or "there",
            participant_email=registration.participant_email,
            confirmation_number=registration.confirmation_number,
            status=registration.status,
            payment_required=registration.payment_required,
            payment_amount=registration.payment_amount,
            payment_currency=registration.payment_currency,
            review_remarks=registration.review_remarks,
            to_vendor=flags.to_vendor if flags else False,
            to_participant=flags.to_participant if flags else True,
            custom_message=flags.custom_message if flags else None,
        )


class NotificationService:
    """Sends registration emails; every failure is logged and reported as False"""

    def __init__(self, email_client: Optional[EmailClient]):
        self.email_client = email_client

    async def notify_submission(self, notice: RegistrationNotice) -> Dict[str, bool]:
        """
        Email the participant and/or the vendor about a final submission,
        as the config's notification flags ask.

        Returns:
            Recipient role -> whether the email was sent
        """
        sent: Dict[str, bool] = {}
        if notice.to_participant and notice.participant_email:
            sent["participant"] = await self._send(
                notice.participant_email,
                self._participant_submission_email(notice),
                tag="registration-confirmation",
                reply_to=notice.vendor_email,
            )
        if notice.to_vendor and notice.vendor_email:
            sent["vendor"] = await self._send(
                notice.vendor_email,
                self._vendor_submission_email(notice),
                tag="registration-vendor",
            )
        return sent

    async def notify_review_decision(self, notice: RegistrationNotice) -> bool:
        if not notice.participant_email:
            logger.info("No participant email, skipping review notification")
            return False

        if notice.status == RegistrationStatus.APPROVED:
            subject = f"Your registration for {notice.event_title} is approved"
            outcome = "has been approved. We look forward to seeing you!"
        else:
            subject = f"Update on your registration for {notice.event_title}"
            outcome = "was not approved."

        body = f"""Hi {notice.participant_name},

Your registration {notice.confirmation_number} for {notice.event_title} {outcome}"""
        if notice.review_remarks:
            body += f"\n\nNote from the organizer:\n{notice.review_remarks}"
        body += "\n\nBest regards"

        return await self._send(
            notice.participant_email,
            {"subject": subject, "body": body},
            tag="registration-review",
            reply_to=notice.vendor_email,
        )

    def _participant_submission_email(self, notice: RegistrationNotice) -> Dict[str, str]:
        subject = f"Registration received for {notice.event_title}"
        body = f"""Hi {notice.participant_name},

Thanks for registering for {notice.event_title}!

Confirmation number: {notice.confirmation_number}"""

        if notice.status == RegistrationStatus.UNDER_REVIEW:
            body += "\n\nThe organizer reviews every registration and will get back to you."
        if notice.payment_required:
            body += (
                f"\n\nAmount due: {notice.payment_amount:.2f} "
                f"{(notice.payment_currency or '').upper()}"
            )
        if notice.custom_message:
            body += f"\n\n{notice.custom_message}"
        body += "\n\nBest regards"
        return {"subject": subject, "body": body}

    def _vendor_submission_email(self, notice: RegistrationNotice) -> Dict[str, str]:
        subject = f"New registration for {notice.event_title}"
        details = [f"Name: {notice.participant_name}"]
        if notice.participant_email:
            details.append(f"Email: {notice.participant_email}")
        details.append(f"Confirmation number: {notice.confirmation_number}")
        details.append(f"Status: {notice.status.value.replace('_', ' ')}")
        if notice.payment_required:
            details.append("Payment: pending")

        body = "You have a new registration for your event!\n\n" + "\n".join(details)
        return {"subject": subject, "body": body}

    async def _send(
        self,
        to_email: str,
        email_content: Dict[str, str],
        tag: str,
        reply_to: Optional[str] = None,
    ) -> bool:
        if self.email_client is None:
            logger.info(f"Email disabled, not notifying {to_email}")
            return False
        try:
            await self.email_client.send_email(
                to=to_email,
                text=email_content["body"],
                subject=email_content["subject"],
                tag=tag,
                reply_to=reply_to,
            )
            return True
        except RuntimeError as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            return False
