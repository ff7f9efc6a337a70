import asyncio
from html import escape
from typing import Optional

import resend
from pydantic import BaseModel

from booking_sync.core.config import settings
from booking_sync.core.errors import EmailDeliveryError
from booking_sync.core.logger import logger
from booking_sync.models.booking import Booking


class EmailResult(BaseModel):
    ok: bool
    simulated: bool = False
    message_id: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 1


class EmailService:
    """
    Email Delivery Service collaborator backed by Resend.
    Without an API key it only logs what it would have sent.
    """

    def __init__(self, api_key: str = "", from_address: str = "", timeout: float = 10.0):
        self.api_key = api_key
        self.from_address = from_address or settings.EMAIL_FROM
        self.timeout = timeout

    @property
    def simulated(self) -> bool:
        return not self.api_key

    def _send_sync(self, recipient: str, subject: str, html_body: str) -> dict:
        resend.api_key = self.api_key
        return resend.Emails.send({
            "from": self.from_address,
            "to": [recipient],
            "subject": subject,
            "html": html_body,
        })

    async def send(self, recipient: str, subject: str, html_body: str) -> EmailResult:
        """
        Sends one email. Never raises: failures and timeouts come back as
        EmailResult(ok=False) for the caller to inspect.
        """
        if not recipient:
            return EmailResult(ok=False, error="No recipient address")

        if self.simulated:
            logger.warning(f"⚠️ RESEND_API_KEY is not set. Simulating email to {recipient}: '{subject}'")
            return EmailResult(ok=True, simulated=True)

        try:
            logger.info(f"📧 Sending email via Resend to: {recipient}")
            response = await asyncio.wait_for(
                asyncio.to_thread(self._send_sync, recipient, subject, html_body),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"❌ Email to {recipient} timed out after {self.timeout}s")
            return EmailResult(ok=False, error=f"Timed out after {self.timeout}s")
        except Exception as e:
            logger.error(f"❌ Email send error to {recipient}: {e}")
            return EmailResult(ok=False, error=str(e))

        message_id = response.get("id") if isinstance(response, dict) else None
        logger.info(f"✅ Email sent to {recipient} (id: {message_id})")
        return EmailResult(ok=True, message_id=message_id)


async def deliver_with_retry(email_service: EmailService, recipient: str, subject: str, html_body: str,
                             max_retries: int = 3, backoff: float = 1.0) -> EmailResult:
    """Retries failed sends with exponential backoff; returns the last result."""
    attempts = max(1, max_retries)
    result = EmailResult(ok=False, error="Not attempted", attempts=0)
    for attempt in range(1, attempts + 1):
        result = await email_service.send(recipient, subject, html_body)
        result.attempts = attempt
        if result.ok:
            return result
        if attempt < attempts:
            await asyncio.sleep(backoff * (2 ** (attempt - 1)))

    logger.error(f"❌ Giving up on email to {recipient} after {attempts} attempt(s): {result.error}")
    return result


def render_confirmation(name: str, service_name: str, date: str, time: str, price) -> str:
    if isinstance(price, float) and price.is_integer():
        price = int(price)
    rows = [("Service", service_name), ("Date", date), ("Time", time), ("Price", f"${price}")]
    table = "".join(
        f'<tr><td style="padding: 10px; border-bottom: 1px solid #eee; font-weight: bold; color: #666;">{label}</td>'
        f'<td style="padding: 10px; border-bottom: 1px solid #eee; text-align: right;">{escape(str(value))}</td></tr>'
        for label, value in rows
    )
    return (
        '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        '<h1 style="color: #C5A059; text-transform: uppercase; letter-spacing: 1px;">Good Vibes</h1>'
        '<h2 style="color: #1A1A1A;">Booking Confirmation</h2>'
        f'<p>Hi {escape(name)},</p>'
        '<p>Your appointment at Good Vibes has been confirmed. Here are the details:</p>'
        f'<table style="width: 100%; border-collapse: collapse; margin-top: 20px;">{table}</table>'
        '<p style="margin-top: 30px; color: #888; font-size: 12px; text-align: center;">'
        'If you need to cancel or reschedule, please contact us at least 24 hours in advance.</p>'
        '</div>'
    )


CONFIRMATION_SUBJECT = "Booking Confirmation - Good Vibes"


async def send_booking_confirmation(email_service: EmailService, booking: Booking,
                                    max_retries: int = 3, backoff: float = 1.0) -> EmailResult:
    """Background task run after a booking is stored. Outcome is only logged."""
    if not booking.customerEmail:
        logger.info(f"ℹ️ Booking {booking.id} has no email address, confirmation skipped.")
        return EmailResult(ok=False, error="No recipient address", attempts=0)

    html_body = render_confirmation(
        booking.customerName,
        booking.serviceName or "Appointment",
        booking.date,
        booking.startTime,
        booking.price if booking.price is not None else "-",
    )
    return await deliver_with_retry(email_service, booking.customerEmail, CONFIRMATION_SUBJECT, html_body,
                                    max_retries=max_retries, backoff=backoff)


def raise_for_result(result: EmailResult):
    if not result.ok:
        raise EmailDeliveryError(result.error or "Email delivery failed")
