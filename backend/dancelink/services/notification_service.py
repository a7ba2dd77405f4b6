"""
Booking emails.

Delivery is best effort: send_email logs and returns False on any failure,
and the services only call these after their unit of work has committed, so
a broken mail server can never undo a confirmed payment or a cancellation.
"""

from decimal import Decimal
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Awaitable, Optional

import aiosmtplib

from dancelink.core.config import Settings
from dancelink.core.logging import get_logger
from dancelink.domain.entities import Booking, DanceClass, Event, User

logger = get_logger(__name__)


def _item_details(item) -> dict:
    details = {
        "title": item.title,
        "type": item.item_type.value,
        "startDate": item.start_date.isoformat(),
        "endDate": item.end_date.isoformat() if item.end_date else None,
        "venue": None,
    }
    if item.venue_name:
        details["venue"] = {"name": item.venue_name, "address": item.venue_address, "city": item.venue_city}
    if isinstance(item, DanceClass):
        details["instructor"] = item.instructor_name
    elif isinstance(item, Event):
        details["organizer"] = item.organizer_name
    return details


class NotificationService:
    def __init__(self, settings: Settings):
        self.provider = settings.EMAIL_PROVIDER
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.sender = settings.EMAIL_FROM
        self.frontend_url = settings.FRONTEND_URL

    async def send_email(self, to_email: str, subject: str, html_content: str, data: Optional[dict] = None) -> bool:
        """Send one message through the configured transport. Never raises."""
        if self.provider != "smtp":
            logger.info("email_logged", to=to_email, subject=subject, data=data)
            return True

        if not self.smtp_user or not self.smtp_password:
            logger.warning("smtp_not_configured", to=to_email, subject=subject)
            return False

        message = MIMEMultipart("alternative")
        message["From"] = self.sender
        message["To"] = to_email
        message["Subject"] = subject
        message.attach(MIMEText(html_content, "html"))

        try:
            await aiosmtplib.send(
                message,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.smtp_user,
                password=self.smtp_password,
                start_tls=True,
            )
            return True
        except Exception as e:
            logger.error("email_send_failed", to=to_email, subject=subject, error=str(e))
            return False

    def _wrap(self, heading: str, body: str) -> str:
        return f"""
        <html>
        <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h1 style="color: #7C3AED;">{heading}</h1>
            {body}
            <p>See you on the dance floor,<br>The DanceLink Team</p>
        </body>
        </html>
        """

    async def send_booking_confirmation(self, user: User, booking: Booking, item) -> bool:
        data = {
            "user": {"name": user.full_name, "email": user.email},
            "booking": {
                "confirmationCode": booking.confirmation_code,
                "totalAmount": float(booking.total_amount),
                "amountPaid": float(booking.amount_paid),
                "paymentMethod": booking.payment_method,
                "bookingDate": booking.created_at.isoformat(),
            },
            "item": _item_details(item),
        }
        body = f"""
            <p>Hi {user.full_name},</p>
            <p>Your spot in <strong>{item.title}</strong> is confirmed.</p>
            <p>Confirmation code: <strong>{booking.confirmation_code}</strong><br>
               Amount paid: ${booking.amount_paid:.2f}<br>
               Starts: {item.start_date:%A %d %B %Y, %H:%M}</p>
        """
        return await self.send_email(
            user.email, f"Booking confirmed: {item.title}", self._wrap("You're booked!", body), data
        )

    async def send_cancellation(self, user: User, booking: Booking, item, refund_amount: Decimal) -> bool:
        title = item.title if item else "your booking"
        refund_line = (
            f"A refund of ${refund_amount:.2f} has been requested and will be processed shortly."
            if refund_amount > 0
            else "No refund applies to this cancellation."
        )
        body = f"""
            <p>Hi {user.full_name},</p>
            <p>Your booking <strong>{booking.confirmation_code}</strong> for {title} has been cancelled.</p>
            <p>{refund_line}</p>
        """
        data = {"confirmationCode": booking.confirmation_code, "refundAmount": float(refund_amount)}
        return await self.send_email(user.email, f"Booking cancelled: {title}", self._wrap("Booking cancelled", body), data)

    async def send_reschedule(self, user: User, booking: Booking, old_item, new_item, amount_owed: Decimal) -> bool:
        old_title = old_item.title if old_item else "your previous class"
        body = f"""
            <p>Hi {user.full_name},</p>
            <p>Your booking <strong>{booking.confirmation_code}</strong> has moved from {old_title}
               to <strong>{new_item.title}</strong> on {new_item.start_date:%A %d %B %Y, %H:%M}.</p>
        """
        if amount_owed > 0:
            body += f"<p>An additional payment of ${amount_owed:.2f} is required.</p>"
        elif amount_owed < 0:
            body += f"<p>A refund of ${-amount_owed:.2f} has been requested.</p>"
        data = {
            "confirmationCode": booking.confirmation_code,
            "newClassId": new_item.id,
            "amountOwed": float(amount_owed),
        }
        return await self.send_email(
            user.email, f"Booking rescheduled: {new_item.title}", self._wrap("Booking rescheduled", body), data
        )

    async def send_waitlist_offer(self, user: User, booking: Booking, item) -> bool:
        pay_url = f"{self.frontend_url}/bookings/{booking.id}/pay"
        body = f"""
            <p>Hi {user.full_name},</p>
            <p>A spot opened up in <strong>{item.title}</strong> and it is being held for you.</p>
            <p style="margin: 30px 0;">
                <a href="{pay_url}"
                   style="background-color: #7C3AED; color: white; padding: 12px 24px;
                          text-decoration: none; border-radius: 6px;">
                    Complete your booking
                </a>
            </p>
            <p>Amount due: ${booking.total_amount:.2f}</p>
        """
        data = {"bookingId": booking.id, "confirmationCode": booking.confirmation_code, "payUrl": pay_url}
        return await self.send_email(user.email, f"A spot opened up: {item.title}", self._wrap("You're off the waitlist", body), data)


async def deliver(send: Awaitable[bool], **context) -> None:
    """Await a send_* call; a failure is logged and dropped."""
    try:
        await send
    except Exception as e:
        logger.error("notification_failed", error=str(e), **context)
