from __future__ import annotations
import logging
import os
import smtplib
from email.mime.text import MIMEText
from email.utils import formataddr

from . import models
from .config import settings

logger = logging.getLogger(__name__)

SMTP_HOST = os.getenv("SMTP_HOST", "localhost")
SMTP_PORT = int(os.getenv("SMTP_PORT", "25"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASS = os.getenv("SMTP_PASS")
SMTP_FROM = os.getenv("SMTP_FROM", "no-reply@tablebook.local")
SMTP_FROM_NAME = os.getenv("SMTP_FROM_NAME", "TableBook")


def _send_mail(to: str, subject: str, body: str) -> bool:
    if not settings.notifications_enabled:
        logger.debug("Notifications disabled, not sending '%s' to %s", subject, to)
        return True
    try:
        msg = MIMEText(body)
        msg["Subject"] = subject
        msg["From"] = formataddr((SMTP_FROM_NAME, SMTP_FROM))
        msg["To"] = to
        if SMTP_USER and SMTP_PASS:
            with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=10) as s:
                s.starttls()
                s.login(SMTP_USER, SMTP_PASS)
                s.sendmail(SMTP_FROM, [to], msg.as_string())
        else:
            # Attempt unauthenticated localhost relay
            with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=10) as s:
                s.sendmail(SMTP_FROM, [to], msg.as_string())
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Failed to send '%s' to %s: %s", subject, to, e)
        return False


def _valid_address(address: str | None) -> bool:
    address = (address or "").strip()
    return bool(address) and address.lower() != "n/a"


def _booking_lines(reservation: models.Reservation) -> str:
    lines = [
        f"Date: {reservation.date:%A, %B %d %Y}",
        f"Time: {reservation.time}",
        f"Party Size: {reservation.party_size}",
    ]
    if reservation.table is not None:
        lines.append(f"Table: {reservation.table.table_number}")
    if reservation.occasion:
        lines.append(f"Occasion: {reservation.occasion}")
    if reservation.special_request:
        lines.append(f"Special Request: {reservation.special_request}")
    return "\n".join(lines)


def send_owner_notification(restaurant: models.Restaurant, reservation: models.Reservation) -> bool:
    """Tell the restaurant about a new booking. Returns False if sending fails."""
    if not _valid_address(restaurant.owner_email):
        return False
    body = (
        f"New reservation for {restaurant.name}\n\n"
        f"Customer: {reservation.name}\n"
        f"Email: {reservation.email}\n"
        f"{_booking_lines(reservation)}\n"
    )
    return _send_mail(restaurant.owner_email, f"New Reservation at {restaurant.name}", body)


def send_confirmation_email(restaurant: models.Restaurant, reservation: models.Reservation) -> bool:
    """Best-effort: if email present, try to send a confirmation.
    Never raises; returns False if sending fails.
    """
    if not _valid_address(reservation.email):
        return False
    body = (
        f"Hello {reservation.name},\n\n"
        f"Your booking is confirmed at {restaurant.name}.\n"
        f"{_booking_lines(reservation)}\n\n"
        f"We look forward to serving you!\n"
        f"- {restaurant.name}"
    )
    return _send_mail(reservation.email, f"Your Reservation at {restaurant.name}", body)


def send_cancellation_email(restaurant: models.Restaurant, reservation: models.Reservation) -> bool:
    if not _valid_address(reservation.email):
        return False
    body = (
        f"Hello {reservation.name},\n\n"
        f"Your reservation at {restaurant.name} has been cancelled.\n"
        f"{_booking_lines(reservation)}\n\n"
        f"We hope to see you another time.\n"
        f"- {restaurant.name}"
    )
    return _send_mail(reservation.email, f"Reservation Cancelled - {restaurant.name}", body)


def send_reminder_email(restaurant: models.Restaurant, reservation: models.Reservation) -> bool:
    if not _valid_address(reservation.email):
        return False
    body = (
        f"Hello {reservation.name},\n\n"
        f"A reminder that your table at {restaurant.name} is coming up.\n"
        f"{_booking_lines(reservation)}\n"
    )
    if restaurant.address:
        body += f"Address: {restaurant.address}\n"
    return _send_mail(reservation.email, f"Reminder: Your Reservation at {restaurant.name}", body)


def send_thank_you_email(restaurant: models.Restaurant, reservation: models.Reservation) -> bool:
    if not _valid_address(reservation.email):
        return False
    body = (
        f"Hello {reservation.name},\n\n"
        f"Thank you for dining with us at {restaurant.name} on {reservation.date:%A, %B %d}.\n"
        f"We hope you enjoyed your visit and look forward to welcoming you again.\n"
        f"- {restaurant.name}"
    )
    return _send_mail(reservation.email, f"Thank you for visiting {restaurant.name}", body)


def send_marketing_email(restaurant: models.Restaurant, customer: models.Customer,
                         subject: str, message: str) -> bool:
    if not _valid_address(customer.email):
        return False
    body = f"Dear {customer.name or 'guest'},\n\n{message}\n\n- {restaurant.name}\n"
    if restaurant.phone:
        body += f"Phone: {restaurant.phone}\n"
    if restaurant.owner_email:
        body += f"Email: {restaurant.owner_email}\n"
    return _send_mail(customer.email, subject, body)
