"""
Fire-and-forget notifications sent after a reservation decision committed.

A notifier is any callable ``(recipient, slot, booking, cancel_link)`` taking
plain dict snapshots. The app may plug one in through
``config["RESERVATION_NOTIFIER"]``; otherwise e-mail over SMTP is used.
Nothing raised or returned by a notifier reaches the caller.
"""
import logging

from flask import current_app, has_app_context

from utils.emailer import send_email

logger = logging.getLogger(__name__)


def email_notifier(recipient, slot, booking, cancel_link):
    if booking.get("status") == "CANCELLED":
        subject = "Your booking was cancelled"
        body = (
            f"Hello,\n\n"
            f"Your booking #{booking['id']} for {slot['start_time']} has been cancelled.\n"
            f"The time slot is available again.\n"
        )
    else:
        subject = "Booking confirmed"
        body = (
            f"Hello,\n\n"
            f"Your booking #{booking['id']} is confirmed for {slot['start_time']} "
            f"until {slot['end_time']}.\n\n"
            f"To cancel it, open the link below:\n{cancel_link}\n\n"
            f"This link is valid for 24 hours.\n"
        )

    ok, err = send_email(recipient, subject, body)
    if not ok:
        logger.warning("Notification not sent to booking_id=%s: %s", booking.get("id"), err)
    return ok


def resolve_notifier(notifier=None):
    if notifier is not None:
        return notifier
    if has_app_context():
        configured = current_app.config.get("RESERVATION_NOTIFIER")
        if configured is not None:
            return configured
    return email_notifier


def dispatch(recipient, slot, booking, cancel_link=None, notifier=None):
    sink = resolve_notifier(notifier)
    try:
        sink(recipient, slot, booking, cancel_link)
    except Exception:
        # the reservation is already committed
        logger.exception("Notification failed for booking_id=%s", booking.get("id"))
