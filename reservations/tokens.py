"""
Cancellation token authority.

A booking carries one random, URL-safe token that lets whoever holds the
e-mailed link cancel exactly that booking, without logging in, until the
token expires. Redemption goes through the engine's cancel transition, so a
second redemption reports "already cancelled" instead of mutating again.
"""
import logging
import secrets
from datetime import timedelta

from flask import current_app, has_app_context

from models.booking import Booking
from reservations import engine
from reservations.errors import BadRequest
from reservations.transaction import atomic
from utils.audit import log_event
from utils.clock import get_clock

logger = logging.getLogger(__name__)

DEFAULT_TTL_HOURS = 24
DEFAULT_TOKEN_BYTES = 32
TOKEN_CANCELLER = "TOKEN"


def _config(key, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def issue(booking, now):
    """Sets a fresh token and its expiry on the booking and returns the token."""
    token = secrets.token_urlsafe(_config("CANCEL_TOKEN_BYTES", DEFAULT_TOKEN_BYTES))
    ttl_hours = _config("CANCEL_TOKEN_TTL_HOURS", DEFAULT_TTL_HOURS)
    booking.cancel_token = token
    booking.cancel_token_expires_at = now + timedelta(hours=ttl_hours)
    return token


def cancel_link(token):
    base = (_config("FRONTEND_URL", "") or "").rstrip("/")
    return f"{base}/cancel?token={token}"


def redeem(token, clock=None, notifier=None):
    """
    Cancels the booking the token was issued for.

    Returns an ``engine.CancelOutcome``. Raises ``BadRequest`` when the token
    is missing, unknown or past its expiry; nothing is written in that case.
    """
    token = (token or "").strip()
    if not token:
        raise BadRequest("Cancellation token is required")

    now = (clock or get_clock())()
    with atomic("token cancel"):
        booking = Booking.query.filter_by(cancel_token=token).first()
        if booking is None:
            raise BadRequest("Invalid or expired cancellation token")
        if now > booking.cancel_token_expires_at:
            logger.info("Expired cancellation token for booking_id=%s", booking.id)
            raise BadRequest("Invalid or expired cancellation token")

        outcome = engine.cancel_locked(booking, now, cancelled_by=TOKEN_CANCELLER)

    if not outcome.already_cancelled:
        log_event("BOOKING_CANCEL_TOKEN", entity="booking", entity_id=outcome.booking.id)
        engine.notify_cancelled(outcome.booking, notifier)
    return outcome
