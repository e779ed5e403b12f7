"""
Reservation engine: the create / cancel state machine.

    OPEN --create (claim succeeds)--> BOOKED
    BOOKED --cancel--> OPEN

Each operation runs as one transaction spanning the slot row and the booking
row. The pre-check on slot status is only a fast path; the authoritative
guard against double booking is the conditional ``ledger.claim``.
Audit rows and notifications are written after commit.
"""
import logging
from collections import namedtuple

from sqlalchemy import update

from models import db
from models.booking import Booking, BookingStatus
from models.slot import Slot, SlotStatus
from models.user import User
from reservations import ledger, notifications, policy, tokens
from reservations.errors import BadRequest, Conflict, Forbidden, NotFound
from reservations.transaction import atomic
from utils.audit import log_event
from utils.clock import get_clock

logger = logging.getLogger(__name__)

CancelOutcome = namedtuple("CancelOutcome", ["booking", "already_cancelled"])


def load_booking(booking_id):
    if booking_id is None:
        return None
    return db.session.get(Booking, booking_id, populate_existing=True)


def ensure_client_free(client_id, start_time, exclude_booking_id=None):
    q = (
        db.session.query(Booking.id)
        .join(Slot, Slot.id == Booking.slot_id)
        .filter(
            Booking.client_id == client_id,
            Booking.status == BookingStatus.CONFIRMED,
            Slot.start_time == start_time,
        )
    )
    if exclude_booking_id is not None:
        q = q.filter(Booking.id != exclude_booking_id)
    if q.first() is not None:
        raise BadRequest("Client already has a booking at this time")


# ---------- create ----------

def create_reservation(requester, target_client_id, slot_id, clock=None, notifier=None):
    if not slot_id or not target_client_id:
        raise BadRequest("slot_id and client_id are required")

    now = (clock or get_clock())()

    try:
        with atomic("reservation create"):
            slot = ledger.lookup(slot_id)
            if slot is None:
                raise NotFound("Slot not found")
            if not policy.can_act(requester, target_client_id, slot.provider_id):
                raise Forbidden("Clients can only book for themselves")
            if db.session.get(User, target_client_id) is None:
                raise NotFound("Client not found")
            if slot.start_time < now:
                raise BadRequest("Cannot book past slots")
            if slot.status != SlotStatus.OPEN:
                raise Conflict("Slot already booked")
            ensure_client_free(target_client_id, slot.start_time)

            booking = Booking(
                client_id=target_client_id,
                slot_id=slot.id,
                status=BookingStatus.CONFIRMED,
                created_at=now,
            )
            token = tokens.issue(booking, now)
            db.session.add(booking)
            db.session.flush()

            # read-then-claim window: the claim is the real check
            if not ledger.claim(slot.id, booking.id):
                raise Conflict("Slot already booked")
    except Conflict:
        log_event("BOOKING_FAIL_ALREADY_BOOKED", user_id=requester.user_id, entity="slot", entity_id=slot_id)
        raise

    log_event(
        "BOOKING_CREATE",
        user_id=requester.user_id,
        entity="booking",
        entity_id=booking.id,
        metadata={"slot_id": slot_id, "client_id": target_client_id},
    )
    notify_confirmed(booking, token, notifier)
    return booking


# ---------- cancel ----------

def _mark_cancelled(booking, now, reason, cancelled_by) -> bool:
    # conditional on the booking still being CONFIRMED on the slot we release
    result = db.session.execute(
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.status == BookingStatus.CONFIRMED,
            Booking.slot_id == booking.slot_id,
        )
        .values(
            status=BookingStatus.CANCELLED,
            cancelled_at=now,
            cancel_reason=reason,
            cancelled_by=cancelled_by,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def cancel_locked(booking, now, reason=None, cancelled_by=None):
    """
    Cancel transition for a booking already loaded inside an open
    transaction. Idempotent: a CANCELLED booking is reported, not touched.
    """
    if booking.status == BookingStatus.CANCELLED:
        return CancelOutcome(booking, True)

    slot_id = booking.slot_id
    if not _mark_cancelled(booking, now, reason, cancelled_by):
        db.session.refresh(booking)
        if booking.status == BookingStatus.CANCELLED:
            return CancelOutcome(booking, True)
        raise Conflict("Booking changed while cancelling, try again")

    ledger.release(slot_id)
    return CancelOutcome(booking, False)


def cancel_reservation(requester, booking_id, reason=None, clock=None, notifier=None):
    if not booking_id:
        raise BadRequest("booking_id required")

    now = (clock or get_clock())()
    with atomic("reservation cancel"):
        booking = load_booking(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        slot = ledger.lookup(booking.slot_id)
        if not policy.can_act(requester, booking.client_id, slot.provider_id if slot else None):
            raise Forbidden("You cannot cancel this booking")

        outcome = cancel_locked(booking, now, reason=reason, cancelled_by=requester.role)

    if not outcome.already_cancelled:
        log_event(
            "BOOKING_CANCEL",
            user_id=requester.user_id,
            entity="booking",
            entity_id=booking_id,
            metadata={"reason": reason},
        )
        notify_cancelled(outcome.booking, notifier)
    return outcome


# ---------- reads ----------

def get_booking(requester, booking_id):
    booking = load_booking(booking_id)
    if booking is None:
        raise NotFound("Booking not found")
    slot = ledger.lookup(booking.slot_id)
    if not policy.can_act(requester, booking.client_id, slot.provider_id if slot else None):
        raise Forbidden("You cannot view this booking")
    return booking, slot


def list_client_bookings(client_id, status=None):
    q = (
        db.session.query(Booking, Slot)
        .join(Slot, Slot.id == Booking.slot_id)
        .filter(Booking.client_id == client_id)
    )
    if status:
        q = q.filter(Booking.status == status.upper())
    return q.order_by(Slot.start_time.desc()).all()


# ---------- notifications (after commit) ----------

def _recipient(booking):
    client = db.session.get(User, booking.client_id)
    return client.email if client else None


def _snapshots(booking):
    slot = db.session.get(Slot, booking.slot_id)
    return (
        _recipient(booking),
        slot.to_dict() if slot else {"id": booking.slot_id},
        booking.to_dict(),
    )


def _notify(booking, cancel_link, notifier):
    # runs after commit; nothing here may fail the reservation
    try:
        recipient, slot, snapshot = _snapshots(booking)
    except Exception:
        logger.exception("Could not build reservation notification")
        return
    notifications.dispatch(recipient, slot, snapshot, cancel_link=cancel_link, notifier=notifier)


def notify_confirmed(booking, token, notifier=None):
    _notify(booking, tokens.cancel_link(token), notifier)


def notify_cancelled(booking, notifier=None):
    _notify(booking, None, notifier)
