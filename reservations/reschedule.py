"""
Reschedule coordinator: moves a CONFIRMED booking to another OPEN slot of
the same service in one transaction (rebind booking, release old, claim new).

If the new slot is claimed by someone else first, the whole transaction rolls
back, release included, and the booking stays on its original slot.
"""
import logging

from sqlalchemy import update

from models import db
from models.booking import Booking, BookingStatus
from models.slot import SlotStatus
from reservations import engine, ledger, policy, tokens
from reservations.errors import BadRequest, Conflict, Forbidden, NotFound
from reservations.transaction import atomic
from utils.audit import log_event
from utils.clock import get_clock

logger = logging.getLogger(__name__)


def _rebind(booking_id, old_slot_id, new_slot_id) -> bool:
    result = db.session.execute(
        update(Booking)
        .where(
            Booking.id == booking_id,
            Booking.status == BookingStatus.CONFIRMED,
            Booking.slot_id == old_slot_id,
        )
        .values(slot_id=new_slot_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def reschedule_reservation(requester, booking_id, new_slot_id, clock=None, notifier=None):
    if not booking_id or not new_slot_id:
        raise BadRequest("booking_id and slot_id are required")

    now = (clock or get_clock())()
    old_slot_id = None

    try:
        with atomic("reservation reschedule"):
            booking = engine.load_booking(booking_id)
            if booking is None:
                raise NotFound("Booking not found")
            old_slot = ledger.lookup(booking.slot_id)
            if old_slot is None:
                raise NotFound("Current slot not found")
            if not policy.can_act(requester, booking.client_id, old_slot.provider_id):
                raise Forbidden("You cannot reschedule this booking")
            if booking.status != BookingStatus.CONFIRMED:
                raise BadRequest("Only confirmed bookings can be rescheduled")
            old_slot_id = old_slot.id

            if new_slot_id == old_slot.id:
                raise BadRequest("Booking already holds this slot")
            new_slot = ledger.lookup(new_slot_id)
            if new_slot is None:
                raise NotFound("New slot not found")
            if new_slot.service_id != old_slot.service_id:
                raise BadRequest("New slot must be for the same service")
            if new_slot.status != SlotStatus.OPEN:
                raise Conflict("New slot is not available")
            if new_slot.start_time < now:
                raise BadRequest("Cannot move a booking to a past slot")
            engine.ensure_client_free(booking.client_id, new_slot.start_time, exclude_booking_id=booking.id)

            # booking row first, then slots, same lock order as cancel
            if not _rebind(booking.id, old_slot.id, new_slot.id):
                raise Conflict("Booking changed while rescheduling, try again")
            ledger.release(old_slot.id)
            if not ledger.claim(new_slot.id, booking.id):
                raise Conflict("New slot is not available")

            # the old link pointed at the old time; mail a fresh one
            token = tokens.issue(booking, now)
    except Conflict:
        log_event("BOOKING_FAIL_RESCHEDULE", user_id=requester.user_id, entity="booking", entity_id=booking_id,
                  metadata={"slot_id": new_slot_id})
        raise

    logger.info("Booking %s moved from slot %s to slot %s", booking_id, old_slot_id, new_slot_id)
    log_event(
        "BOOKING_RESCHEDULE",
        user_id=requester.user_id,
        entity="booking",
        entity_id=booking_id,
        metadata={"from_slot_id": old_slot_id, "to_slot_id": new_slot_id},
    )
    engine.notify_confirmed(booking, token, notifier)
    return booking
