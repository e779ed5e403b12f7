"""
Slot ledger: storage and conditional mutation of slot rows.

``claim`` and ``release`` are the only writers of ``Slot.status`` and
``Slot.booking_id``. Both are single UPDATE statements; ``claim`` carries the
``status = 'OPEN'`` precondition in its WHERE clause so that two concurrent
claims on one slot can never both succeed. Neither commits: they run inside
the caller's transaction.
"""
import logging

from sqlalchemy import delete, update

from models import db
from models.booking import Booking
from models.service import Service
from models.slot import Slot, SlotStatus
from models.staff import Staff
from reservations import policy
from reservations.errors import BadRequest, Conflict, Forbidden, NotFound
from reservations.transaction import atomic

logger = logging.getLogger(__name__)


def lookup(slot_id):
    """Fresh read of a slot row, or None."""
    if slot_id is None:
        return None
    return db.session.get(Slot, slot_id, populate_existing=True)


def claim(slot_id, booking_id) -> bool:
    """OPEN -> BOOKED compare-and-swap. False means another claim won."""
    result = db.session.execute(
        update(Slot)
        .where(Slot.id == slot_id, Slot.status == SlotStatus.OPEN)
        .values(status=SlotStatus.BOOKED, booking_id=booking_id)
        .execution_options(synchronize_session=False)
    )
    claimed = result.rowcount == 1
    if not claimed:
        logger.info("Claim lost slot_id=%s booking_id=%s", slot_id, booking_id)
    return claimed


def release(slot_id) -> bool:
    # Callers authorize through the engine before getting here
    db.session.execute(
        update(Slot)
        .where(Slot.id == slot_id)
        .values(status=SlotStatus.OPEN, booking_id=None)
        .execution_options(synchronize_session=False)
    )
    return True


# ---------- slot management ----------

def create_slot(requester, service_id, start_time, end_time, staff_id=None):
    if not service_id or start_time is None or end_time is None:
        raise BadRequest("service_id, start_time, end_time are required")
    if end_time <= start_time:
        raise BadRequest("end_time must be after start_time")

    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFound("Service not found")
    if not policy.can_manage_slots(requester, service.provider_id):
        raise Forbidden("Only the service's provider can publish slots")

    if staff_id is not None:
        staff = db.session.get(Staff, staff_id)
        if staff is None or staff.provider_id != service.provider_id:
            raise NotFound("Staff member not found for this provider")

    slot = Slot(
        provider_id=service.provider_id,
        service_id=service.id,
        staff_id=staff_id,
        start_time=start_time,
        end_time=end_time,
        status=SlotStatus.OPEN,
    )
    with atomic("slot create", conflict_message="Slot already exists for that provider and start time"):
        db.session.add(slot)
    return slot


def delete_slot(requester, slot_id):
    slot = lookup(slot_id)
    if slot is None:
        raise NotFound("Slot not found")
    if not policy.can_manage_slots(requester, slot.provider_id):
        raise Forbidden()

    db.session.expunge(slot)
    with atomic("slot delete", conflict_message="Slot has booking history and cannot be deleted"):
        result = db.session.execute(
            delete(Slot)
            .where(Slot.id == slot_id, Slot.status == SlotStatus.OPEN)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise Conflict("Slot is booked; cancel the booking first")
        if Booking.query.filter_by(slot_id=slot_id).first() is not None:
            raise Conflict("Slot has booking history and cannot be deleted")
    return slot_id


def list_slots(provider_id=None, service_id=None, status=None, start_from=None, start_to=None):
    q = Slot.query
    if provider_id:
        q = q.filter(Slot.provider_id == provider_id)
    if service_id:
        q = q.filter(Slot.service_id == service_id)
    if status:
        status = status.upper()
        if status not in (SlotStatus.OPEN, SlotStatus.BOOKED):
            raise BadRequest("status must be OPEN or BOOKED")
        q = q.filter(Slot.status == status)
    if start_from is not None:
        q = q.filter(Slot.start_time >= start_from)
    if start_to is not None:
        q = q.filter(Slot.start_time < start_to)
    return q.order_by(Slot.start_time.asc()).all()
