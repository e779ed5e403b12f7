from datetime import datetime, timedelta, timezone

from flask import Blueprint, request, jsonify, g

from reservations import engine, ledger, reschedule, tokens
from reservations.errors import BadRequest
from security.rbac import require_roles
from utils.auth_context import login_required
from utils.audit import log_event

booking_bp = Blueprint("booking", __name__)

def _parse_iso(dt_str: str):
    # Expect ISO format like "2026-01-20T18:00:00"
    try:
        value = datetime.fromisoformat(dt_str)
    except (TypeError, ValueError):
        raise BadRequest("Invalid datetime format. Use ISO e.g. 2026-01-20T18:00:00")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def _int_field(data: dict, key: str, required=True):
    value = data.get(key)
    if value in (None, ""):
        if required:
            raise BadRequest(f"{key} required")
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadRequest(f"{key} must be an integer")


# ---------- PROVIDER/ADMIN: publish slots ----------
@booking_bp.post("/slots")
@require_roles("PROVIDER", "ADMIN")
def create_slot():
    data = request.get_json(silent=True) or {}
    service_id = _int_field(data, "service_id")
    staff_id = _int_field(data, "staff_id", required=False)
    if not data.get("start_time") or not data.get("end_time"):
        return jsonify(error="service_id, start_time, end_time are required"), 400

    slot = ledger.create_slot(
        g.requester,
        service_id,
        _parse_iso(data["start_time"]),
        _parse_iso(data["end_time"]),
        staff_id=staff_id,
    )

    log_event("SLOT_CREATE", user_id=g.user.id, entity="slot", entity_id=slot.id)
    return jsonify(slot.to_dict()), 201


@booking_bp.get("/slots")
@login_required
def list_slots():
    # optional filters: provider_id, service_id, status, date (YYYY-MM-DD)
    date_str = request.args.get("date")
    start_from = start_to = None
    if date_str:
        try:
            day = datetime.fromisoformat(date_str)
        except ValueError:
            return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400
        start_from = datetime(day.year, day.month, day.day)
        start_to = start_from + timedelta(days=1)

    slots = ledger.list_slots(
        provider_id=request.args.get("provider_id", type=int),
        service_id=request.args.get("service_id", type=int),
        status=request.args.get("status"),
        start_from=start_from,
        start_to=start_to,
    )
    return jsonify([s.to_dict() for s in slots]), 200


@booking_bp.delete("/slots/<int:slot_id>")
@require_roles("PROVIDER", "ADMIN")
def delete_slot(slot_id: int):
    ledger.delete_slot(g.requester, slot_id)
    log_event("SLOT_DELETE", user_id=g.user.id, entity="slot", entity_id=slot_id)
    return jsonify(message="Slot deleted"), 200


# ---------- book a slot (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/bookings")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    slot_id = _int_field(data, "slot_id")
    client_id = _int_field(data, "client_id", required=False) or g.user.id

    booking = engine.create_reservation(g.requester, client_id, slot_id)
    return jsonify(booking.to_dict()), 201


@booking_bp.get("/bookings/me")
@login_required
def my_bookings():
    status = request.args.get("status")  # CONFIRMED/CANCELLED
    rows = engine.list_client_bookings(g.user.id, status=status)
    return jsonify([
        {**b.to_dict(), "slot": s.to_dict()}
        for b, s in rows
    ]), 200


@booking_bp.get("/bookings/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    booking, slot = engine.get_booking(g.requester, booking_id)
    out = booking.to_dict()
    out["slot"] = slot.to_dict() if slot else None
    return jsonify(out), 200


@booking_bp.post("/bookings/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()[:120] or None

    outcome = engine.cancel_reservation(g.requester, booking_id, reason=reason)
    message = "Booking already cancelled" if outcome.already_cancelled else "Cancelled"
    return jsonify(message=message, booking_id=booking_id, already_cancelled=outcome.already_cancelled), 200


@booking_bp.post("/bookings/<int:booking_id>/reschedule")
@login_required
def reschedule_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    new_slot_id = _int_field(data, "slot_id")

    booking = reschedule.reschedule_reservation(g.requester, booking_id, new_slot_id)
    return jsonify(booking.to_dict()), 200


# ---------- e-mailed cancel link (no login) ----------
@booking_bp.route("/bookings/cancel", methods=["GET", "POST"])
def cancel_by_token():
    data = request.get_json(silent=True) or {}
    token = request.args.get("token") or data.get("token")

    outcome = tokens.redeem(token)
    message = "Booking already cancelled" if outcome.already_cancelled else "Cancelled"
    return jsonify(message=message, booking_id=outcome.booking.id, already_cancelled=outcome.already_cancelled), 200
