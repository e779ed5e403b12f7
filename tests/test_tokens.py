from datetime import timedelta

import pytest

from models import db
from models.audit_log import AuditLog
from models.booking import Booking, BookingStatus
from models.slot import Slot, SlotStatus
from reservations import engine, tokens
from reservations.errors import BadRequest


def _state(booking_id, slot_id):
    booking = db.session.get(Booking, booking_id, populate_existing=True)
    slot = db.session.get(Slot, slot_id, populate_existing=True)
    return booking, slot


@pytest.fixture
def booked(world):
    booking = engine.create_reservation(world.as_alice, world.alice.id, world.slots.morning.id)
    return db.session.get(Booking, booking.id)


def test_tokens_are_long_random_and_unique(world):
    b1 = engine.create_reservation(world.as_alice, world.alice.id, world.slots.morning.id)
    b2 = engine.create_reservation(world.as_carol, world.carol.id, world.slots.noon.id)

    t1 = db.session.get(Booking, b1.id).cancel_token
    t2 = db.session.get(Booking, b2.id).cancel_token
    assert t1 != t2
    assert len(t1) >= 43
    assert not t1.isdigit()


def test_redeem_cancels_and_reopens_slot(world, booked, notifier):
    slot_id = booked.slot_id
    outcome = tokens.redeem(booked.cancel_token)

    assert outcome.already_cancelled is False
    booking, slot = _state(booked.id, slot_id)
    assert booking.status == BookingStatus.CANCELLED
    assert booking.cancelled_by == tokens.TOKEN_CANCELLER
    assert slot.status == SlotStatus.OPEN
    assert slot.booking_id is None
    assert AuditLog.query.filter_by(action="BOOKING_CANCEL_TOKEN").count() == 1
    assert notifier.calls[-1]["booking"]["status"] == BookingStatus.CANCELLED


def test_second_redemption_reports_already_cancelled(world, booked):
    token = booked.cancel_token
    tokens.redeem(token)

    again = tokens.redeem(token)
    assert again.already_cancelled is True
    assert AuditLog.query.filter_by(action="BOOKING_CANCEL_TOKEN").count() == 1


def test_token_valid_until_expiry_instant(world, booked, clock):
    clock.advance(hours=24)
    outcome = tokens.redeem(booked.cancel_token)
    assert outcome.already_cancelled is False


def test_expired_token_is_rejected_without_mutation(world, booked, clock):
    slot_id = booked.slot_id
    token = booked.cancel_token
    clock.advance(hours=24, seconds=1)

    with pytest.raises(BadRequest):
        tokens.redeem(token)

    booking, slot = _state(booked.id, slot_id)
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.cancelled_at is None
    assert slot.status == SlotStatus.BOOKED
    assert slot.booking_id == booking.id


@pytest.mark.parametrize("token", [None, "", "   "])
def test_missing_token(world, token):
    with pytest.raises(BadRequest) as exc:
        tokens.redeem(token)
    assert "required" in exc.value.message


def test_unknown_token(world, booked):
    with pytest.raises(BadRequest):
        tokens.redeem(booked.cancel_token + "x")
    with pytest.raises(BadRequest):
        tokens.redeem(str(booked.id))


def test_issue_sets_expiry_from_config(app, world):
    app.config["CANCEL_TOKEN_TTL_HOURS"] = 2
    booking = Booking()
    issued_at = world.slots.morning.start_time - timedelta(days=1)

    token = tokens.issue(booking, issued_at)

    assert booking.cancel_token == token
    assert booking.cancel_token_expires_at == issued_at + timedelta(hours=2)
    assert tokens.cancel_link(token) == f"https://book.example.com/cancel?token={token}"
