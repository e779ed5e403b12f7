from models.db import db
from utils.clock import utc_now


class BookingStatus:
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    client_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # no uniqueness here: a slot keeps its cancelled bookings as history
    slot_id = db.Column(db.Integer, db.ForeignKey("slots.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default=BookingStatus.CONFIRMED)

    cancel_token = db.Column(db.String(128), nullable=False, unique=True, index=True)
    cancel_token_expires_at = db.Column(db.DateTime, nullable=False)

    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)
    cancelled_by = db.Column(db.String(20), nullable=True)  # CLIENT, PROVIDER, ADMIN, TOKEN

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "slot_id": self.slot_id,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
        }
