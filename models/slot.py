from models.db import db
from utils.clock import utc_now


class SlotStatus:
    OPEN = "OPEN"
    BOOKED = "BOOKED"


class Slot(db.Model):
    __tablename__ = "slots"

    id = db.Column(db.Integer, primary_key=True)

    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    start_time = db.Column(db.DateTime, nullable=False, index=True)
    end_time = db.Column(db.DateTime, nullable=False)

    status = db.Column(db.String(20), nullable=False, default=SlotStatus.OPEN)
    # occupying booking; only the ledger's claim/release write these two columns
    booking_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        # Prevent duplicate slot creation for the same provider
        db.UniqueConstraint("provider_id", "start_time", name="uq_provider_slot_start"),
        db.UniqueConstraint("booking_id", name="uq_slot_booking"),
        db.CheckConstraint("start_time < end_time", name="ck_slot_time_range"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "provider_id": self.provider_id,
            "service_id": self.service_id,
            "staff_id": self.staff_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "status": self.status,
            "booking_id": self.booking_id,
        }
