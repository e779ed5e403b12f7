from models.db import db
from utils.clock import utc_now

class Service(db.Model):
    __tablename__ = "services"

    id = db.Column(db.Integer, primary_key=True)
    provider_id = db.Column(db.Integer, db.ForeignKey("providers.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False, default=30)
    price = db.Column(db.Integer, nullable=False, default=0)  # smallest currency unit

    created_at = db.Column(db.DateTime, default=utc_now, nullable=False)
