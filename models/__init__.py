from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .provider import Provider
from .service import Service
from .staff import Staff
from .slot import Slot, SlotStatus
from .booking import Booking, BookingStatus
