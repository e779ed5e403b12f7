import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from reservations.errors import Conflict, Internal, ReservationError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(action: str, conflict_message: str = None):
    """
    One request, one transaction. Commits when the block finishes and rolls
    back every write of the block on any error.
    """
    try:
        yield db.session
        db.session.commit()
    except ReservationError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        logger.info("Integrity violation during %s: %s", action, exc.orig)
        raise Conflict(conflict_message) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Storage failure during %s", action)
        raise Internal("Storage unavailable") from exc
    except Exception:
        db.session.rollback()
        raise
