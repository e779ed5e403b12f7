from datetime import datetime, timezone

from flask import current_app, has_app_context


def utc_now() -> datetime:
    # Stored timestamps are naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_clock():
    """
    Returns the clock configured on the app (config["CLOCK"]) or the wall clock.
    Tests freeze time by putting a callable there.
    """
    if has_app_context():
        clock = current_app.config.get("CLOCK")
        if clock is not None:
            return clock
    return utc_now
