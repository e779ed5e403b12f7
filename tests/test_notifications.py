from reservations import notifications
from utils.emailer import send_email

SLOT = {"id": 7, "start_time": "2026-03-03T10:00:00", "end_time": "2026-03-03T11:00:00"}


def test_confirmation_mail_carries_cancel_link(app, monkeypatch):
    sent = []
    monkeypatch.setattr(notifications, "send_email", lambda *args: sent.append(args) or (True, None))

    ok = notifications.email_notifier("alice@example.com", SLOT, {"id": 3, "status": "CONFIRMED"},
                                      "https://book.example.com/cancel?token=abc")

    assert ok is True
    to, subject, body = sent[0]
    assert to == "alice@example.com"
    assert subject == "Booking confirmed"
    assert "https://book.example.com/cancel?token=abc" in body


def test_cancellation_mail(app, monkeypatch):
    sent = []
    monkeypatch.setattr(notifications, "send_email", lambda *args: sent.append(args) or (True, None))

    notifications.email_notifier("alice@example.com", SLOT, {"id": 3, "status": "CANCELLED"}, None)

    assert sent[0][1] == "Your booking was cancelled"
    assert "cancel?token" not in sent[0][2]


def test_unconfigured_smtp_reports_failure(app):
    app.config["SMTP_HOST"] = None
    assert send_email("alice@example.com", "hi", "body") == (False, "Email not configured")
    assert send_email("", "hi", "body") == (False, "No recipient")


def test_dispatch_swallows_sink_errors(app):
    def broken(*_args):
        raise ConnectionError("smtp down")

    # must not raise
    notifications.dispatch("alice@example.com", SLOT, {"id": 3}, "link", notifier=broken)


def test_configured_notifier_is_used(app, notifier):
    notifications.dispatch("alice@example.com", SLOT, {"id": 3}, "link")
    assert notifier.calls == [
        {"recipient": "alice@example.com", "slot": SLOT, "booking": {"id": 3}, "cancel_link": "link"}
    ]
    assert notifications.resolve_notifier(len) is len
