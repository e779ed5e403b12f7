from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from app import create_app
from models import db
from models.provider import Provider
from models.service import Service
from models.slot import Slot, SlotStatus
from models.staff import Staff
from models.user import User, Role
from reservations.policy import Requester
from utils.roles import ADMIN, CLIENT, PROVIDER

NOW = datetime(2026, 3, 2, 9, 0, 0)


class FrozenClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def __call__(self, recipient, slot, booking, cancel_link):
        self.calls.append(
            {"recipient": recipient, "slot": slot, "booking": booking, "cancel_link": cancel_link}
        )


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(tmp_path, clock, notifier):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///" + str(tmp_path / "slotbook-test.db"),
        "CREATE_TABLES_ON_STARTUP": True,
        "CLOCK": clock,
        "RESERVATION_NOTIFIER": notifier,
        "FRONTEND_URL": "https://book.example.com",
        "LOG_LEVEL": "WARNING",
    })
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


def make_user(email, *role_names):
    user = User(email=email, full_name=email.split("@")[0])
    for name in role_names:
        user.roles.append(Role.query.filter_by(name=name).one())
    db.session.add(user)
    db.session.commit()
    return user


def make_slot(service, start, minutes=60, staff_id=None):
    slot = Slot(
        provider_id=service.provider_id,
        service_id=service.id,
        staff_id=staff_id,
        start_time=start,
        end_time=start + timedelta(minutes=minutes),
        status=SlotStatus.OPEN,
    )
    db.session.add(slot)
    db.session.commit()
    return slot


@pytest.fixture
def world(app):
    """Two clients, a provider with two services, a rival provider and an admin."""
    alice = make_user("alice@example.com", CLIENT)
    carol = make_user("carol@example.com", CLIENT)
    owner = make_user("owner@salon.example.com", PROVIDER)
    rival_owner = make_user("owner@rival.example.com", PROVIDER)
    admin = make_user("admin@example.com", ADMIN)

    provider = Provider(name="Salon", owner_user_id=owner.id)
    rival = Provider(name="Rival", owner_user_id=rival_owner.id)
    db.session.add_all([provider, rival])
    db.session.commit()

    haircut = Service(provider_id=provider.id, name="Haircut", duration_minutes=60)
    coloring = Service(provider_id=provider.id, name="Coloring", duration_minutes=60)
    rival_cut = Service(provider_id=rival.id, name="Haircut", duration_minutes=60)
    stylist = Staff(provider_id=provider.id, name="Sam")
    db.session.add_all([haircut, coloring, rival_cut, stylist])
    db.session.commit()

    tomorrow_10 = NOW.replace(hour=10) + timedelta(days=1)
    slots = SimpleNamespace(
        morning=make_slot(haircut, tomorrow_10),
        noon=make_slot(haircut, tomorrow_10 + timedelta(hours=2)),
        color=make_slot(coloring, tomorrow_10 + timedelta(hours=4)),
        past=make_slot(haircut, NOW - timedelta(days=1)),
        rival_morning=make_slot(rival_cut, tomorrow_10),
    )

    return SimpleNamespace(
        alice=alice,
        carol=carol,
        owner=owner,
        rival_owner=rival_owner,
        admin=admin,
        provider=provider,
        rival=rival,
        haircut=haircut,
        coloring=coloring,
        stylist=stylist,
        slots=slots,
        as_alice=Requester(alice.id, CLIENT),
        as_carol=Requester(carol.id, CLIENT),
        as_owner=Requester(owner.id, PROVIDER),
        as_rival=Requester(rival_owner.id, PROVIDER),
        as_admin=Requester(admin.id, ADMIN),
    )
