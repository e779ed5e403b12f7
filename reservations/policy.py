from collections import namedtuple

from models.provider import Provider
from utils.roles import ADMIN, PROVIDER

# Identity handed over by the auth layer: who is asking and with which role
Requester = namedtuple("Requester", ["user_id", "role"])


def owned_provider_id(user_id):
    provider = Provider.query.filter_by(owner_user_id=user_id, is_active=True).first()
    return provider.id if provider else None


def can_act(requester, client_id, provider_id) -> bool:
    """
    Single authorization predicate for create, read, cancel and reschedule.

    - the client the booking is (or will be) for may always act
    - an admin may act on anything
    - a provider may act on bookings of slots its provider owns,
      on behalf of any client
    """
    if requester is None:
        return False
    if client_id is not None and requester.user_id == client_id:
        return True
    if requester.role == ADMIN:
        return True
    if requester.role == PROVIDER:
        return provider_id is not None and owned_provider_id(requester.user_id) == provider_id
    return False


def can_manage_slots(requester, provider_id) -> bool:
    if requester is None:
        return False
    if requester.role == ADMIN:
        return True
    return requester.role == PROVIDER and owned_provider_id(requester.user_id) == provider_id
