CLIENT = "CLIENT"
PROVIDER = "PROVIDER"
ADMIN = "ADMIN"

# strongest first
ROLE_PRECEDENCE = (ADMIN, PROVIDER, CLIENT)


def role_names(roles):
    names = []
    for role in roles or []:
        name = role if isinstance(role, str) else getattr(role, "name", None)
        if name in ROLE_PRECEDENCE:
            names.append(name)
    return names


def acting_role(user):
    """The single role a user acts with when holding several."""
    held = set(role_names(getattr(user, "roles", None)))
    for name in ROLE_PRECEDENCE:
        if name in held:
            return name
    return CLIENT
