from models import db
from models.user import Role
from utils.roles import ROLE_PRECEDENCE

DEFAULT_ROLES = list(ROLE_PRECEDENCE)

def seed_roles():
    existing = {r.name for r in Role.query.all()}
    for name in DEFAULT_ROLES:
        if name not in existing:
            db.session.add(Role(name=name))
    db.session.commit()
