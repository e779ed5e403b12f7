from models import db
from models.session import Session
from models.user import User
from tests.conftest import make_user
from utils.roles import ADMIN, CLIENT


def test_grant_role(app):
    user = make_user("dana@example.com", CLIENT)
    runner = app.test_cli_runner()

    result = runner.invoke(args=["grant-role", "Dana@Example.com", "admin"])

    assert result.exit_code == 0
    assert "granted ADMIN" in result.output
    db.session.expire_all()
    assert ADMIN in {r.name for r in db.session.get(User, user.id).roles}


def test_grant_role_unknown_user(app):
    result = app.test_cli_runner().invoke(args=["grant-role", "ghost@example.com", "ADMIN"])
    assert result.exit_code != 0
    assert "User not found" in result.output


def test_issue_session_prints_cookie_value(app):
    user = make_user("erin@example.com", CLIENT)
    result = app.test_cli_runner().invoke(args=["issue-session", "erin@example.com"])

    assert result.exit_code == 0
    assert len(result.output.strip()) >= 43
    assert Session.query.filter_by(user_id=user.id).count() == 1


def test_seed_roles_is_idempotent(app):
    runner = app.test_cli_runner()
    assert runner.invoke(args=["seed-roles"]).exit_code == 0
    assert runner.invoke(args=["seed-roles"]).exit_code == 0
