from argon2 import PasswordHasher

from app.crud.users import create_user, existing_user_ids, get_or_create_role
from app.models.user import User


def test_create_user_hashes_password_and_assigns_role(db):
    user = create_user(db, "Erin", "erin@example.com", "s3cret pass", role="MEMBER")

    stored = db.get(User, user.id)
    assert stored.password_hash != "s3cret pass"
    assert PasswordHasher().verify(stored.password_hash, "s3cret pass")
    assert stored.role_name == "MEMBER"


def test_roles_are_reused(db):
    first = create_user(db, "Erin", "erin@example.com", "pw", role="MEMBER")
    second = create_user(db, "Finn", "finn@example.com", "pw", role="MEMBER")

    assert first.role_id == second.role_id == get_or_create_role(db, "MEMBER").id


def test_user_without_role(db):
    user = create_user(db, "Gil", "gil@example.com", "pw")
    assert user.role_id is None and user.role_name is None


def test_existing_user_ids(db, users):
    assert existing_user_ids(db, [users.alice, users.bob, 999]) == {users.alice, users.bob}
    assert existing_user_ids(db, []) == set()
