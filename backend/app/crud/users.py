# backend/app/crud/users.py
from __future__ import annotations

from typing import Iterable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.core.security import hash_password
from app.models.user import Role, User


def get_or_create_role(db: Session, name: str) -> Role:
    role = db.execute(select(Role).where(Role.name == name)).scalar_one_or_none()
    if role is None:
        role = Role(name=name)
        db.add(role)
        db.flush()
    return role


def create_user(db: Session, name: str, email: str, password: str, role: str | None = None) -> User:
    u = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role_id=get_or_create_role(db, role).id if role else None,
    )

    db.add(u)
    db.commit()
    db.refresh(u)
    return u


def existing_user_ids(db: Session, user_ids: Iterable[int]) -> set[int]:
    ids = set(user_ids)
    if not ids:
        return set()
    stmt = select(User.id).where(User.id.in_(ids))
    return set(db.execute(stmt).scalars().all())


def suggest_recipients(
    db: Session,
    current_user_id: int,
    search: str,
    excluded_roles: Iterable[str],
    limit: int = 10,
) -> list[dict]:
    """Autocomplete for the compose form: name/email substring match."""
    search = (search or "").strip()
    if not search:
        return []

    pattern = f"%{search}%"
    stmt = (
        select(User.id, User.name, User.email, Role.name.label("role"))
        .join(Role, Role.id == User.role_id)
        .where(
            User.id != current_user_id,
            Role.name.not_in(list(excluded_roles)),
            or_(User.name.ilike(pattern), User.email.ilike(pattern)),
        )
        .order_by(User.name.asc())
        .limit(limit)
    )
    return [dict(row._mapping) for row in db.execute(stmt)]
