import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from kosh.config import Settings, get_settings
from kosh.core.constants import UserRole
from kosh.core.exceptions import AuthenticationError, InvariantViolation, NotFoundError
from kosh.core.security import PermissionSet, hash_password, verify_password
from kosh.database.session import flush_or_reject
from kosh.models.schema_migration import SchemaMigration
from kosh.models.user import User
from kosh.schemas.user import UserCreate

logger = logging.getLogger(__name__)

SEED_DEFAULT_ADMIN = "seed:default_admin"


def _count_active_admins(db: Session) -> int:
    return int(
        db.execute(
            select(func.count(User.id)).where(
                User.role == UserRole.ADMIN.value,
                User.is_active.is_(True),
            )
        ).scalar_one()
    )


def ensure_default_admin(db: Session, settings: Optional[Settings] = None) -> Optional[User]:
    """Create the bootstrap admin on a fresh database, at most once.

    The seed is recorded in ``schema_migrations``; after that it never runs
    again, so an admin deleted on purpose is not brought back.
    """
    settings = settings or get_settings()
    if db.get(SchemaMigration, SEED_DEFAULT_ADMIN) is not None:
        return None

    admin = None
    has_admin = db.execute(
        select(User.id).where(User.role == UserRole.ADMIN.value)
    ).first()
    if has_admin is None:
        admin = User(
            name=settings.DEFAULT_ADMIN_NAME,
            username=settings.DEFAULT_ADMIN_USERNAME,
            password=hash_password(settings.DEFAULT_ADMIN_PASSWORD, rounds=settings.PASSWORD_PBKDF2_ROUNDS),
            role=UserRole.ADMIN.value,
            permissions=PermissionSet.all(),
        )
        db.add(admin)
        logger.info("Default admin user %s created.", settings.DEFAULT_ADMIN_USERNAME)

    db.add(SchemaMigration(id=SEED_DEFAULT_ADMIN, description="Bootstrap administrator"))
    flush_or_reject(db, "Default admin could not be created")
    return admin


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def create_user(db: Session, data: UserCreate, settings: Optional[Settings] = None) -> User:
    settings = settings or get_settings()
    if data.role == UserRole.ADMIN:
        permissions = PermissionSet.all()
    else:
        permissions = PermissionSet.of(data.permissions)
    user = User(
        name=data.name,
        username=data.username.strip(),
        password=hash_password(data.password, rounds=settings.PASSWORD_PBKDF2_ROUNDS),
        role=data.role.value,
        permissions=permissions,
    )
    db.add(user)
    flush_or_reject(db, "Username already exists")
    return user


def authenticate(db: Session, username: str, password: str, role: Optional[UserRole] = None) -> User:
    user = db.execute(
        select(User).where(User.username == username.strip())
    ).scalars().first()
    if user is None or not user.is_active or not verify_password(password, user.password):
        raise AuthenticationError("Invalid username or password.")
    if role is not None and user.role != UserRole(role).value:
        raise AuthenticationError("Invalid username or password.")
    return user


def has_permission(user: User, permission: str) -> bool:
    if user.role == UserRole.ADMIN.value:
        return True
    return user.permissions.allows(permission)


def deactivate_user(db: Session, user_id: int) -> User:
    user = get_user(db, user_id)
    if user.role == UserRole.ADMIN.value and user.is_active and _count_active_admins(db) <= 1:
        raise InvariantViolation("The last active admin cannot be deactivated.")
    user.is_active = False
    db.flush()
    return user


__all__ = [
    "SEED_DEFAULT_ADMIN",
    "authenticate",
    "create_user",
    "deactivate_user",
    "ensure_default_admin",
    "get_user",
    "has_permission",
    "hash_password",
    "verify_password",
]
