from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from kosh.core.security import PermissionSet


class Base(DeclarativeBase):
    """Primary store: users, inventory, GST sales/purchases, accounting."""


class SecondaryBase(DeclarativeBase):
    """Secondary store: simplified non-GST sales."""


class PermissionsType(TypeDecorator):
    """Stores a :class:`PermissionSet` as ``"*"`` or a JSON list."""

    impl = String
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, PermissionSet):
            return value.encode()
        if isinstance(value, str):
            return PermissionSet.decode(value).encode()
        return PermissionSet.of(value).encode()

    def process_result_value(self, value, dialect):
        return PermissionSet.decode(value)


__all__ = ["Base", "PermissionsType", "SecondaryBase"]
