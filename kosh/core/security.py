from __future__ import annotations

import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass, field
from typing import Iterable, Optional

from kosh.core.constants import ALL_PERMISSIONS

_HASH_SCHEME = "pbkdf2_sha256"


def _hash_password(password: str, salt: str, rounds: int) -> str:
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt.encode("utf-8"),
        rounds,
    )
    return digest.hex()


def hash_password(password: str, *, rounds: int = 200_000, salt: Optional[str] = None) -> str:
    """Return ``pbkdf2_sha256$<rounds>$<salt>$<hex digest>``."""
    if not password:
        raise ValueError("Password must not be empty.")
    salt = salt or secrets.token_hex(16)
    return "{}${}${}${}".format(_HASH_SCHEME, rounds, salt, _hash_password(password, salt, rounds))


def verify_password(password: str, encoded: str) -> bool:
    try:
        scheme, rounds_text, salt, expected = encoded.split("$", 3)
        rounds = int(rounds_text)
    except (AttributeError, ValueError):
        return False
    if scheme != _HASH_SCHEME:
        return False
    computed = _hash_password(password, salt, rounds)
    return hmac.compare_digest(computed, expected)


@dataclass(frozen=True)
class PermissionSet:
    """Decoded form of a user's permissions column.

    ``grants_all`` is the ``"*"`` sentinel; otherwise ``names`` lists the
    individual permissions.
    """

    names: frozenset = field(default_factory=frozenset)
    grants_all: bool = False

    @classmethod
    def all(cls) -> "PermissionSet":
        return cls(grants_all=True)

    @classmethod
    def of(cls, names: Iterable[str]) -> "PermissionSet":
        cleaned = {str(name).strip() for name in names if str(name).strip()}
        if ALL_PERMISSIONS in cleaned:
            return cls.all()
        return cls(names=frozenset(cleaned))

    @classmethod
    def decode(cls, raw: Optional[str]) -> "PermissionSet":
        if raw is None:
            return cls()
        text = raw.strip()
        if not text:
            return cls()
        if text == ALL_PERMISSIONS:
            return cls.all()
        try:
            value = json.loads(text)
        except ValueError:
            # tolerate legacy comma-separated values
            return cls.of(text.split(","))
        if isinstance(value, str):
            return cls.of([value])
        if isinstance(value, list):
            return cls.of(value)
        raise ValueError("Unsupported permissions value: {!r}".format(raw))

    def encode(self) -> str:
        if self.grants_all:
            return ALL_PERMISSIONS
        return json.dumps(sorted(self.names))

    def allows(self, permission: str) -> bool:
        return self.grants_all or permission in self.names

    def __iter__(self):
        return iter(sorted(self.names))


__all__ = ["PermissionSet", "hash_password", "verify_password"]
