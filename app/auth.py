from __future__ import annotations

import hashlib
import secrets
from typing import Dict, Mapping, Optional, Protocol


DIGEST_PREFIX = "sha256$"


class Authenticator(Protocol):
    def authenticate(self, username: str, password: str) -> bool: ...


def hash_password(password: str) -> str:
    return DIGEST_PREFIX + hashlib.sha256(password.encode("utf-8")).hexdigest()


def is_hashed(value: str) -> bool:
    return isinstance(value, str) and value.startswith(DIGEST_PREFIX)


class CredentialTableAuthenticator:
    """Check a login against a username -> password digest table."""

    def __init__(self, users: Optional[Mapping[str, str]] = None) -> None:
        self._users: Dict[str, str] = {}
        for username, secret in (users or {}).items():
            self.set_password(username, secret)

    def set_password(self, username: str, secret: str) -> None:
        """Store ``secret`` for ``username``; plain passwords are hashed first."""
        self._users[username] = secret if is_hashed(secret) else hash_password(secret)

    def authenticate(self, username: str, password: str) -> bool:
        expected = self._users.get((username or "").strip())
        if not expected or password is None:
            return False
        return secrets.compare_digest(expected, hash_password(password))
