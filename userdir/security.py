"""Credential hashing and session issuance for directory accounts."""
from __future__ import annotations

from typing import Optional

from passlib.context import CryptContext

from .sessions import SessionManager

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password must not be empty")
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        return False


class CredentialService:
    """Verify account secrets and hand out session tokens."""

    def __init__(self, sessions: Optional[SessionManager] = None) -> None:
        self._sessions = sessions or SessionManager()

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    def hash(self, secret: str) -> str:
        return hash_password(secret)

    def verify(self, secret: str, credential_hash: str) -> bool:
        """Return ``True`` when ``secret`` matches ``credential_hash``.

        A mismatch is an expected result, never an error.
        """

        return verify_password(secret, credential_hash)

    def issue_session(self, user_id: int) -> str:
        return self._sessions.create(user_id)

    def resolve_session(self, token: str) -> Optional[int]:
        if not token:
            return None
        return self._sessions.resolve(token)

    def revoke_session(self, token: str) -> None:
        if token:
            self._sessions.destroy(token)


__all__ = ["CredentialService", "hash_password", "verify_password"]
