"""Session registry and per-request session context."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .database import Database
    from .security import CredentialService


@dataclass
class _SessionRecord:
    user_id: int
    expires_at: datetime


class SessionManager:
    """Generate, validate, and revoke directory sessions."""

    def __init__(self, *, ttl: timedelta = timedelta(hours=8)) -> None:
        self._ttl = ttl
        self._sessions: Dict[str, _SessionRecord] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def cookie_max_age(self) -> int:
        return int(self._ttl.total_seconds())

    def create(self, user_id: int) -> str:
        token = secrets.token_urlsafe(32)
        record = _SessionRecord(user_id=user_id, expires_at=self._now() + self._ttl)
        with self._lock:
            self._sessions[token] = record
        return token

    def resolve(self, token: str) -> Optional[int]:
        now = self._now()
        with self._lock:
            record = self._sessions.get(token)
            if record is None:
                return None
            if record.expires_at <= now:
                self._sessions.pop(token, None)
                return None
            record.expires_at = now + self._ttl
            return record.user_id

    def destroy(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionContext:
    """The authenticated identity attached to a single request, if any."""

    token: Optional[str] = None
    user_id: Optional[int] = None

    @classmethod
    def anonymous(cls) -> "SessionContext":
        return cls()

    @classmethod
    def resolve(
        cls,
        token: Optional[str],
        credentials: "CredentialService",
        database: Optional["Database"] = None,
    ) -> "SessionContext":
        """Build the context for ``token``.

        Expired or unknown tokens, and tokens whose user has since vanished
        from ``database``, resolve to an anonymous context.
        """

        if not token:
            return cls.anonymous()
        user_id = credentials.resolve_session(token)
        if user_id is None:
            return cls.anonymous()
        if database is not None and database.find_user(user_id) is None:
            credentials.revoke_session(token)
            return cls.anonymous()
        return cls(token=token, user_id=user_id)

    def current_user_id(self) -> Optional[int]:
        return self.user_id

    def is_signed_in(self) -> bool:
        return self.user_id is not None


__all__ = ["SessionContext", "SessionManager"]
