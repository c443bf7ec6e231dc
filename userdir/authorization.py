"""Access decisions for directory operations.

These functions are pure: they only inspect the session context handed to
them and never touch the store.
"""
from __future__ import annotations

from enum import Enum

from .sessions import SessionContext


class Decision(str, Enum):
    """Outcome of an ownership check."""

    PERMIT = "permit"
    DENY_UNAUTHENTICATED = "deny_unauthenticated"
    DENY_WRONG_OWNER = "deny_wrong_owner"

    @property
    def permitted(self) -> bool:
        return self is Decision.PERMIT


def can_view(session: SessionContext) -> bool:
    """Listing the directory requires a signed-in session."""

    return session.is_signed_in()


def can_view_profile(session: SessionContext, target_id: int) -> bool:
    """Profiles are public."""

    return True


def can_mutate(session: SessionContext, target_id: int) -> Decision:
    if not session.is_signed_in():
        return Decision.DENY_UNAUTHENTICATED
    if session.current_user_id() != target_id:
        return Decision.DENY_WRONG_OWNER
    return Decision.PERMIT


__all__ = ["Decision", "can_mutate", "can_view", "can_view_profile"]
