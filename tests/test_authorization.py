from __future__ import annotations

from pathlib import Path

import pytest

from userdir.authorization import Decision, can_mutate, can_view, can_view_profile
from userdir.database import Database
from userdir.security import CredentialService
from userdir.sessions import SessionContext

ANONYMOUS = SessionContext.anonymous()
SIGNED_IN = SessionContext(token="token-1", user_id=1)


def test_index_requires_sign_in() -> None:
    assert can_view(ANONYMOUS) is False
    assert can_view(SIGNED_IN) is True


@pytest.mark.parametrize("session", [ANONYMOUS, SIGNED_IN])
def test_profiles_are_public(session: SessionContext) -> None:
    assert can_view_profile(session, 1) is True
    assert can_view_profile(session, 2) is True


def test_mutation_decisions() -> None:
    assert can_mutate(ANONYMOUS, 1) is Decision.DENY_UNAUTHENTICATED
    assert can_mutate(SIGNED_IN, 2) is Decision.DENY_WRONG_OWNER
    assert can_mutate(SIGNED_IN, 1) is Decision.PERMIT
    assert can_mutate(SIGNED_IN, 1).permitted
    assert not can_mutate(SIGNED_IN, 2).permitted


def test_session_context_from_token(tmp_path: Path) -> None:
    database = Database(tmp_path / "userdir.sqlite3")
    database.initialize()
    user = database.create_user("Owner", "owner@example.com", "hash")
    credentials = CredentialService()
    token = credentials.issue_session(user.id)

    session = SessionContext.resolve(token, credentials, database)

    assert session.is_signed_in()
    assert session.current_user_id() == user.id
    assert not SessionContext.resolve(None, credentials, database).is_signed_in()
    assert not SessionContext.resolve("bogus", credentials, database).is_signed_in()


def test_token_for_vanished_user_is_anonymous(tmp_path: Path) -> None:
    database = Database(tmp_path / "userdir.sqlite3")
    database.initialize()
    credentials = CredentialService()
    token = credentials.issue_session(42)

    session = SessionContext.resolve(token, credentials, database)

    assert not session.is_signed_in()
    assert session.current_user_id() is None
    assert credentials.resolve_session(token) is None
