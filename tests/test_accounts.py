"""Behaviour of the account operations independent of HTTP."""

from __future__ import annotations

from pathlib import Path

import pytest

from userdir.accounts import AccountController, OutcomeKind
from userdir.database import Database
from userdir.security import CredentialService
from userdir.sessions import SessionContext

PASSWORD = "foobar"

SIGNUP = {
    "name": "Das Tan",
    "email": "das@tan.com",
    "password": "dastanko",
    "password_confirmation": "dastanko",
}

EMPTY = {"name": "", "email": "", "password": "", "password_confirmation": ""}


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "userdir.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def credentials() -> CredentialService:
    return CredentialService()


@pytest.fixture()
def controller(database: Database, credentials: CredentialService) -> AccountController:
    return AccountController(database, credentials)


def _make_user(database: Database, credentials: CredentialService, name: str, email: str):
    return database.create_user(name, email, credentials.hash(PASSWORD))


def _sign_in(credentials: CredentialService, user_id: int) -> SessionContext:
    return SessionContext(token=credentials.issue_session(user_id), user_id=user_id)


def test_index_requires_sign_in(controller: AccountController) -> None:
    outcome = controller.index(SessionContext.anonymous())

    assert outcome.kind is OutcomeKind.REQUIRE_SIGN_IN
    assert "sign in" in (outcome.notice or "")
    assert outcome.page is None


def test_index_pages_users_for_signed_in_session(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    owner = _make_user(database, credentials, "Owner", "owner@example.com")
    for number in range(34):
        database.create_user(f"Person {number}", f"person-{number}@example.com", "hash")

    session = _sign_in(credentials, owner.id)
    first = controller.index(session)
    second = controller.index(session, page=2)

    assert first.kind is OutcomeKind.RENDER_INDEX
    assert len(first.page) == 30
    assert first.page.items[0] == owner
    assert first.page.has_next and not first.page.has_previous
    assert len(second.page) == 5
    assert controller.index(session, page=9).page.items == ()


def test_show_is_public(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    user = _make_user(database, credentials, "Public", "public@example.com")

    outcome = controller.show(SessionContext.anonymous(), user.id)

    assert outcome.kind is OutcomeKind.RENDER_SHOW
    assert outcome.user == user


def test_show_missing_user(controller: AccountController) -> None:
    outcome = controller.show(SessionContext.anonymous(), 12345)

    assert outcome.kind is OutcomeKind.NOT_FOUND


def test_new_returns_blank_form(controller: AccountController) -> None:
    outcome = controller.new(SessionContext.anonymous())

    assert outcome.kind is OutcomeKind.RENDER_NEW
    assert outcome.form == {"name": "", "email": ""}
    assert outcome.errors == ()


def test_create_signs_in_new_user(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    before = database.count_users()

    outcome = controller.create(SessionContext.anonymous(), SIGNUP)

    assert outcome.kind is OutcomeKind.REDIRECT_TO_SHOW
    assert database.count_users() == before + 1
    assert outcome.notice == "Welcome to the Sample App!"
    assert outcome.session is not None
    assert outcome.session.is_signed_in()
    assert outcome.session.current_user_id() == outcome.user_id
    assert credentials.resolve_session(outcome.session.token) == outcome.user_id

    stored = database.get_user(outcome.user_id)
    assert stored.name == "Das Tan"
    assert stored.password_hash != "dastanko"
    assert credentials.verify("dastanko", stored.password_hash)


def test_create_with_empty_fields_renders_new(
    controller: AccountController, database: Database
) -> None:
    outcome = controller.create(SessionContext.anonymous(), EMPTY)

    assert outcome.kind is OutcomeKind.RENDER_NEW
    assert database.count_users() == 0
    assert "Name can't be blank" in outcome.errors
    assert "Email can't be blank" in outcome.errors
    assert "Password can't be blank" in outcome.errors
    assert outcome.session is None


def test_create_rejects_mismatched_confirmation(
    controller: AccountController, database: Database
) -> None:
    outcome = controller.create(
        SessionContext.anonymous(), dict(SIGNUP, password_confirmation="different")
    )

    assert outcome.kind is OutcomeKind.RENDER_NEW
    assert any("doesn't match" in error for error in outcome.errors)
    assert database.count_users() == 0


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"name": "a" * 51}, "Name is too long (maximum is 50 characters)"),
        ({"email": "user@foo,com"}, "Email is invalid"),
        (
            {"password": "short", "password_confirmation": "short"},
            "Password is too short (minimum is 6 characters)",
        ),
        (
            {"password": "a" * 41, "password_confirmation": "a" * 41},
            "Password is too long (maximum is 40 characters)",
        ),
    ],
)
def test_create_validates_fields(
    controller: AccountController, database: Database, overrides, message
) -> None:
    outcome = controller.create(SessionContext.anonymous(), dict(SIGNUP, **overrides))

    assert outcome.kind is OutcomeKind.RENDER_NEW
    assert message in outcome.errors
    assert database.count_users() == 0


def test_create_with_taken_email_in_other_case(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    _make_user(database, credentials, "Existing", "das@tan.com")
    before = database.count_users()

    outcome = controller.create(SessionContext.anonymous(), dict(SIGNUP, email="DAS@Tan.COM"))

    assert outcome.kind is OutcomeKind.RENDER_NEW
    assert outcome.errors == ("Email has already been taken",)
    assert outcome.form["email"] == "DAS@Tan.COM"
    assert database.count_users() == before


def test_create_does_not_echo_password(controller: AccountController) -> None:
    outcome = controller.create(SessionContext.anonymous(), dict(SIGNUP, name=""))

    assert "password" not in outcome.form
    assert "dastanko" not in outcome.form.values()


def test_edit_and_update_require_sign_in(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    user = _make_user(database, credentials, "Owner", "owner@example.com")
    anonymous = SessionContext.anonymous()

    assert controller.edit(anonymous, user.id).kind is OutcomeKind.REQUIRE_SIGN_IN
    assert controller.update(anonymous, user.id, {}).kind is OutcomeKind.REQUIRE_SIGN_IN
    assert controller.edit(anonymous, 999).kind is OutcomeKind.REQUIRE_SIGN_IN


def test_wrong_owner_is_redirected_to_root(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    owner = _make_user(database, credentials, "Owner", "owner@example.com")
    intruder = _make_user(database, credentials, "Intruder", "das@tan.com")
    session = _sign_in(credentials, intruder.id)

    assert controller.edit(session, owner.id).kind is OutcomeKind.REDIRECT_TO_ROOT
    outcome = controller.update(session, owner.id, SIGNUP)

    assert outcome.kind is OutcomeKind.REDIRECT_TO_ROOT
    assert database.get_user(owner.id) == owner


def test_edit_prefills_form(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    user = _make_user(database, credentials, "Owner", "owner@example.com")

    outcome = controller.edit(_sign_in(credentials, user.id), user.id)

    assert outcome.kind is OutcomeKind.RENDER_EDIT
    assert outcome.form == {"name": "Owner", "email": "owner@example.com"}


def test_update_with_empty_fields_renders_edit(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    user = _make_user(database, credentials, "Owner", "owner@example.com")

    outcome = controller.update(_sign_in(credentials, user.id), user.id, EMPTY)

    assert outcome.kind is OutcomeKind.RENDER_EDIT
    assert outcome.errors
    assert database.get_user(user.id) == user


def test_update_changes_all_submitted_fields(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    user = _make_user(database, credentials, "Owner", "owner@example.com")

    outcome = controller.update(_sign_in(credentials, user.id), user.id, SIGNUP)

    assert outcome.kind is OutcomeKind.REDIRECT_TO_SHOW
    assert outcome.user_id == user.id
    assert "updated" in (outcome.notice or "").lower()
    stored = database.get_user(user.id)
    assert stored.name == "Das Tan"
    assert stored.email == "das@tan.com"
    assert stored.password_hash == outcome.user.password_hash
    assert credentials.verify("dastanko", stored.password_hash)
    assert not credentials.verify(PASSWORD, stored.password_hash)
    assert stored.created_at == user.created_at


def test_update_only_touches_submitted_fields(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    user = _make_user(database, credentials, "Owner", "owner@example.com")

    outcome = controller.update(
        _sign_in(credentials, user.id), user.id, {"name": "Renamed", "password": ""}
    )

    assert outcome.kind is OutcomeKind.REDIRECT_TO_SHOW
    stored = database.get_user(user.id)
    assert stored.name == "Renamed"
    assert stored.email == user.email
    assert stored.password_hash == user.password_hash


def test_update_password_needs_matching_confirmation(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    user = _make_user(database, credentials, "Owner", "owner@example.com")

    outcome = controller.update(
        _sign_in(credentials, user.id),
        user.id,
        {"password": "newsecret", "password_confirmation": "other"},
    )

    assert outcome.kind is OutcomeKind.RENDER_EDIT
    assert database.get_user(user.id) == user


def test_update_to_taken_email(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    user = _make_user(database, credentials, "Owner", "owner@example.com")
    _make_user(database, credentials, "Other", "other@example.com")

    outcome = controller.update(
        _sign_in(credentials, user.id), user.id, {"email": "OTHER@example.com"}
    )

    assert outcome.kind is OutcomeKind.RENDER_EDIT
    assert outcome.errors == ("Email has already been taken",)
    assert database.get_user(user.id) == user


def test_sign_in_and_out(
    controller: AccountController, database: Database, credentials: CredentialService
) -> None:
    user = _make_user(database, credentials, "Owner", "owner@example.com")

    failed = controller.sign_in(
        SessionContext.anonymous(), {"email": "owner@example.com", "password": "wrong"}
    )
    assert failed.kind is OutcomeKind.RENDER_SIGN_IN
    assert failed.errors == ("Invalid email/password combination.",)

    outcome = controller.sign_in(
        SessionContext.anonymous(), {"email": "OWNER@example.com", "password": PASSWORD}
    )
    assert outcome.kind is OutcomeKind.REDIRECT_TO_SHOW
    assert outcome.user_id == user.id
    session = outcome.session
    assert session is not None and session.current_user_id() == user.id

    signed_out = controller.sign_out(session)
    assert signed_out.kind is OutcomeKind.REDIRECT_TO_ROOT
    assert credentials.resolve_session(session.token) is None


def test_page_size_is_configurable(database: Database, credentials: CredentialService) -> None:
    controller = AccountController(database, credentials, page_size=2)
    owner = _make_user(database, credentials, "Owner", "owner@example.com")
    for number in range(3):
        database.create_user(f"Person {number}", f"p{number}@example.com", "hash")

    outcome = controller.index(_sign_in(credentials, owner.id))

    assert len(outcome.page) == 2
    assert outcome.page.total_pages == 2

    with pytest.raises(ValueError):
        AccountController(database, credentials, page_size=0)
