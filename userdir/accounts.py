"""Account operations: listing, profiles, signup, editing and sign-in.

Every operation takes the request's :class:`SessionContext` explicitly and
returns an :class:`Outcome` describing what the caller should do next. The
transport layer decides how each outcome becomes a response.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError

from .authorization import Decision, can_mutate, can_view, can_view_profile
from .database import Database, DuplicateEmailError, UserNotFoundError
from .forms import ProfileUpdateForm, SignInForm, SignupForm, error_messages
from .models import Page, User
from .security import CredentialService
from .sessions import SessionContext

logger = logging.getLogger("userdir.accounts")

DEFAULT_PAGE_SIZE = 30

WELCOME_MESSAGE = "Welcome to the Sample App!"
UPDATED_MESSAGE = "Profile updated."
SIGN_IN_REQUIRED_MESSAGE = "Please sign in to access this page."
INVALID_SIGN_IN_MESSAGE = "Invalid email/password combination."
DUPLICATE_EMAIL_MESSAGE = "Email has already been taken"


class OutcomeKind(str, Enum):
    RENDER_INDEX = "render_index"
    RENDER_SHOW = "render_show"
    RENDER_NEW = "render_new"
    RENDER_EDIT = "render_edit"
    RENDER_SIGN_IN = "render_sign_in"
    REQUIRE_SIGN_IN = "require_sign_in"
    REDIRECT_TO_ROOT = "redirect_to_root"
    REDIRECT_TO_SHOW = "redirect_to_show"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Outcome:
    """Determinate result of an account operation."""

    kind: OutcomeKind
    user: Optional[User] = None
    user_id: Optional[int] = None
    page: Optional[Page] = None
    form: Dict[str, str] = field(default_factory=dict)
    errors: Tuple[str, ...] = ()
    notice: Optional[str] = None
    session: Optional[SessionContext] = None


def _form_echo(data: Mapping[str, Any], *keys: str) -> Dict[str, str]:
    """Values to redisplay in a form; secrets are never echoed."""

    return {key: str(data.get(key) or "") for key in keys}


class AccountController:
    """Coordinate the guard, the credential service and the user store."""

    def __init__(
        self,
        database: Database,
        credentials: CredentialService,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        if page_size < 1:
            raise ValueError("Page size must be at least 1")
        self._database = database
        self._credentials = credentials
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        return self._page_size

    def index(self, session: SessionContext, page: int = 1) -> Outcome:
        if not can_view(session):
            return Outcome(OutcomeKind.REQUIRE_SIGN_IN, notice=SIGN_IN_REQUIRED_MESSAGE)
        window = self._database.page_users(page, self._page_size)
        return Outcome(OutcomeKind.RENDER_INDEX, page=window)

    def show(self, session: SessionContext, user_id: int) -> Outcome:
        if not can_view_profile(session, user_id):  # pragma: no cover - profiles are public
            return Outcome(OutcomeKind.REQUIRE_SIGN_IN, notice=SIGN_IN_REQUIRED_MESSAGE)
        user = self._database.find_user(user_id)
        if user is None:
            return Outcome(OutcomeKind.NOT_FOUND, user_id=user_id)
        return Outcome(OutcomeKind.RENDER_SHOW, user=user, user_id=user.id)

    def new(self, session: SessionContext) -> Outcome:
        return Outcome(OutcomeKind.RENDER_NEW, form=_form_echo({}, "name", "email"))

    def create(self, session: SessionContext, data: Mapping[str, Any]) -> Outcome:
        echo = _form_echo(data, "name", "email")
        try:
            form = SignupForm.model_validate(dict(data))
        except ValidationError as exc:
            return Outcome(OutcomeKind.RENDER_NEW, form=echo, errors=tuple(error_messages(exc)))

        password_hash = self._credentials.hash(form.password)
        try:
            user = self._database.create_user(form.name, form.email, password_hash)
        except DuplicateEmailError:
            return Outcome(OutcomeKind.RENDER_NEW, form=echo, errors=(DUPLICATE_EMAIL_MESSAGE,))

        if session.token:
            self._credentials.revoke_session(session.token)
        token = self._credentials.issue_session(user.id)
        logger.info("User %s signed up", user.id)
        return Outcome(
            OutcomeKind.REDIRECT_TO_SHOW,
            user=user,
            user_id=user.id,
            notice=WELCOME_MESSAGE,
            session=SessionContext(token=token, user_id=user.id),
        )

    def edit(self, session: SessionContext, user_id: int) -> Outcome:
        denied = self._guard_mutation(session, user_id, "edit")
        if denied is not None:
            return denied
        user = self._database.find_user(user_id)
        if user is None:
            return Outcome(OutcomeKind.NOT_FOUND, user_id=user_id)
        return Outcome(
            OutcomeKind.RENDER_EDIT,
            user=user,
            user_id=user.id,
            form={"name": user.name, "email": user.email},
        )

    def update(self, session: SessionContext, user_id: int, data: Mapping[str, Any]) -> Outcome:
        denied = self._guard_mutation(session, user_id, "update")
        if denied is not None:
            return denied
        user = self._database.find_user(user_id)
        if user is None:
            return Outcome(OutcomeKind.NOT_FOUND, user_id=user_id)

        echo = {"name": user.name, "email": user.email}
        echo.update({key: str(data[key]) for key in ("name", "email") if data.get(key) is not None})
        try:
            form = ProfileUpdateForm.model_validate(dict(data))
        except ValidationError as exc:
            return Outcome(
                OutcomeKind.RENDER_EDIT,
                user=user,
                user_id=user.id,
                form=echo,
                errors=tuple(error_messages(exc)),
            )

        changes: Dict[str, str] = form.profile_changes()
        if form.new_password is not None:
            changes["password_hash"] = self._credentials.hash(form.new_password)

        try:
            updated = self._database.update_user(user_id, **changes)
        except DuplicateEmailError:
            return Outcome(
                OutcomeKind.RENDER_EDIT,
                user=user,
                user_id=user.id,
                form=echo,
                errors=(DUPLICATE_EMAIL_MESSAGE,),
            )
        except UserNotFoundError:
            return Outcome(OutcomeKind.NOT_FOUND, user_id=user_id)

        return Outcome(
            OutcomeKind.REDIRECT_TO_SHOW,
            user=updated,
            user_id=updated.id,
            notice=UPDATED_MESSAGE,
        )

    def sign_in(self, session: SessionContext, data: Mapping[str, Any]) -> Outcome:
        try:
            form = SignInForm.model_validate(dict(data))
        except ValidationError:
            form = SignInForm()
        user = self._database.get_user_by_email(form.email) if form.email else None
        if user is None or not self._credentials.verify(form.password, user.password_hash):
            logger.warning("Failed sign-in attempt for %s", form.email or "<blank>")
            return Outcome(
                OutcomeKind.RENDER_SIGN_IN,
                form={"email": form.email},
                errors=(INVALID_SIGN_IN_MESSAGE,),
            )

        if session.token:
            self._credentials.revoke_session(session.token)
        token = self._credentials.issue_session(user.id)
        logger.info("User %s signed in", user.id)
        return Outcome(
            OutcomeKind.REDIRECT_TO_SHOW,
            user=user,
            user_id=user.id,
            session=SessionContext(token=token, user_id=user.id),
        )

    def sign_out(self, session: SessionContext) -> Outcome:
        if session.token:
            self._credentials.revoke_session(session.token)
        if session.is_signed_in():
            logger.info("User %s signed out", session.current_user_id())
        return Outcome(OutcomeKind.REDIRECT_TO_ROOT, session=SessionContext.anonymous())

    def _guard_mutation(self, session: SessionContext, user_id: int, action: str) -> Optional[Outcome]:
        decision = can_mutate(session, user_id)
        if decision is Decision.DENY_UNAUTHENTICATED:
            return Outcome(OutcomeKind.REQUIRE_SIGN_IN, notice=SIGN_IN_REQUIRED_MESSAGE)
        if decision is Decision.DENY_WRONG_OWNER:
            logger.warning(
                "User %s may not %s user %s", session.current_user_id(), action, user_id
            )
            return Outcome(OutcomeKind.REDIRECT_TO_ROOT)
        return None


__all__ = [
    "AccountController",
    "DEFAULT_PAGE_SIZE",
    "Outcome",
    "OutcomeKind",
]
