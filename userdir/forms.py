"""Input validation for signup, profile and sign-in forms."""
from __future__ import annotations

import re
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, ValidationInfo, field_validator

EMAIL_PATTERN = re.compile(r"^[\w+\-.]+@[a-z\d\-.]+\.[a-z]+$", re.IGNORECASE)

NAME_MAX_LENGTH = 50
PASSWORD_MIN_LENGTH = 6
PASSWORD_MAX_LENGTH = 40

FIELD_LABELS = {
    "name": "Name",
    "email": "Email",
    "password": "Password",
    "password_confirmation": "Password confirmation",
}


def _clean_name(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("can't be blank")
    if len(stripped) > NAME_MAX_LENGTH:
        raise ValueError(f"is too long (maximum is {NAME_MAX_LENGTH} characters)")
    return stripped


def _clean_email(value: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError("can't be blank")
    if not EMAIL_PATTERN.match(stripped):
        raise ValueError("is invalid")
    return stripped.lower()


def _check_password_length(value: str) -> str:
    if len(value) < PASSWORD_MIN_LENGTH:
        raise ValueError(f"is too short (minimum is {PASSWORD_MIN_LENGTH} characters)")
    if len(value) > PASSWORD_MAX_LENGTH:
        raise ValueError(f"is too long (maximum is {PASSWORD_MAX_LENGTH} characters)")
    return value


def error_messages(exc: ValidationError) -> List[str]:
    """Flatten a pydantic error into human readable ``"<Field> <problem>"`` lines."""

    messages: List[str] = []
    for error in exc.errors():
        ctx = error.get("ctx") or {}
        detail = str(ctx["error"]) if "error" in ctx else str(error.get("msg", "is invalid"))
        loc = error.get("loc") or ()
        if not loc:
            messages.append(detail)
            continue
        field = str(loc[0])
        label = FIELD_LABELS.get(field, field.replace("_", " ").capitalize())
        messages.append(f"{label} {detail}")
    return messages


class SignupForm(BaseModel):
    """Fields submitted when registering a new account."""

    model_config = ConfigDict(extra="ignore", validate_default=True)

    name: str = ""
    email: str = ""
    password: str = ""
    password_confirmation: str = ""

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        return _clean_name(value)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        return _clean_email(value)

    @field_validator("password")
    @classmethod
    def _validate_password(cls, value: str) -> str:
        if not value:
            raise ValueError("can't be blank")
        return _check_password_length(value)

    @field_validator("password_confirmation")
    @classmethod
    def _validate_confirmation(cls, value: str, info: ValidationInfo) -> str:
        password = info.data.get("password")
        if password is not None and value != password:
            raise ValueError("doesn't match Password")
        return value


class ProfileUpdateForm(BaseModel):
    """Partial profile changes; fields left out are not touched.

    An empty password keeps the stored credential.
    """

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    password_confirmation: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _clean_name(value)

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _clean_email(value)

    @field_validator("password")
    @classmethod
    def _validate_password(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return _check_password_length(value)

    @field_validator("password_confirmation")
    @classmethod
    def _validate_confirmation(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        password = info.data.get("password")
        if password and value != password:
            raise ValueError("doesn't match Password")
        return value

    def profile_changes(self) -> Dict[str, str]:
        changes: Dict[str, str] = {}
        if self.name is not None:
            changes["name"] = self.name
        if self.email is not None:
            changes["email"] = self.email
        return changes

    @property
    def new_password(self) -> Optional[str]:
        return self.password or None


class SignInForm(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str = ""
    password: str = ""

    @field_validator("email")
    @classmethod
    def _strip_email(cls, value: str) -> str:
        return value.strip()


__all__ = [
    "EMAIL_PATTERN",
    "NAME_MAX_LENGTH",
    "PASSWORD_MAX_LENGTH",
    "PASSWORD_MIN_LENGTH",
    "ProfileUpdateForm",
    "SignInForm",
    "SignupForm",
    "error_messages",
]
