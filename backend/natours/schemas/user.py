"""
Natours Backend: User and Authentication Schemas
=================================================

What:  Request bodies for signup/login/password flows and the public user shape.
Why:   The password and reset-token columns must never leak; UserResponse
       whitelists exactly the fields clients may see.
"""

import uuid
from typing import Optional

from pydantic import EmailStr, Field, field_validator, model_validator

from natours.models.user import USER_ROLES
from natours.schemas.common import CamelModel
from natours.security import escape_html

PASSWORD_MIN = 8
# bcrypt refuses passwords longer than 72 bytes (not characters)
PASSWORD_MAX_BYTES = 72
NAME_MAX = 100


def _clean_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = escape_html(value.strip())
    if not value:
        raise ValueError("Please tell us your name!")
    # Measured after escaping: that is what the String(100) column stores
    if len(value) > NAME_MAX:
        raise ValueError(f"A name must not be more than {NAME_MAX} characters")
    return value


class _PasswordPair(CamelModel):
    password: str = Field(min_length=PASSWORD_MIN)
    password_confirm: str

    @field_validator("password")
    @classmethod
    def fits_bcrypt(cls, v: str) -> str:
        if len(v.encode("utf-8")) > PASSWORD_MAX_BYTES:
            raise ValueError(f"A password must not be longer than {PASSWORD_MAX_BYTES} bytes")
        return v

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.password_confirm:
            raise ValueError("Passwords are not the same!")
        return self


class SignupRequest(_PasswordPair):
    """POST /users/signup. A role is never accepted here; everyone starts as 'user'."""
    name: str
    email: EmailStr

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_name(v)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class LoginRequest(CamelModel):
    # Optional so a missing field produces the friendly 400 from AuthService
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordRequest(CamelModel):
    email: Optional[str] = None


class ResetPasswordRequest(_PasswordPair):
    pass


class UpdatePasswordRequest(_PasswordPair):
    password_current: str


class UpdateMeRequest(CamelModel):
    """PATCH /users/updateme: only name and email are applied."""
    name: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_name(v)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v


class UserUpdate(UpdateMeRequest):
    """PATCH /users/{id} (admin). Passwords are not updatable here."""
    role: Optional[str] = None
    photo: Optional[str] = Field(default=None, max_length=255)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in USER_ROLES:
            raise ValueError(f"Role is either: {', '.join(USER_ROLES)}")
        return v


class UserResponse(CamelModel):
    id: uuid.UUID
    name: str
    email: str
    photo: str
    role: str
