"""Pydantic schemas for user profiles.

Field rules follow the profile form the clients submit:
    - email: something@domain.tld (the identity key, required)
    - mobile: exactly 10 digits
    - loginId: exactly 8 letters or digits
    - password: lowercase + uppercase + symbol, at least 6 characters

Unknown fields in the request body are dropped (field allowlist).
"""
import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MOBILE_RE = re.compile(r"^[0-9]{10}$")
LOGIN_ID_RE = re.compile(r"^[A-Za-z0-9]{8}$")
PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*[\W_]).{6,}$")


def _check(pattern: re.Pattern, value: Optional[str], label: str) -> Optional[str]:
    if value is None:
        return value
    if not pattern.match(value):
        raise ValueError(f"{label} is invalid")
    return value


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class UserCreate(BaseModel):
    """Input schema for saving a user profile."""
    email: str = Field(..., description="Identity key")
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    mobile: Optional[str] = None
    address: Optional[Address] = None
    loginId: Optional[str] = None
    password: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _check(EMAIL_RE, value.strip(), "email")

    @field_validator("mobile")
    @classmethod
    def _mobile(cls, value: Optional[str]) -> Optional[str]:
        return _check(MOBILE_RE, value, "mobile")

    @field_validator("loginId")
    @classmethod
    def _login_id(cls, value: Optional[str]) -> Optional[str]:
        return _check(LOGIN_ID_RE, value, "loginId")

    @field_validator("password")
    @classmethod
    def _password(cls, value: Optional[str]) -> Optional[str]:
        return _check(PASSWORD_RE, value, "password")


class UserProfile(BaseModel):
    """A stored user profile as returned to clients (never includes the password)."""
    email: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    mobile: Optional[str] = None
    address: Address = Field(default_factory=Address)
    loginId: Optional[str] = None
    createdAt: float
    updatedAt: float
