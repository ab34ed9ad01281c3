from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chirpy.storage.models import Chirp, User

MAX_EMAIL_LENGTH = 254


def _validate_email(value: str) -> str:
    value = value.strip()
    if not value or "@" not in value:
        raise ValueError("invalid email address")
    return value


class CredentialsRequest(BaseModel):
    """Body for creating a user and for updating one's own credentials."""

    email: str = Field(max_length=MAX_EMAIL_LENGTH)
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _validate_credentials_email(cls, value: str) -> str:
        return _validate_email(value)


class LoginRequest(BaseModel):
    email: str = Field(max_length=MAX_EMAIL_LENGTH)
    password: str
    expires_in_seconds: Optional[int] = None


class ChirpRequest(BaseModel):
    body: str


class PolkaWebhookData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: int


class PolkaWebhookRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: str
    data: Optional[PolkaWebhookData] = None


class UserResponse(BaseModel):
    id: int
    email: str
    is_chirpy_red: bool = False

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(**user.public_view())


class LoginResponse(UserResponse):
    token: str
    refresh_token: str


class TokenResponse(BaseModel):
    token: str


class ChirpResponse(BaseModel):
    id: int
    body: str
    author_id: int

    @classmethod
    def from_chirp(cls, chirp: Chirp) -> "ChirpResponse":
        return cls(id=chirp.id, body=chirp.body, author_id=chirp.author_id)


class ValidateChirpResponse(BaseModel):
    cleaned_body: str


class ErrorBody(BaseModel):
    error: str
    code: Optional[str] = None
