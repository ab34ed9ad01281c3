from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

import jwt

from chirpy.logging import get_logger
from chirpy.service.errors import (
    SigningError,
    SubjectFormatError,
    TokenExpiredError,
    TokenKindMismatchError,
    TokenMalformedError,
)

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TTL = timedelta(hours=1)
REFRESH_TOKEN_TTL = timedelta(days=60)

_SUBJECT_RE = re.compile(r"[0-9]+")


class TokenKind(str, Enum):
    """Issuer labels carried in the ``iss`` claim."""

    ACCESS = "chirpy-access"
    REFRESH = "chirpy-refresh"


@dataclass(frozen=True)
class TokenClaims:
    kind: TokenKind
    subject: str
    issued_at: datetime
    expires_at: datetime
    jti: Optional[str]
    raw: str

    @property
    def user_id(self) -> int:
        if not _SUBJECT_RE.fullmatch(self.subject):
            raise SubjectFormatError("token subject is not a user id")
        return int(self.subject)

    def require(self, kind: TokenKind) -> "TokenClaims":
        if self.kind is not kind:
            raise TokenKindMismatchError(
                "token kind not accepted here",
                detail={"expected": kind.value, "actual": self.kind.value},
            )
        return self


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def token_lifetime(kind: TokenKind, requested_expiry_seconds: Optional[int] = None) -> timedelta:
    """Lifetime for a new token.

    Refresh tokens always get 60 days. Access tokens get one hour unless a
    shorter positive lifetime is requested; longer requests are clamped.
    """
    if kind is TokenKind.REFRESH:
        return REFRESH_TOKEN_TTL
    if requested_expiry_seconds is None or requested_expiry_seconds <= 0:
        return ACCESS_TOKEN_TTL
    # Clamp as integers; timedelta overflows on huge requests
    ceiling = int(ACCESS_TOKEN_TTL.total_seconds())
    return timedelta(seconds=min(requested_expiry_seconds, ceiling))


def issue_token(
    user_id: int,
    kind: TokenKind,
    secret: str,
    requested_expiry_seconds: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
) -> str:
    if not secret:
        raise SigningError("signing secret is not configured")
    issued_at = now or _utcnow()
    payload: Dict[str, Any] = {
        "iss": kind.value,
        "sub": str(user_id),
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + token_lifetime(kind, requested_expiry_seconds)).timestamp()),
        "jti": uuid.uuid4().hex,
    }
    try:
        return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)
    except jwt.PyJWTError as exc:
        logger.error("token_signing_failed", kind=kind.value, error=str(exc))
        raise SigningError("unable to sign token") from exc


def authorize(token: str, secret: str) -> TokenClaims:
    """Verify ``token`` and decode its claims.

    The token kind is decoded from ``iss`` here, once. Whether that kind is
    acceptable is left to the calling flow (see ``TokenClaims.require``).
    """
    if not secret:
        raise SigningError("signing secret is not configured")
    if not token:
        raise TokenMalformedError("missing token")
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "iat", "sub", "iss"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError("token expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.warning("token_rejected", error_type=type(exc).__name__)
        raise TokenMalformedError("invalid token") from exc

    try:
        kind = TokenKind(payload["iss"])
    except ValueError as exc:
        raise TokenKindMismatchError("unknown token issuer") from exc
    return TokenClaims(
        kind=kind,
        subject=str(payload["sub"]),
        issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        jti=payload.get("jti"),
        raw=token,
    )
