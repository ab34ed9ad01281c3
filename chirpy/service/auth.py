from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol

from chirpy.logging import get_logger
from chirpy.service.credentials import hash_password, verify_password
from chirpy.service.errors import (
    CredentialError,
    NotFoundError,
    RefreshTokenNotFoundError,
    TokenExpiredError,
)
from chirpy.service.tokens import (
    REFRESH_TOKEN_TTL,
    TokenClaims,
    TokenKind,
    authorize,
    issue_token,
)
from chirpy.storage.models import RefreshToken, User


class AuthStore(Protocol):
    def create_user(self, email: str, password_hash: str) -> User: ...

    def get_user(self, user_id: int) -> Optional[User]: ...

    def get_user_by_email(self, email: str) -> Optional[User]: ...

    def list_users(self) -> List[User]: ...

    def update_user(self, user_id: int, email: str, password_hash: str) -> Optional[User]: ...

    def save_refresh_token(
        self, token: str, user_id: int, expires_at: datetime
    ) -> RefreshToken: ...

    def get_refresh_token(self, token: str) -> Optional[RefreshToken]: ...

    def delete_refresh_token(self, token: str) -> bool: ...


@dataclass
class AuthContext:
    user_id: int
    claims: TokenClaims


@dataclass
class LoginResult:
    user: User
    access_token: str
    refresh_token: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    """Login, refresh, revoke and access-token checks over a document store.

    ``clock`` stamps new tokens (``iat`` and ``exp``) and the persisted
    refresh-record expiry, and it decides when a stored refresh record has
    lapsed. JWT ``exp`` is checked by PyJWT in ``authorize`` against the real
    wall clock. A fake clock therefore only expires an access token if the
    token was issued under a clock set far enough in the past.
    """

    def __init__(
        self,
        store: AuthStore,
        secret: str,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store: AuthStore = store
        self._secret = secret
        self._clock = clock
        self.logger = get_logger(__name__)

    def signup(self, email: str, password: str) -> User:
        user = self.store.create_user(email, hash_password(password))
        self.logger.info("signup_completed", user_id=user.id)
        return user

    def login(
        self, email: str, password: str, expires_in_seconds: Optional[int] = None
    ) -> LoginResult:
        user = self.store.get_user_by_email(email)
        if not user or not verify_password(user.password_hash, password):
            self.logger.warning("login_failed", user_id=user.id if user else None)
            # Same error for unknown email and wrong password
            raise CredentialError("Incorrect email or password")

        now = self._clock()
        access = issue_token(
            user.id, TokenKind.ACCESS, self._secret, expires_in_seconds, now=now
        )
        refresh = issue_token(user.id, TokenKind.REFRESH, self._secret, now=now)
        self.store.save_refresh_token(refresh, user.id, now + REFRESH_TOKEN_TTL)
        self.logger.info("login_succeeded", user_id=user.id)
        return LoginResult(user=user, access_token=access, refresh_token=refresh)

    def refresh(self, token: str) -> str:
        """Mint a new one-hour access token from a persisted refresh token.

        The persisted expiry decides validity, not the token's own ``exp``
        claim. The refresh token itself is not rotated.
        """
        claims = authorize(token, self._secret).require(TokenKind.REFRESH)
        record = self.store.get_refresh_token(token)
        if record is None:
            self.logger.warning("refresh_token_unknown", subject=claims.subject)
            raise RefreshTokenNotFoundError("refresh token not found")
        now = self._clock()
        if record.expires_at <= now:
            self.logger.info("refresh_token_expired", user_id=record.user_id)
            raise TokenExpiredError("refresh token expired")
        return issue_token(claims.user_id, TokenKind.ACCESS, self._secret, now=now)

    def revoke(self, token: str) -> None:
        claims = authorize(token, self._secret).require(TokenKind.REFRESH)
        removed = self.store.delete_refresh_token(token)
        self.logger.info("refresh_token_revoked", subject=claims.subject, existed=removed)

    def authenticate(self, token: str) -> AuthContext:
        """Resolve an access token to the calling user id."""
        claims = authorize(token, self._secret).require(TokenKind.ACCESS)
        return AuthContext(user_id=claims.user_id, claims=claims)

    def update_credentials(self, user_id: int, email: str, password: str) -> User:
        user = self.store.update_user(user_id, email, hash_password(password))
        if user is None:
            raise NotFoundError("user not found", detail={"user_id": user_id})
        self.logger.info("credentials_updated", user_id=user_id)
        return user
