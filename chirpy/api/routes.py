from __future__ import annotations

import hmac
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response

from chirpy.api.schemas import (
    ChirpRequest,
    ChirpResponse,
    CredentialsRequest,
    LoginRequest,
    LoginResponse,
    PolkaWebhookRequest,
    TokenResponse,
    UserResponse,
    ValidateChirpResponse,
)
from chirpy.logging import get_logger
from chirpy.service.auth import AuthContext
from chirpy.service.errors import NotFoundError
from chirpy.service.runtime import get_runtime

logger = get_logger(__name__)

router = APIRouter(prefix="/api")

UPGRADE_EVENT = "user.upgraded"


def _http_error(code: str, message: str, status_code: int) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": message, "code": code})


def _extract_scheme(header: Optional[str], scheme: str) -> Optional[str]:
    if not header:
        return None
    prefix = f"{scheme.lower()} "
    if not header.lower().startswith(prefix):
        return None
    value = header[len(prefix):].strip()
    return value or None


def get_bearer_token(authorization: Optional[str] = Header(None)) -> str:
    token = _extract_scheme(authorization, "Bearer")
    if not token:
        raise _http_error("unauthorized", "missing bearer token", status_code=401)
    return token


def get_user(token: str = Depends(get_bearer_token)) -> AuthContext:
    return get_runtime().auth.authenticate(token)


def require_polka_key(authorization: Optional[str] = Header(None)) -> None:
    expected = get_runtime().settings.polka_api_key
    presented = _extract_scheme(authorization, "ApiKey")
    if not expected or not presented or not hmac.compare_digest(presented, expected):
        logger.warning("polka_webhook_unauthorized", key_present=presented is not None)
        raise _http_error("unauthorized", "invalid api key", status_code=401)


# -- chirp validation -------------------------------------------------------


@router.post("/validate_chirp", response_model=ValidateChirpResponse, tags=["chirps"])
def validate_chirp(body: ChirpRequest):
    """Length-check a chirp and return it with profanity masked."""
    return ValidateChirpResponse(cleaned_body=get_runtime().chirps.validate(body.body))


# -- users ------------------------------------------------------------------


@router.post("/users", response_model=UserResponse, status_code=201, tags=["users"])
def create_user(body: CredentialsRequest):
    user = get_runtime().auth.signup(body.email, body.password)
    return UserResponse.from_user(user)


@router.get("/users", response_model=List[UserResponse], tags=["users"])
def list_users():
    return [UserResponse.from_user(u) for u in get_runtime().store.list_users()]


@router.get("/users/{user_id}", response_model=UserResponse, tags=["users"])
def get_user_by_id(user_id: int):
    user = get_runtime().store.get_user(user_id)
    if user is None:
        raise NotFoundError("user not found", detail={"user_id": user_id})
    return UserResponse.from_user(user)


@router.put("/users", response_model=UserResponse, tags=["users"])
def update_user(body: CredentialsRequest, principal: AuthContext = Depends(get_user)):
    """Replace the caller's email and password."""
    user = get_runtime().auth.update_credentials(principal.user_id, body.email, body.password)
    return UserResponse.from_user(user)


# -- session lifecycle ------------------------------------------------------


@router.post("/login", response_model=LoginResponse, tags=["auth"])
def login(body: LoginRequest):
    """Authenticate with email and password.

    Returns an access token (one hour at most, shorter if
    ``expires_in_seconds`` asks for it) and a 60-day refresh token.

    Raises:
        401: If the email is unknown or the password is wrong
    """
    result = get_runtime().auth.login(body.email, body.password, body.expires_in_seconds)
    return LoginResponse(
        **result.user.public_view(),
        token=result.access_token,
        refresh_token=result.refresh_token,
    )


@router.post("/refresh", response_model=TokenResponse, tags=["auth"])
def refresh(token: str = Depends(get_bearer_token)):
    return TokenResponse(token=get_runtime().auth.refresh(token))


@router.post("/revoke", status_code=204, tags=["auth"])
def revoke(token: str = Depends(get_bearer_token)):
    get_runtime().auth.revoke(token)
    return Response(status_code=204)


# -- chirps -----------------------------------------------------------------


@router.post("/chirps", response_model=ChirpResponse, status_code=201, tags=["chirps"])
def create_chirp(body: ChirpRequest, principal: AuthContext = Depends(get_user)):
    chirp = get_runtime().chirps.create(body.body, principal.user_id)
    return ChirpResponse.from_chirp(chirp)


@router.get("/chirps", response_model=List[ChirpResponse], tags=["chirps"])
def list_chirps(author_id: Optional[int] = Query(None)):
    return [ChirpResponse.from_chirp(c) for c in get_runtime().chirps.list(author_id)]


@router.get("/chirps/{chirp_id}", response_model=ChirpResponse, tags=["chirps"])
def get_chirp(chirp_id: int):
    return ChirpResponse.from_chirp(get_runtime().chirps.get(chirp_id))


@router.delete("/chirps/{chirp_id}", status_code=204, tags=["chirps"])
def delete_chirp(chirp_id: int, principal: AuthContext = Depends(get_user)):
    get_runtime().chirps.delete(chirp_id, principal.user_id)
    return Response(status_code=204)


# -- webhooks ---------------------------------------------------------------


@router.post(
    "/polka/webhooks",
    status_code=204,
    dependencies=[Depends(require_polka_key)],
    tags=["webhooks"],
)
def polka_webhook(body: PolkaWebhookRequest):
    """Mark a user as Chirpy Red when Polka reports a completed upgrade.

    Other events are acknowledged and ignored.
    """
    if body.event != UPGRADE_EVENT:
        logger.info("polka_webhook_ignored", event=body.event)
        return Response(status_code=204)
    if body.data is None:
        raise _http_error("validation_error", "data.user_id is required", status_code=400)
    user = get_runtime().store.set_upgraded(body.data.user_id)
    if user is None:
        raise NotFoundError("user not found", detail={"user_id": body.data.user_id})
    return Response(status_code=204)
