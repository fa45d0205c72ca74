"""Authentication endpoints and permission dependencies."""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from threading import Lock
from typing import Literal
from uuid import uuid4

import bcrypt
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt  # type: ignore[import-untyped]
from pydantic import BaseModel, ValidationError

from baryabazaar.api.deps import commit, get_ledger
from baryabazaar.core.config import Settings, get_settings
from baryabazaar.models import User, UserRole
from baryabazaar.schemas.admin import UserRead
from baryabazaar.services.facade import Ledger
from baryabazaar.services.roles import feature_flags, has_any_permission, has_permission

logger = logging.getLogger(__name__)

router = APIRouter()
security_scheme = HTTPBearer(auto_error=True)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class TokenPayload(BaseModel):
    sub: str
    role: UserRole
    type: Literal["access", "refresh"]
    iat: datetime
    exp: datetime
    jti: str


class ProfileResponse(BaseModel):
    user: UserRead
    features: dict[str, bool]


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: str
    name: str
    role: UserRole
    token_id: str

    def can(self, permission: str) -> bool:
        return has_permission(self.role, permission)


class TradingSessions:
    """Current refresh token per user; anything older is treated as revoked.

    A login or a refresh replaces the user's token id, so a replayed refresh
    token no longer matches and is refused. Logout forgets the user entirely.
    """

    def __init__(self) -> None:
        self._current: dict[str, str] = {}
        self._lock = Lock()

    def start(self, user_id: str, token_id: str) -> None:
        with self._lock:
            self._current[user_id] = token_id

    def rotate(self, user_id: str, presented: str, replacement: str) -> bool:
        with self._lock:
            if self._current.get(user_id) != presented:
                return False
            self._current[user_id] = replacement
            return True

    def end(self, user_id: str) -> None:
        with self._lock:
            self._current.pop(user_id, None)

    def reset(self) -> None:
        with self._lock:
            self._current.clear()


trading_sessions = TradingSessions()

TokenKind = Literal["access", "refresh"]


def _encode(user: User, kind: TokenKind, lifetime: timedelta, settings: Settings) -> tuple[str, str]:
    issued = datetime.now(UTC)
    token_id = uuid4().hex
    claims = {
        "sub": user.id,
        "role": user.role.value,
        "type": kind,
        "jti": token_id,
        "iat": issued,
        "exp": issued + lifetime,
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm), token_id


def _issue_tokens(user: User, settings: Settings) -> tuple[TokenResponse, str]:
    """Return a fresh access/refresh pair and the refresh token id."""

    access, _ = _encode(user, "access", timedelta(minutes=settings.access_token_expire_minutes), settings)
    refresh, refresh_id = _encode(user, "refresh", timedelta(days=settings.refresh_token_expire_days), settings)
    tokens = TokenResponse(
        access_token=access,
        refresh_token=refresh,
        expires_in=settings.access_token_expire_minutes * 60,
    )
    return tokens, refresh_id


def _claims(token: str, settings: Settings, expected: TokenKind) -> TokenPayload:
    try:
        payload = TokenPayload.model_validate(
            jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        )
    except (JWTError, ValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
    if payload.type != expected:
        # Access tokens are rejected as credentials at /refresh with 400; the reverse is a 401.
        code = status.HTTP_400_BAD_REQUEST if expected == "refresh" else status.HTTP_401_UNAUTHORIZED
        raise HTTPException(status_code=code, detail="Invalid token type")
    return payload


def hash_password(raw_password: str) -> str:
    return bcrypt.hashpw(raw_password.encode(), bcrypt.gensalt()).decode()


def _check_password(raw_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(raw_password.encode(), hashed_password.encode())
    except ValueError:
        return False


def _password_matches(user: User, password: str, settings: Settings) -> bool:
    if user.hashed_password:
        return _check_password(password, user.hashed_password)
    # Accounts created without a password share the configured demo credential.
    return _check_password(password, settings.default_user_hashed_password) or password == settings.default_user_password


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security_scheme),
    ledger: Ledger = Depends(get_ledger),
) -> AuthenticatedUser:
    claims = _claims(credentials.credentials, get_settings(), "access")
    user = ledger.registry.get_user(claims.sub)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    request.state.actor_email = user.email
    return AuthenticatedUser(id=user.id, email=user.email, name=user.name, role=user.role, token_id=claims.jti)


def require_permission(*permissions: str) -> Callable[..., AuthenticatedUser]:
    """Allow the request when the caller holds any of ``permissions``."""

    def dependency(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if not has_any_permission(user.role, permissions):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user

    return dependency


@router.post("/login", response_model=TokenResponse, summary="Sign in and open an HR session")
def login(credentials: LoginRequest, ledger: Ledger = Depends(get_ledger)) -> TokenResponse:
    settings = get_settings()
    if "@" not in credentials.email:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Invalid email address")
    user = ledger.registry.get_user_by_email(credentials.email)
    if user is None or not _password_matches(user, credentials.password, settings):
        logger.info("Rejected sign-in for %s", credentials.email.split("@", 1)[-1])
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    tokens, refresh_id = _issue_tokens(user, settings)
    ledger.hr.login(user)
    commit(ledger.session)
    trading_sessions.start(user.id, refresh_id)
    return tokens


@router.post("/refresh", response_model=TokenResponse, summary="Exchange a refresh token for a new pair")
def refresh_tokens(body: RefreshRequest, ledger: Ledger = Depends(get_ledger)) -> TokenResponse:
    settings = get_settings()
    claims = _claims(body.refresh_token, settings, "refresh")
    user = ledger.registry.get_user(claims.sub)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")

    tokens, refresh_id = _issue_tokens(user, settings)
    if not trading_sessions.rotate(user.id, claims.jti, refresh_id):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token revoked")
    return tokens


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Close the HR session")
def logout(
    user: AuthenticatedUser = Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
) -> None:
    record = ledger.registry.get_user(user.id)
    if record is not None:
        ledger.hr.logout(record)
        commit(ledger.session)
    trading_sessions.end(user.id)


@router.get("/me", response_model=ProfileResponse, summary="Current user and feature flags")
def me(
    user: AuthenticatedUser = Depends(get_current_user),
    ledger: Ledger = Depends(get_ledger),
) -> ProfileResponse:
    record = ledger.registry.get_user(user.id)
    return ProfileResponse(user=UserRead.model_validate(record), features=feature_flags(user.role))


__all__ = [
    "AuthenticatedUser",
    "TradingSessions",
    "get_current_user",
    "hash_password",
    "require_permission",
    "router",
    "trading_sessions",
]
