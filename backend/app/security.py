"""Operator authentication: PBKDF2 password hashes, HS256 bearer tokens and
the building scope each caller is allowed to act on."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from . import models
from .database import get_db

JWT_SECRET_ENV = "JWT_SECRET"
ACCESS_TOKEN_EXPIRE_MINUTES_ENV = "ACCESS_TOKEN_EXPIRE_MINUTES"
DEFAULT_TOKEN_LIFETIME = timedelta(minutes=30)

PBKDF2_DEFAULT_ITERATIONS = 390_000
PBKDF2_SALT_BYTES = 16

TOKEN_HEADER = {"typ": "JWT", "alg": "HS256"}

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


class SecurityConfigurationError(RuntimeError):
    """Raised when mandatory security settings are missing or invalid."""


class TokenError(ValueError):
    """A bearer token that is malformed, forged or expired."""


def _pbkdf2(password: str, salt: bytes, iterations: int) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)


def generate_password_hash(password: str, *, iterations: int = PBKDF2_DEFAULT_ITERATIONS) -> str:
    """Return ``"<iterations>$<salt>$<digest>"`` with urlsafe base64 parts."""

    if not password:
        raise ValueError("password must not be empty")
    salt = secrets.token_bytes(PBKDF2_SALT_BYTES)
    digest = _pbkdf2(password, salt, iterations)
    encoded = [base64.urlsafe_b64encode(part).decode("ascii") for part in (salt, digest)]
    return "$".join([str(iterations), *encoded])


def verify_password(password: str, stored_hash: str) -> bool:
    try:
        raw_iterations, raw_salt, raw_digest = stored_hash.split("$")
        iterations = int(raw_iterations)
        salt = base64.urlsafe_b64decode(raw_salt)
        digest = base64.urlsafe_b64decode(raw_digest)
    except (ValueError, binascii.Error) as exc:
        raise SecurityConfigurationError("Stored password hash is invalid") from exc
    return hmac.compare_digest(_pbkdf2(password, salt, iterations), digest)


@lru_cache(maxsize=1)
def _load_jwt_key() -> bytes:
    secret = os.getenv(JWT_SECRET_ENV)
    if not secret:
        raise SecurityConfigurationError(f"Environment variable '{JWT_SECRET_ENV}' is required")
    try:
        return base64.urlsafe_b64decode(secret)
    except (ValueError, binascii.Error):
        return secret.encode("utf-8")


def _token_lifetime() -> timedelta:
    raw = os.getenv(ACCESS_TOKEN_EXPIRE_MINUTES_ENV, "").strip()
    if not raw:
        return DEFAULT_TOKEN_LIFETIME
    if not raw.isdigit() or int(raw) == 0:
        raise SecurityConfigurationError(
            f"{ACCESS_TOKEN_EXPIRE_MINUTES_ENV} must be a positive integer"
        )
    return timedelta(minutes=int(raw))


def _b64_segment(data: dict[str, Any]) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64_bytes(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _signature(signing_input: str, key: bytes) -> bytes:
    return hmac.new(key, signing_input.encode("ascii"), hashlib.sha256).digest()


def encode_token(claims: dict[str, Any], key: bytes) -> str:
    signing_input = f"{_b64_segment(TOKEN_HEADER)}.{_b64_segment(claims)}"
    signature = base64.urlsafe_b64encode(_signature(signing_input, key)).rstrip(b"=")
    return f"{signing_input}.{signature.decode('ascii')}"


def decode_token(token: str, key: bytes) -> dict[str, Any]:
    """Verify signature and expiry and return the claims."""

    try:
        signing_input, _, raw_signature = token.rpartition(".")
        signature = _b64_bytes(raw_signature)
        claims = json.loads(_b64_bytes(signing_input.split(".")[1]))
    except (ValueError, IndexError, binascii.Error) as exc:
        raise TokenError("Invalid token") from exc
    if not signing_input or not hmac.compare_digest(signature, _signature(signing_input, key)):
        raise TokenError("Invalid token")

    expires = claims.get("exp") if isinstance(claims, dict) else None
    if not isinstance(expires, int):
        raise TokenError("Invalid token")
    if datetime.now(timezone.utc).timestamp() >= expires:
        raise TokenError("Token expired")
    return claims


@dataclass(frozen=True)
class CallerIdentity:
    """Authenticated operator and the scope of buildings they may act on."""

    user_id: str
    username: str
    role: models.UserRole

    @property
    def is_admin(self) -> bool:
        return self.role is models.UserRole.ADMIN

    def can_manage(self, building: Optional[models.Building]) -> bool:
        """Admins are unscoped; managers only act on buildings they administer."""

        if self.is_admin:
            return True
        if building is None:
            return False
        return building.manager_id == self.user_id

    @classmethod
    def from_user(cls, user: models.User) -> "CallerIdentity":
        return cls(user_id=user.id, username=user.username, role=models.UserRole(user.role))


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def authenticate_user(db: Session, username: str, password: str) -> CallerIdentity:
    """Check credentials; usernames are stored lower-case."""

    user = (
        db.query(models.User)
        .filter(models.User.username == username.strip().lower())
        .first()
    )
    if user is None or not user.is_active or not verify_password(password, user.password_hash):
        raise _unauthorized("Invalid credentials")
    return CallerIdentity.from_user(user)


def create_access_token(identity: CallerIdentity) -> str:
    expires = datetime.now(timezone.utc) + _token_lifetime()
    claims: dict[str, Any] = {
        "sub": identity.user_id,
        "role": identity.role.value,
        "exp": int(expires.timestamp()),
    }
    return encode_token(claims, _load_jwt_key())


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> CallerIdentity:
    try:
        claims = decode_token(token, _load_jwt_key())
    except TokenError as exc:
        raise _unauthorized(str(exc)) from exc
    user_id = claims.get("sub")
    user = db.get(models.User, user_id) if isinstance(user_id, str) else None
    if user is None or not user.is_active:
        raise _unauthorized("Invalid token")
    # The stored role wins over the token claim so demotions apply immediately.
    return CallerIdentity.from_user(user)


def require_admin(identity: CallerIdentity = Depends(get_current_user)) -> CallerIdentity:
    if not identity.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return identity
