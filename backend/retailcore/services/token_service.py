# Overview: Signed access/refresh tokens (python-jose, HS256 by default).

from __future__ import annotations

import calendar
import hashlib
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from ..errors import UnauthorizedError
from ..time_utils import to_utc_z, utcnow

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": "Bearer",
            "access_expires_at": to_utc_z(self.access_expires_at),
            "refresh_expires_at": to_utc_z(self.refresh_expires_at),
        }


@dataclass(frozen=True)
class EncodedToken:
    token: str
    jti: str
    issued_at: datetime
    expires_at: datetime


def hash_token(token: str) -> str:
    """SHA-256 hex of the raw token; only the hash is ever stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _timestamp(dt: datetime) -> int:
    return calendar.timegm(dt.utctimetuple())


def encode_token(
    user_id: int,
    token_type: str,
    ttl: timedelta,
    extra_claims: dict | None = None,
) -> EncodedToken:
    config = current_app.config
    issued_at = utcnow().replace(microsecond=0)
    expires_at = issued_at + ttl
    jti = uuid.uuid4().hex

    claims = dict(extra_claims or {})
    claims.update({
        "sub": str(user_id),
        "type": token_type,
        "jti": jti,
        "iat": _timestamp(issued_at),
        "exp": _timestamp(expires_at),
        "iss": config["JWT_ISSUER"],
        "aud": config["JWT_AUDIENCE"],
    })
    token = jwt.encode(claims, config["JWT_SECRET_KEY"], algorithm=config["JWT_ALGORITHM"])
    return EncodedToken(token=token, jti=jti, issued_at=issued_at, expires_at=expires_at)


def create_access_token(user) -> EncodedToken:
    ttl = timedelta(minutes=current_app.config["ACCESS_TOKEN_TTL_MINUTES"])
    return encode_token(
        user.id,
        ACCESS,
        ttl,
        extra_claims={"role": user.role, "branch": user.branch_id},
    )


def create_refresh_token(user) -> EncodedToken:
    ttl = timedelta(days=current_app.config["REFRESH_TOKEN_TTL_DAYS"])
    return encode_token(user.id, REFRESH, ttl)


def decode_token(token: str, expected_type: str) -> dict:
    """
    Verify signature, expiry, issuer, audience and token type.

    Raises UnauthorizedError with reason "expired" for a correctly signed
    but expired token, "invalid" for everything else.
    """
    if not token or not isinstance(token, str):
        raise UnauthorizedError("Authentication required", reason=UnauthorizedError.MISSING)

    config = current_app.config
    try:
        claims = jwt.decode(
            token,
            config["JWT_SECRET_KEY"],
            algorithms=[config["JWT_ALGORITHM"]],
            audience=config["JWT_AUDIENCE"],
            issuer=config["JWT_ISSUER"],
        )
    except ExpiredSignatureError as exc:
        raise UnauthorizedError("Token expired", reason=UnauthorizedError.EXPIRED) from exc
    except JWTError as exc:
        raise UnauthorizedError("Invalid token", reason=UnauthorizedError.INVALID) from exc

    if claims.get("type") != expected_type:
        raise UnauthorizedError("Invalid token type", reason=UnauthorizedError.INVALID)
    if not claims.get("sub"):
        raise UnauthorizedError("Invalid token", reason=UnauthorizedError.INVALID)
    return claims


def extract_bearer(credential: str | None) -> str:
    """
    Accept either a raw token or an Authorization header value.

    "Bearer <token>" and "<token>" both yield "<token>"; any other scheme,
    or an empty value, is treated as a missing credential.
    """
    if credential is None:
        raise UnauthorizedError("Authentication required", reason=UnauthorizedError.MISSING)
    value = credential.strip()
    if not value:
        raise UnauthorizedError("Authentication required", reason=UnauthorizedError.MISSING)

    parts = value.split(None, 1)
    if len(parts) == 2:
        scheme, token = parts
        if scheme.lower() != "bearer" or not token.strip():
            raise UnauthorizedError("Authentication required", reason=UnauthorizedError.MISSING)
        return token.strip()
    if parts[0].lower() == "bearer":
        raise UnauthorizedError("Authentication required", reason=UnauthorizedError.MISSING)
    return parts[0]
