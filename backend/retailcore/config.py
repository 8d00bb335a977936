# backend/retailcore/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/retailcore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///retailcore.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bounded wait on locked rows / busy database; surfaces as InternalError
    STORAGE_TIMEOUT_SECONDS = _int_env("STORAGE_TIMEOUT_SECONDS", 10)

    # Signed tokens (falls back to SECRET_KEY when unset)
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY") or SECRET_KEY
    JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.environ.get("JWT_ISSUER", "retailcore")
    JWT_AUDIENCE = os.environ.get("JWT_AUDIENCE", "retailcore-api")
    ACCESS_TOKEN_TTL_MINUTES = _int_env("ACCESS_TOKEN_TTL_MINUTES", 15)
    REFRESH_TOKEN_TTL_DAYS = _int_env("REFRESH_TOKEN_TTL_DAYS", 7)
    MAX_REFRESH_TOKENS_PER_USER = _int_env("MAX_REFRESH_TOKENS_PER_USER", 5)

    # Account lockout
    MAX_LOGIN_ATTEMPTS = _int_env("MAX_LOGIN_ATTEMPTS", 5)
    LOCKOUT_MINUTES = _int_env("LOCKOUT_MINUTES", 120)

    # bcrypt cost factor
    BCRYPT_ROUNDS = _int_env("BCRYPT_ROUNDS", 12)
