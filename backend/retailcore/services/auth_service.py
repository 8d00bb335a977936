# Overview: Service-layer operations for auth; login, lockout, tokens and user access.

"""
Authentication Service

WHY: Every action must be attributable. Passwords are bcrypt hashed,
lockout state lives on the user row, and the Principal for a request is
rebuilt from the database on every call so that role, permission, branch
and activation changes take effect without waiting for token expiry.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Failed logins increment login_attempts with a single UPDATE; reaching
  MAX_LOGIN_ATTEMPTS sets lock_until = now + LOCKOUT_MINUTES
- Refresh tokens are an allow-list of SHA-256 hashes, at most
  MAX_REFRESH_TOKENS_PER_USER per user
- Refresh rotation is a conditional DELETE; only one caller can redeem a
  given refresh token
"""

from __future__ import annotations

import re
from datetime import timedelta

import bcrypt
from flask import current_app
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from ..errors import (
    ConflictError,
    ForbiddenError,
    LockedError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from ..extensions import db
from ..identifiers import parse_id, try_parse_id
from ..models import Branch, RefreshToken, User
from ..permissions import (
    is_branch_scoped,
    is_known_role,
    normalize_permission,
    normalize_role,
    validate_permission_code,
)
from ..principal import Principal
from ..time_utils import as_naive_utc, utcnow
from . import audit_service, token_service
from .concurrency import begin_write, lock_for_update, run_transaction
from .token_service import TokenPair

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_UNSET = object()


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against bcrypt hash. Malformed hashes never match."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# User administration
# ---------------------------------------------------------------------------

def _normalize_email(email: str) -> str:
    normalized = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError("A valid email is required", details={"field": "email"})
    return normalized


def _validate_permissions(permissions) -> list[str]:
    if permissions is None:
        return []
    if isinstance(permissions, str) or not isinstance(permissions, (list, tuple, set, frozenset)):
        raise ValidationError("permissions must be a list", details={"field": "permissions"})

    result: list[str] = []
    invalid: list[str] = []
    for raw in permissions:
        code = normalize_permission(raw)
        if not validate_permission_code(code):
            invalid.append(str(raw))
        elif code not in result:
            result.append(code)

    if invalid:
        raise ValidationError("Unknown permissions", details={"permissions": invalid})
    return result


def _validate_role_and_branch(role, branch_id) -> tuple[str, int | None]:
    canonical = normalize_role(role)
    if not is_known_role(canonical):
        raise ValidationError("Unknown role", details={"field": "role", "role": role})

    parsed_branch = parse_id(branch_id, "branch_id") if branch_id is not None else None

    if is_branch_scoped(canonical):
        if parsed_branch is None:
            raise ValidationError(
                f"{canonical} must be assigned to a branch",
                details={"field": "branch_id"},
            )
        branch = db.session.get(Branch, parsed_branch)
        if not branch:
            raise NotFoundError("Branch not found")
        if not branch.is_active:
            raise ValidationError("Branch is inactive", details={"field": "branch_id"})
    elif parsed_branch is not None and not db.session.get(Branch, parsed_branch):
        raise NotFoundError("Branch not found")

    return canonical, parsed_branch


def create_user(
    email: str,
    password: str,
    full_name: str,
    role: str,
    branch_id=None,
    permissions=None,
) -> User:
    """
    Create a user.

    Branch-scoped roles require a branch. Permissions are stored in
    dot-notation and must come from the catalog.
    """
    normalized_email = _normalize_email(email)
    if not full_name or not full_name.strip():
        raise ValidationError("full_name is required", details={"field": "full_name"})

    canonical_role, parsed_branch = _validate_role_and_branch(role, branch_id)
    stored_permissions = _validate_permissions(permissions)

    if db.session.query(User).filter_by(email=normalized_email).first():
        raise ConflictError("Email already exists")

    user = User(
        email=normalized_email,
        full_name=full_name.strip(),
        password_hash=hash_password(password),
        role=canonical_role,
        permissions=stored_permissions,
        branch_id=parsed_branch,
        is_active=True,
        login_attempts=0,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Email already exists") from exc

    audit_service.record_event(
        "user.create",
        resource_type="user",
        resource_id=user.id,
        branch_id=user.branch_id,
        after=user.to_dict(),
    )
    return user


def get_user(user_id) -> User:
    user = db.session.get(User, parse_id(user_id, "user_id"))
    if not user:
        raise NotFoundError("User not found")
    return user


def get_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=(email or "").strip().lower()).first()


def update_user_access(
    user_id,
    *,
    role=_UNSET,
    permissions=_UNSET,
    branch_id=_UNSET,
    actor: Principal | None = None,
) -> User:
    """
    Change role, explicit permissions and/or branch.

    The branch invariant is re-checked against the resulting role. All
    refresh tokens are revoked so the next token pair reflects the change.
    """
    user = get_user(user_id)
    before = user.to_dict()

    new_role = user.role if role is _UNSET else role
    new_branch = user.branch_id if branch_id is _UNSET else branch_id
    canonical_role, parsed_branch = _validate_role_and_branch(new_role, new_branch)
    new_permissions = None if permissions is _UNSET else _validate_permissions(permissions)

    def _op():
        begin_write()
        locked_user = lock_for_update(db.session.query(User).filter_by(id=user.id)).first()
        locked_user.role = canonical_role
        locked_user.branch_id = parsed_branch
        if new_permissions is not None:
            locked_user.permissions = new_permissions
        db.session.execute(delete(RefreshToken).where(RefreshToken.user_id == locked_user.id))
        db.session.commit()
        return locked_user

    updated = run_transaction(_op, action="user.access_update")
    audit_service.record_event(
        "user.access_update",
        principal=actor,
        resource_type="user",
        resource_id=updated.id,
        branch_id=updated.branch_id,
        before=before,
        after=updated.to_dict(),
    )
    return updated


def set_user_active(user_id, is_active: bool, actor: Principal | None = None) -> User:
    user = get_user(user_id)

    def _op():
        user.is_active = bool(is_active)
        if not is_active:
            db.session.execute(delete(RefreshToken).where(RefreshToken.user_id == user.id))
        db.session.commit()
        return user

    updated = run_transaction(_op, action="user.set_active")
    audit_service.record_event(
        "user.activate" if is_active else "user.deactivate",
        principal=actor,
        resource_type="user",
        resource_id=updated.id,
        branch_id=updated.branch_id,
    )
    return updated


def unlock_user(user_id, actor: Principal | None = None) -> User:
    user = get_user(user_id)

    def _op():
        db.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(login_attempts=0, lock_until=None)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        return user

    updated = run_transaction(_op, action="user.unlock")
    db.session.refresh(updated)
    audit_service.record_event(
        "user.unlock",
        principal=actor,
        resource_type="user",
        resource_id=updated.id,
        branch_id=updated.branch_id,
    )
    return updated


def change_password(user_id, current_password, new_password, actor: Principal | None = None) -> int:
    """
    Replace the user's password after verifying the current one.

    The new password must pass the strength rules and differ from the
    current one. Every refresh token is revoked; returns how many.
    """
    if not isinstance(current_password, str) or not current_password:
        raise ValidationError("current_password is required", details={"field": "current_password"})
    if not isinstance(new_password, str) or not new_password:
        raise ValidationError("new_password is required", details={"field": "new_password"})
    validate_password_strength(new_password)

    user = get_user(user_id)
    if not verify_password(current_password, user.password_hash):
        error = UnauthorizedError("Current password is incorrect", reason=UnauthorizedError.INVALID)
        audit_service.record_failure(
            "user.password_change",
            error,
            principal=actor,
            actor_user_id=user.id,
            actor_email=user.email,
            resource_type="user",
            resource_id=user.id,
            branch_id=user.branch_id,
        )
        raise error
    if verify_password(new_password, user.password_hash):
        raise ValidationError(
            "New password must be different from current password",
            details={"field": "new_password"},
        )
    new_hash = hash_password(new_password)

    def _op():
        begin_write()
        db.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(password_hash=new_hash)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(delete(RefreshToken).where(RefreshToken.user_id == user.id))
        db.session.commit()
        return result.rowcount

    revoked = run_transaction(_op, action="user.password_change")
    db.session.refresh(user)
    audit_service.record_event(
        "user.password_change",
        principal=actor,
        actor_user_id=user.id,
        actor_email=user.email,
        resource_type="user",
        resource_id=user.id,
        branch_id=user.branch_id,
        reason=f"{revoked} refresh tokens revoked",
    )
    return revoked


def migrate_legacy_permissions() -> int:
    """
    Rewrite stored colon-notation grants ("sales:read") to dot-notation.

    Evaluation already accepts both; this is the explicit step that
    changes stored data. Returns the number of users updated.
    """
    def _op():
        changed = 0
        for user in db.session.query(User).order_by(User.id).all():
            stored = list(user.permissions or [])
            normalized: list[str] = []
            for code in stored:
                value = normalize_permission(code)
                if value and value not in normalized:
                    normalized.append(value)
            if normalized != stored:
                user.permissions = normalized
                changed += 1
        db.session.commit()
        return changed

    return run_transaction(_op, action="perms.migrate_legacy")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

def _max_attempts() -> int:
    return current_app.config["MAX_LOGIN_ATTEMPTS"]


def _lockout_duration() -> timedelta:
    return timedelta(minutes=current_app.config["LOCKOUT_MINUTES"])


def _check_account_usable(user: User, now=None) -> None:
    if not user.is_active:
        raise ForbiddenError("Account deactivated", details={"reason": "deactivated"})
    now = now or utcnow()
    lock_until = as_naive_utc(user.lock_until)
    if lock_until and lock_until > now:
        raise LockedError("Account temporarily locked", lock_until=lock_until)


def _register_failed_attempt(user: User, now) -> bool:
    """
    Count one failed password check. Returns True if it locked the account.

    An expired lock restarts the counter at 1.
    """
    lock_until = as_naive_utc(user.lock_until)
    if lock_until is not None and lock_until <= now:
        stmt = update(User).where(User.id == user.id).values(login_attempts=1, lock_until=None)
    else:
        stmt = update(User).where(User.id == user.id).values(login_attempts=User.login_attempts + 1)
    db.session.execute(stmt.execution_options(synchronize_session=False))

    lock_stmt = (
        update(User)
        .where(
            User.id == user.id,
            User.login_attempts >= _max_attempts(),
            User.lock_until.is_(None),
        )
        .values(lock_until=now + _lockout_duration())
        .execution_options(synchronize_session=False)
    )
    locked = db.session.execute(lock_stmt).rowcount == 1
    db.session.commit()
    return locked


def _store_refresh_token(user: User, encoded, user_agent=None, ip_address=None) -> None:
    db.session.add(RefreshToken(
        user_id=user.id,
        token_hash=token_service.hash_token(encoded.token),
        jti=encoded.jti,
        created_at=encoded.issued_at,
        expires_at=encoded.expires_at,
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
    ))
    db.session.flush()

    keep = current_app.config["MAX_REFRESH_TOKENS_PER_USER"]
    stale_ids = db.session.execute(
        select(RefreshToken.id)
        .where(RefreshToken.user_id == user.id)
        .order_by(RefreshToken.created_at.desc(), RefreshToken.id.desc())
        .offset(keep)
    ).scalars().all()
    if stale_ids:
        db.session.execute(delete(RefreshToken).where(RefreshToken.id.in_(stale_ids)))

    # Expired rows are dead weight in the allow-list
    db.session.execute(
        delete(RefreshToken).where(
            RefreshToken.user_id == user.id,
            RefreshToken.expires_at <= utcnow(),
        )
    )


def _issue_tokens_locked(user: User, user_agent=None, ip_address=None) -> TokenPair:
    access = token_service.create_access_token(user)
    refresh_token = token_service.create_refresh_token(user)
    _store_refresh_token(user, refresh_token, user_agent, ip_address)
    return TokenPair(
        access_token=access.token,
        refresh_token=refresh_token.token,
        access_expires_at=access.expires_at,
        refresh_expires_at=refresh_token.expires_at,
    )


def issue_tokens(user: User, user_agent: str | None = None, ip_address: str | None = None) -> TokenPair:
    """Issue an access/refresh pair and persist the refresh token hash."""
    def _op():
        pair = _issue_tokens_locked(user, user_agent, ip_address)
        db.session.commit()
        return pair

    return run_transaction(_op, action="auth.issue_tokens")


def login(
    email: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[User, TokenPair]:
    """
    Verify credentials and issue tokens.

    Raises UnauthorizedError for unknown email or wrong password,
    LockedError while locked (including the attempt that triggers the
    lock), ForbiddenError for deactivated accounts.
    """
    if not email or not password:
        raise ValidationError("email and password required")

    user = get_user_by_email(email)
    if not user:
        audit_service.record_event(
            "auth.login",
            actor_email=(email or "").strip().lower(),
            outcome="failure",
            reason="Unknown email",
        )
        raise UnauthorizedError("Invalid credentials", reason=UnauthorizedError.INVALID)

    now = utcnow()
    try:
        _check_account_usable(user, now)
    except (ForbiddenError, LockedError) as exc:
        audit_service.record_failure("auth.login", exc, actor_user_id=user.id, actor_email=user.email)
        raise

    if not verify_password(password, user.password_hash):
        locked = run_transaction(lambda: _register_failed_attempt(user, now), action="auth.login_failed")
        db.session.refresh(user)
        audit_service.record_event(
            "auth.login",
            actor_user_id=user.id,
            actor_email=user.email,
            branch_id=user.branch_id,
            outcome="failure",
            reason="Invalid password",
        )
        if locked:
            current_app.logger.warning("Account locked after failed logins user_id=%s", user.id)
            audit_service.record_event(
                "auth.lockout",
                actor_user_id=user.id,
                actor_email=user.email,
                branch_id=user.branch_id,
                resource_type="user",
                resource_id=user.id,
                reason=f"{user.login_attempts} failed login attempts",
            )
            raise LockedError("Account temporarily locked", lock_until=as_naive_utc(user.lock_until))
        raise UnauthorizedError("Invalid credentials", reason=UnauthorizedError.INVALID)

    def _op():
        db.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(login_attempts=0, lock_until=None, last_login_at=now)
            .execution_options(synchronize_session=False)
        )
        pair = _issue_tokens_locked(user, user_agent, ip_address)
        db.session.commit()
        return pair

    pair = run_transaction(_op, action="auth.login")
    db.session.refresh(user)
    audit_service.record_event(
        "auth.login",
        principal=Principal.from_user(user),
        resource_type="user",
        resource_id=user.id,
    )
    return user, pair


def authenticate(credential: str | None) -> Principal:
    """
    Resolve a bearer credential to a Principal built from the user row.

    Raises UnauthorizedError (missing / invalid / expired), ForbiddenError
    for deactivated accounts, LockedError while locked.
    """
    token = token_service.extract_bearer(credential)
    claims = token_service.decode_token(token, token_service.ACCESS)

    try:
        user_id = parse_id(claims["sub"], "sub")
    except ValidationError as exc:
        raise UnauthorizedError("Invalid token", reason=UnauthorizedError.INVALID) from exc

    user = db.session.get(User, user_id)
    if not user:
        raise UnauthorizedError("Invalid token", reason=UnauthorizedError.INVALID)

    _check_account_usable(user)
    return Principal.from_user(user)


def refresh(refresh_token: str, user_agent: str | None = None, ip_address: str | None = None) -> TokenPair:
    """
    Rotate a refresh token.

    The presented token is removed from the allow-list with a conditional
    DELETE; only the caller whose DELETE removed the row receives a new
    pair. A second redemption of the same token is rejected.
    """
    claims = token_service.decode_token(refresh_token, token_service.REFRESH)
    try:
        user_id = parse_id(claims["sub"], "sub")
    except ValidationError as exc:
        raise UnauthorizedError("Invalid token", reason=UnauthorizedError.INVALID) from exc
    token_hash = token_service.hash_token(refresh_token)

    def _op():
        begin_write()
        user = db.session.get(User, user_id)
        if not user:
            raise UnauthorizedError("Invalid token", reason=UnauthorizedError.INVALID)
        _check_account_usable(user)

        result = db.session.execute(
            delete(RefreshToken).where(
                RefreshToken.token_hash == token_hash,
                RefreshToken.user_id == user.id,
                RefreshToken.expires_at > utcnow(),
            )
        )
        if result.rowcount != 1:
            db.session.rollback()
            return user, None

        pair = _issue_tokens_locked(user, user_agent, ip_address)
        db.session.commit()
        return user, pair

    user, pair = run_transaction(_op, action="auth.refresh")
    if pair is None:
        audit_service.record_event(
            "auth.refresh_replay",
            actor_user_id=user.id,
            actor_email=user.email,
            branch_id=user.branch_id,
            outcome="failure",
            reason="Refresh token not in allow-list",
        )
        raise UnauthorizedError("Refresh token revoked or already used", reason=UnauthorizedError.INVALID)
    return pair


def logout(refresh_token: str) -> bool:
    """Remove one refresh token from the allow-list. Returns True if it was present."""
    claims = token_service.decode_token(refresh_token, token_service.REFRESH)
    token_hash = token_service.hash_token(refresh_token)

    def _op():
        result = db.session.execute(delete(RefreshToken).where(RefreshToken.token_hash == token_hash))
        db.session.commit()
        return result.rowcount == 1

    removed = run_transaction(_op, action="auth.logout")
    audit_service.record_event(
        "auth.logout",
        actor_user_id=try_parse_id(claims["sub"]),
        resource_type="user",
        resource_id=claims["sub"],
    )
    return removed


def logout_everywhere(user_id, actor: Principal | None = None) -> int:
    """Clear every refresh token for the user. Returns the number removed."""
    user = get_user(user_id)

    def _op():
        result = db.session.execute(delete(RefreshToken).where(RefreshToken.user_id == user.id))
        db.session.commit()
        return result.rowcount

    removed = run_transaction(_op, action="auth.logout_everywhere")
    audit_service.record_event(
        "auth.logout_everywhere",
        principal=actor,
        actor_user_id=user.id,
        resource_type="user",
        resource_id=user.id,
        branch_id=user.branch_id,
        reason=f"{removed} refresh tokens revoked",
    )
    return removed
