"""Authentication service: passwords, JWT tokens and role dependencies."""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Annotated

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pwdlib import PasswordHash
from pwdlib.hashers.argon2 import Argon2Hasher

from crowdvine.config import settings
from crowdvine.models.membership import Membership, MembershipLevel
from crowdvine.models.security import LoginAttempt, RevokedToken
from crowdvine.models.user import User

security_logger = logging.getLogger("crowdvine.security")

# Argon2 matches the fastapi-users default so both login paths share hashes
password_hash = PasswordHash((Argon2Hasher(),))

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token", auto_error=False)

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 120
TOKEN_LIFETIME_SECONDS = ACCESS_TOKEN_EXPIRE_MINUTES * 60


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return password_hash.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return password_hash.hash(password)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT carrying a unique jti so it can be revoked."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {**data, "exp": expire, "jti": str(uuid.uuid4())}
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_user_by_email(email: str) -> User | None:
    return await User.find_one(User.email == normalize_email(email))


async def _fail_login(email: str, ip_address: str | None, reason: str, user: User | None = None) -> None:
    await LoginAttempt.record_attempt(email, failed=True, ip_address=ip_address)
    security_logger.warning(
        "Failed login - %s: %s, ip=%s",
        reason,
        f"user_id={user.id}" if user else f"email={email}",
        ip_address or "unknown",
    )


async def authenticate_user(
    email: str,
    password: str,
    ip_address: str | None = None,
) -> User | None:
    """Check credentials, with lockout after repeated failures.

    Raises:
        HTTPException: 429 while the address is locked out.
    """
    email = normalize_email(email)

    if await LoginAttempt.is_locked_out(email):
        remaining = await LoginAttempt.get_lockout_remaining_seconds(email)
        security_logger.warning(
            "Login attempt blocked - account locked: email=%s, ip=%s, remaining_seconds=%d",
            email,
            ip_address or "unknown",
            remaining,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Account temporarily locked. Try again in {remaining // 60 + 1} minutes.",
            headers={"Retry-After": str(remaining)},
        )

    user = await get_user_by_email(email)
    if user is None:
        await _fail_login(email, ip_address, "user not found")
        return None
    if not verify_password(password, user.hashed_password):
        await _fail_login(email, ip_address, "invalid password", user)
        return None
    if not user.is_active:
        await _fail_login(email, ip_address, "inactive account", user)
        return None

    await LoginAttempt.clear_attempts(email)
    security_logger.info("Successful login: user_id=%s, ip=%s", user.id, ip_address or "unknown")
    return user


async def get_current_user(
    token: Annotated[str | None, Depends(oauth2_scheme)],
) -> User | None:
    """Resolve the bearer token to an active user, or None.

    The subject is either the user id or (for older tokens) the email.
    """
    if not token:
        return None

    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[ALGORITHM], options={"verify_aud": False}
        )
    except JWTError:
        return None

    subject: str | None = payload.get("sub")
    jti: str | None = payload.get("jti")
    if subject is None:
        return None
    if jti and await RevokedToken.is_revoked(jti):
        return None

    user: User | None = None
    try:
        user = await User.get(PydanticObjectId(subject))
    except InvalidId:
        user = await get_user_by_email(subject)

    if user is None or not user.is_active:
        return None
    return user


async def require_auth(
    user: Annotated[User | None, Depends(get_current_user)],
) -> User:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin(user: Annotated[User, Depends(require_auth)]) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return user


async def require_producer(user: Annotated[User, Depends(require_auth)]) -> User:
    """Producer accounts linked to a producer (admins pass too)."""
    if not (user.is_producer or user.is_admin):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Producer account required",
        )
    return user


async def require_member(user: Annotated[User, Depends(require_auth)]) -> User:
    """Members with granted access; requesters are still waiting for it."""
    if user.is_admin:
        return user
    membership = await Membership.find_one(Membership.user_id == user.id)
    if membership is None or membership.level == MembershipLevel.REQUESTER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Membership access required",
        )
    return user


async def revoke_token(token: str, user_id: str | None = None, reason: str = "logout") -> bool:
    """Blacklist a token until its natural expiry. Returns False for bad tokens."""
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[ALGORITHM], options={"verify_aud": False}
        )
    except JWTError:
        security_logger.warning("Token revocation failed - invalid JWT: user_id=%s", user_id)
        return False

    jti: str | None = payload.get("jti")
    exp: int | None = payload.get("exp")
    if not jti or not exp:
        return False

    await RevokedToken.revoke_token(
        jti=jti,
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
        user_id=user_id,
        reason=reason,
    )
    security_logger.info(
        "Token revoked: user_id=%s, reason=%s, jti=%s", user_id or "unknown", reason, jti
    )
    return True


# Type aliases for dependency injection
CurrentUser = Annotated[User | None, Depends(get_current_user)]
RequireAuth = Annotated[User, Depends(require_auth)]
RequireAdmin = Annotated[User, Depends(require_admin)]
RequireProducer = Annotated[User, Depends(require_producer)]
RequireMember = Annotated[User, Depends(require_member)]
