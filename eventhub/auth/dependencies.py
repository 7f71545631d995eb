"""
Authentication Dependencies
Identity-provider tokens, user lookup, roles and bans
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from eventhub.config import settings
from eventhub.errors import BannedError, NotFoundError, USER_NOT_FOUND
from eventhub.stores import get_event_store
from eventhub.stores.records import UserRecord

ROLE_ADMIN = "admin"
ROLE_USER = "user"

# Security schemes
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def create_access_token(subject: str, roles: list[str], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a token shaped like the identity provider's (for local use and tests)

    Args:
        subject: Identity-provider user id
        roles: Role names placed under the roles claim
        expires_delta: Token lifetime, one hour by default

    Returns:
        Encoded JWT token
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    to_encode = {"sub": subject, settings.JWT_ROLES_CLAIM: roles, "exp": expire}
    if settings.JWT_AUDIENCE:
        to_encode["aud"] = settings.JWT_AUDIENCE

    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode JWT access token

    Raises:
        HTTPException: If token is invalid
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options={"verify_aud": settings.JWT_AUDIENCE is not None},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def _identity_from_payload(payload: dict) -> dict:
    subject = payload.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )

    roles = payload.get(settings.JWT_ROLES_CLAIM) or []
    if isinstance(roles, str):
        roles = [roles]

    return {
        "subject": subject,
        "roles": roles,
        "role": roles[0] if roles else None,  # one role per user for now
    }


async def get_current_identity(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """Subject and roles from the bearer token"""
    return _identity_from_payload(decode_access_token(credentials.credentials))


async def get_optional_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
) -> Optional[dict]:
    """Like get_current_identity, but anonymous or unreadable tokens yield None"""
    if credentials is None:
        return None
    try:
        return _identity_from_payload(decode_access_token(credentials.credentials))
    except HTTPException:
        return None


async def get_current_user(identity: dict = Depends(get_current_identity)) -> UserRecord:
    """
    Resolve the token subject to a directory user

    Raises:
        NotFoundError: No user is registered for this subject
    """
    user = await get_event_store().find_user_by_subject(identity["subject"])
    if not user:
        raise NotFoundError(USER_NOT_FOUND)
    return user


async def get_optional_user(identity: Optional[dict] = Depends(get_optional_identity)) -> Optional[UserRecord]:
    if identity is None:
        return None
    return await get_event_store().find_user_by_subject(identity["subject"])


async def get_active_user(user: UserRecord = Depends(get_current_user)) -> UserRecord:
    """
    Require a user without an unexpired ban

    Expired bans are closed on the way through.
    """
    store = get_event_store()
    ban = await store.find_active_ban(user.id)
    if ban is None:
        return user

    now = datetime.now(timezone.utc)
    if ban.expires_at < now:
        await store.expire_ban(ban.id, now)
        return user

    raise BannedError({
        "_id": ban.id,
        "reason": ban.reason,
        "expiresAt": int(ban.expires_at.timestamp() * 1000),
    })


def require_role(role: str):
    """Dependency factory checking the token's role claim"""

    async def checker(identity: dict = Depends(get_current_identity)) -> dict:
        if identity["role"] != role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Forbidden"
            )
        return identity

    return checker


async def get_admin_user(
    identity: dict = Depends(require_role(ROLE_ADMIN)),
    user: UserRecord = Depends(get_current_user),
) -> UserRecord:
    """Require admin authentication"""
    return user


async def get_member_user(
    identity: dict = Depends(require_role(ROLE_USER)),
    user: UserRecord = Depends(get_active_user),
) -> UserRecord:
    """Require a regular, unbanned user"""
    return user
