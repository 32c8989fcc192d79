"""Authentication for the jobflow backend.

Tokens are JWTs whose ``sub`` is the user id. Capabilities come from the
``roles`` claim, or from the profile ``account_type`` claim for tokens minted
by the marketplace front end. The resolved ``Actor`` is what every workflow
operation receives.
"""

from datetime import datetime, timedelta, timezone
from typing import Annotated, Iterable

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from jobflow.authz import Actor

from .config import Settings, get_settings

# Cookie name for httpOnly auth
AUTH_COOKIE_NAME = "jobflow_auth"

# Make bearer optional to allow cookie fallback
security = HTTPBearer(auto_error=False)


def create_access_token(
    user_id: str,
    settings: Settings,
    roles: Iterable[str] | None = None,
    account_type: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token for a marketplace user."""
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)

    to_encode = {
        "sub": user_id,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": "access",
    }
    if roles is not None:
        to_encode["roles"] = list(roles)
    if account_type:
        to_encode["account_type"] = account_type
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def actor_from_claims(payload: dict) -> Actor:
    """Resolve the acting user from token claims."""
    user_id = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    roles = payload.get("roles")
    if isinstance(roles, list):
        return Actor.with_roles(user_id, roles)
    return Actor.from_account_type(user_id, payload.get("account_type"))


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    request: Request,
) -> Actor:
    """Get the acting user from the bearer token or auth cookie."""
    token = None
    if credentials:
        token = credentials.credentials
    else:
        token = request.cookies.get(AUTH_COOKIE_NAME)

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated - provide Authorization header or auth cookie",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return actor_from_claims(decode_token(token, settings))


# Type alias for dependency injection
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
