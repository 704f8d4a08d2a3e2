# app/core/auth.py
import uuid
from collections.abc import Callable
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlmodel import Session

from app.core.config import get_settings
from app.database import get_session
from app.models.user import User

settings = get_settings()

ROLES = ("user", "baker", "admin")

# auto_error=False: a missing Authorization header means "guest", not 401.
bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify an access token issued by the identity provider.

    Checks the signature (SUPABASE_JWT_SECRET / SUPABASE_JWT_ALG) and `exp`.
    The audience claim differs between projects and is not verified.

    Raises:
        HTTPException(401): if the token is invalid or expired.
    """
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise _unauthorized("Invalid or expired token")


def display_name_for(email: str) -> str:
    """Default display name: the local part of the email."""
    return email.split("@", 1)[0] if "@" in email else email


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the caller from the bearer token.

    - no token -> None (guest)
    - token claims `sub` (UUID) and `email` are required
    - first request of a new account provisions a customer profile
      (role "user"; bakers and admins are promoted by an admin)
    """
    if credentials is None:
        return None

    claims = decode_access_token(credentials.credentials)
    sub, email = claims.get("sub"), claims.get("email")
    if not sub or not email:
        raise _unauthorized("Token missing sub/email")

    try:
        user_id = uuid.UUID(sub)
    except ValueError:
        raise _unauthorized("Invalid sub in token")

    user = session.get(User, user_id)
    if user is None:
        user = User(id=user_id, email=email, name=display_name_for(email), role="user")
        session.add(user)
        session.commit()
        session.refresh(user)

    return user


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """
    Reject guests with 401; return the authenticated User.
    """
    if user is None:
        raise _unauthorized("Authentication required")
    return user


def _role_gate(allowed: tuple[str, ...], detail: str) -> Callable[..., User]:
    def dependency(user: User = Depends(require_auth)) -> User:
        if user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return user

    return dependency


# Customers only: cart and checkout. Staff accounts get 403.
require_user = _role_gate(("user",), "Customer access required")

# Kitchen endpoints: bakers, and admins who can do everything a baker can.
require_baker = _role_gate(("baker", "admin"), "Baker access required")

require_admin = _role_gate(("admin",), "Admin access required")
