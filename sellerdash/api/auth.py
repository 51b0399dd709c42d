"""Session-token authentication and staff authorization dependencies."""
import logging
from dataclasses import dataclass
from typing import Optional

from authlib.jose import jwt
from authlib.jose.errors import JoseError
from fastapi import Depends, HTTPException, Request

from sellerdash.config import settings

logger = logging.getLogger(__name__)

SESSION_COOKIE = "sb-access-token"


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: Optional[str]


def decode_session_token(token: str) -> AuthenticatedUser:
    """Verify the identity provider's HS256 session JWT; raises JoseError when invalid."""
    if not settings.supabase_jwt_secret:
        raise JoseError("session verification is not configured")
    claims = jwt.decode(
        token,
        settings.supabase_jwt_secret,
        claims_options={
            "sub": {"essential": True},
            "exp": {"essential": True},
            "aud": {"essential": True, "value": settings.supabase_jwt_audience},
        },
    )
    claims.validate()
    email = claims.get("email")
    return AuthenticatedUser(id=str(claims["sub"]), email=email.lower() if email else None)


def get_session_token(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE)


def get_current_user(request: Request) -> AuthenticatedUser:
    """Dependency: the signed-in user, or 401."""
    token = get_session_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        return decode_session_token(token)
    except (JoseError, ValueError) as exc:
        logger.info("Rejected session token: %s", exc)
        raise HTTPException(status_code=401, detail="Unauthorized")


def is_team_member(email: Optional[str]) -> bool:
    if not email:
        return False
    return email.lower() in settings.team_email_list


def require_team_member(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
    """Dependency: the signed-in user if allow-listed as staff, otherwise 403."""
    if not is_team_member(user.email):
        raise HTTPException(status_code=403, detail="Access denied - not a team member")
    return user
