from __future__ import annotations

import jwt
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN
from sqlalchemy.orm import Session

from presence_board.core.security import decode_token
from presence_board.db.repository import Repository
from presence_board.models.user import User

ROLES = ("admin", "user")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def bearer_token(request: Request) -> str:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized("Not authenticated")
    return token.strip()


def get_current_user(request: Request, db: Session) -> User:
    try:
        claims = decode_token(bearer_token(request))
    except jwt.PyJWTError as exc:
        raise _unauthorized("Invalid token") from exc

    # sub is the numeric user id, stringified when the token was issued
    sub = str(claims.get("sub") or "")
    if not sub.isdigit():
        raise _unauthorized("Invalid token")

    user = Repository(db).get_user(int(sub))
    if user is None or not user.is_active:
        raise _unauthorized("Inactive user")
    return user


def require_roles(request: Request, db: Session, *roles: str) -> User:
    """Authenticate, then reject users whose role is not listed (403)."""
    user = get_current_user(request, db)
    if roles and user.role not in roles:
        raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail=f"Requires role: {' or '.join(roles)}")
    return user
