"""
Access control

Resolves the caller of a request from its session token and checks email
verification and roles. Every step fails closed with Unauthorized, except the
role check which fails with Forbidden.
"""

from typing import Iterable, Optional

from errors import ErrorKind, Result
from schemas import User
from tokens import SessionTokens
from users import UserStore

NOT_AUTHORIZED = "Not authorized to access this route"


def extract_token(authorization: Optional[str], cookie: Optional[str]) -> Optional[str]:
    """Bearer header first, then the session cookie."""
    if authorization and authorization.startswith("Bearer "):
        token = authorization.split(" ", 1)[1].strip()
        if token:
            return token
    if cookie and cookie != "none":
        return cookie
    return None


def resolve_caller(
    users: UserStore,
    sessions: SessionTokens,
    token: Optional[str],
    require_verified: bool = True,
) -> Result[User]:
    if not token:
        return Result.fail(ErrorKind.UNAUTHORIZED, NOT_AUTHORIZED)
    verified = sessions.verify(token)
    if not verified.ok:
        return Result.fail(ErrorKind.UNAUTHORIZED, NOT_AUTHORIZED)
    user = users.get(verified.value["sub"])
    if user is None:
        return Result.fail(ErrorKind.UNAUTHORIZED, NOT_AUTHORIZED)
    if require_verified and not user.is_email_verified:
        return Result.fail(ErrorKind.UNAUTHORIZED, "Please verify your email")
    return Result.success(user)


def authorize(user: User, roles: Iterable[str]) -> Result[User]:
    if user.role not in roles:
        return Result.fail(ErrorKind.FORBIDDEN, f"Role {user.role} is not allowed to access this route")
    return Result.success(user)
