import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from jose import JWTError, jwt

from errors import ErrorKind, Result

logger = logging.getLogger(__name__)

VERIFICATION_TOKEN_TTL = timedelta(hours=24)
RESET_TOKEN_TTL = timedelta(minutes=10)
OPAQUE_TOKEN_BYTES = 20


def hash_token(plaintext: str) -> str:
    return hashlib.sha256(plaintext.encode("utf-8")).hexdigest()


def issue_opaque_token() -> Tuple[str, str]:
    """Return (plaintext, sha256 hash). Only the hash is ever stored."""
    plaintext = secrets.token_hex(OPAQUE_TOKEN_BYTES)
    return plaintext, hash_token(plaintext)


class SessionTokens:
    """Signed, self-contained session credentials (JWT)."""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 60 * 24 * 7):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue(self, user_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=self.expire_minutes))
        to_encode = {"sub": str(user_id), "role": role, "exp": expire}
        return jwt.encode(to_encode, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Result[dict]:
        # bad signature and expiry look the same to the caller
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as exc:
            logger.debug("Rejected session token: %s", exc)
            return Result.fail(ErrorKind.UNAUTHORIZED, "Invalid or expired token")
        if not payload.get("sub"):
            return Result.fail(ErrorKind.UNAUTHORIZED, "Invalid or expired token")
        return Result.success(payload)
