import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from bson import ObjectId
from passlib.context import CryptContext
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError

import mailer as mail
from database import create_document, serialize_doc, to_object_id, utcnow
from errors import ErrorKind, Result, validation_message
from schemas import Profile, User
from tokens import RESET_TOKEN_TTL, VERIFICATION_TOKEN_TTL, SessionTokens, hash_token, issue_opaque_token

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

INVALID_CREDENTIALS = "Invalid email or password"
INVALID_TOKEN = "Invalid or expired token"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


@dataclass
class Session:
    token: str
    user: User


class UserStore:
    """Credential store: registration, login and the single-use token flows."""

    def __init__(
        self,
        db,
        mailer: mail.MailDelivery,
        sessions: SessionTokens,
        base_url: str = "",
        password_min_length: int = 6,
        clock: Callable = utcnow,
    ):
        self.collection = db["user"]
        self.mailer = mailer
        self.sessions = sessions
        self.base_url = base_url.rstrip("/")
        self.password_min_length = password_min_length
        self.clock = clock
        self._db = db

    # Lookups

    def _load(self, doc: Optional[Dict[str, Any]]) -> Optional[User]:
        if not doc:
            return None
        return User.model_validate(serialize_doc(doc))

    def get(self, user_id: str) -> Optional[User]:
        obj_id = to_object_id(user_id)
        if obj_id is None:
            return None
        return self._load(self.collection.find_one({"_id": obj_id}))

    def find_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        return self._load(self.collection.find_one({"email": email.strip().lower()}))

    def _check_password(self, password: str) -> Optional[str]:
        if not password or len(password) < self.password_min_length:
            return f"Password must be at least {self.password_min_length} characters"
        return None

    def _update(self, user_id: str, set_fields: Dict[str, Any], unset_fields=()) -> User:
        update: Dict[str, Any] = {"$set": {**set_fields, "updated_at": self.clock()}}
        if unset_fields:
            update["$unset"] = {f: "" for f in unset_fields}
        self.collection.update_one({"_id": ObjectId(user_id)}, update)
        return self.get(user_id)

    def issue_session(self, user: User) -> Session:
        return Session(token=self.sessions.issue(user.id, user.role), user=user)

    # Registration and email verification

    def register(self, profile: Dict[str, Any], password: str) -> Result[User]:
        try:
            validated = Profile.model_validate(profile)
        except ValidationError as exc:
            return Result.fail(ErrorKind.VALIDATION, validation_message(exc.errors()))
        problem = self._check_password(password)
        if problem:
            return Result.fail(ErrorKind.VALIDATION, problem)
        if self.collection.find_one({"email": validated.email}):
            return Result.fail(ErrorKind.VALIDATION, "Email already registered")

        plaintext, hashed = issue_opaque_token()
        user = User(
            **validated.model_dump(),
            password_hash=hash_password(password),
            email_verification_token=hashed,
            email_verification_expire=self.clock() + VERIFICATION_TOKEN_TTL,
        )
        try:
            user_id = create_document(self._db, "user", user)
        except DuplicateKeyError:
            return Result.fail(ErrorKind.VALIDATION, "Email already registered")
        logger.info("Registered user %s", user_id)

        created = self.get(user_id)
        delivered = self._send_verification(created, plaintext)
        if not delivered.ok:
            return delivered
        return Result.success(created)

    def _send_verification(self, user: User, plaintext: str) -> Result[None]:
        subject, html = mail.verification_email(user.first_name, f"{self.base_url}/api/auth/verify-email/{plaintext}")
        sent, error = self.mailer.send(user.email, subject, html)
        if not sent:
            logger.warning("Verification email to user %s failed: %s", user.id, error)
            self._update(user.id, {}, ("email_verification_token", "email_verification_expire"))
            return Result.fail(ErrorKind.DELIVERY_FAILED, "Could not send the verification email")
        return Result.success()

    def resend_verification(self, email: str) -> Result[User]:
        user = self.find_by_email(email)
        if user is None:
            return Result.fail(ErrorKind.NOT_FOUND, "There is no user with that email")
        if user.is_email_verified:
            return Result.fail(ErrorKind.VALIDATION, "Email is already verified")
        plaintext, hashed = issue_opaque_token()
        user = self._update(user.id, {
            "email_verification_token": hashed,
            "email_verification_expire": self.clock() + VERIFICATION_TOKEN_TTL,
        })
        delivered = self._send_verification(user, plaintext)
        if not delivered.ok:
            return delivered
        return Result.success(user)

    def verify_email(self, candidate_token: str) -> Result[User]:
        doc = self.collection.find_one({
            "email_verification_token": hash_token(candidate_token or ""),
            "email_verification_expire": {"$gt": self.clock()},
        })
        if not doc:
            return Result.fail(ErrorKind.INVALID_OR_EXPIRED_TOKEN, INVALID_TOKEN)
        user = self._update(
            str(doc["_id"]),
            {"is_email_verified": True},
            ("email_verification_token", "email_verification_expire"),
        )
        return Result.success(user)

    # Login

    def authenticate(self, email: str, password: str) -> Result[Session]:
        if not email or not password:
            return Result.fail(ErrorKind.VALIDATION, "Please provide an email and password")
        user = self.find_by_email(email)
        if user is None:
            pwd_context.dummy_verify()
            return Result.fail(ErrorKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS)
        if not verify_password(password, user.password_hash):
            return Result.fail(ErrorKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS)
        if not user.is_email_verified:
            return Result.fail(ErrorKind.EMAIL_NOT_VERIFIED, "Please verify your email to log in")
        return Result.success(self.issue_session(user))

    # Password reset

    def request_password_reset(self, email: str) -> Result[str]:
        user = self.find_by_email(email)
        if user is None:
            return Result.fail(ErrorKind.NOT_FOUND, "There is no user with that email")
        plaintext, hashed = issue_opaque_token()
        self._update(user.id, {
            "reset_password_token": hashed,
            "reset_password_expire": self.clock() + RESET_TOKEN_TTL,
        })
        subject, html = mail.reset_email(f"{self.base_url}/api/auth/resetpassword/{plaintext}")
        sent, error = self.mailer.send(user.email, subject, html)
        if not sent:
            logger.warning("Reset email to user %s failed: %s", user.id, error)
            self._update(user.id, {}, ("reset_password_token", "reset_password_expire"))
            return Result.fail(ErrorKind.DELIVERY_FAILED, "Could not send the password reset email")
        return Result.success(plaintext)

    def reset_password(self, candidate_token: str, new_password: str) -> Result[User]:
        problem = self._check_password(new_password)
        if problem:
            return Result.fail(ErrorKind.VALIDATION, problem)
        doc = self.collection.find_one({
            "reset_password_token": hash_token(candidate_token or ""),
            "reset_password_expire": {"$gt": self.clock()},
        })
        if not doc:
            return Result.fail(ErrorKind.INVALID_OR_EXPIRED_TOKEN, INVALID_TOKEN)
        user = self._update(
            str(doc["_id"]),
            {"password_hash": hash_password(new_password)},
            ("reset_password_token", "reset_password_expire"),
        )
        return Result.success(user)

    # Self-service

    def change_password(self, user: User, current_password: str, new_password: str) -> Result[User]:
        if not verify_password(current_password or "", user.password_hash):
            return Result.fail(ErrorKind.INVALID_CREDENTIALS, "Current password is incorrect")
        problem = self._check_password(new_password)
        if problem:
            return Result.fail(ErrorKind.VALIDATION, problem)
        return Result.success(self._update(user.id, {"password_hash": hash_password(new_password)}))

    def update_details(self, user: User, fields: Dict[str, Any]) -> Result[User]:
        current = Profile.model_validate(user.model_dump()).model_dump()
        changes = {k: v for k, v in fields.items() if v is not None and k in Profile.model_fields}
        try:
            validated = Profile.model_validate({**current, **changes})
        except ValidationError as exc:
            return Result.fail(ErrorKind.VALIDATION, validation_message(exc.errors()))
        if validated.email != user.email and self.collection.find_one({"email": validated.email}):
            return Result.fail(ErrorKind.VALIDATION, "Email already registered")
        try:
            updated = self._update(user.id, validated.model_dump())
        except DuplicateKeyError:
            return Result.fail(ErrorKind.VALIDATION, "Email already registered")
        return Result.success(updated)
