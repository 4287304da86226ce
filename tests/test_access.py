from datetime import timedelta

from access import authorize, extract_token, resolve_caller
from conftest import PROFILE
from errors import ErrorKind


def test_extract_token_prefers_bearer_header():
    assert extract_token("Bearer abc", "cookie") == "abc"
    assert extract_token(None, "cookie") == "cookie"
    assert extract_token("Basic xyz", "cookie") == "cookie"
    assert extract_token(None, "none") is None
    assert extract_token(None, None) is None


def test_resolve_caller(users, sessions, verified_user):
    token = sessions.issue(verified_user.id, verified_user.role)
    result = resolve_caller(users, sessions, token)
    assert result.value.email == "alice@example.com"


def test_resolve_caller_fails_closed(users, sessions, verified_user):
    expired = sessions.issue(verified_user.id, "user", expires_delta=timedelta(seconds=-1))
    unknown = sessions.issue("5f1d7f0e0000000000000000", "user")
    for token in (None, "", "garbage", expired, unknown):
        assert resolve_caller(users, sessions, token).failure.kind == ErrorKind.UNAUTHORIZED


def test_unverified_caller_is_unauthorized(users, sessions):
    user = users.register({**PROFILE, "email": "carol@example.com"}, "secret1").value
    token = sessions.issue(user.id, user.role)
    assert resolve_caller(users, sessions, token).failure.kind == ErrorKind.UNAUTHORIZED
    assert resolve_caller(users, sessions, token, require_verified=False).ok


def test_authorize_checks_role(verified_user):
    assert authorize(verified_user, ["user", "admin"]).ok
    assert authorize(verified_user, ["admin"]).failure.kind == ErrorKind.FORBIDDEN
