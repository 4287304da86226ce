from datetime import timedelta

from errors import ErrorKind
from tokens import hash_token
from users import verify_password
from conftest import PROFILE


def test_register_stores_hash_and_pending_verification(users, database, mailer, clock):
    result = users.register(PROFILE, "secret1")
    assert result.ok
    user = result.value
    assert user.password_hash != "secret1"
    assert verify_password("secret1", user.password_hash)
    assert not user.is_email_verified
    assert user.email_verification_expire == clock.now + timedelta(hours=24)

    plaintext = mailer.last_token()
    assert mailer.sent[-1]["recipient"] == "alice@example.com"
    assert user.email_verification_token == hash_token(plaintext)
    doc = database["user"].find_one({"email": "alice@example.com"})
    assert plaintext not in doc.values()


def test_register_lowercases_email_and_rejects_duplicates(users):
    assert users.register({**PROFILE, "email": "Alice@Example.com"}, "secret1").ok
    again = users.register(PROFILE, "another1")
    assert again.failure.kind == ErrorKind.VALIDATION


def test_register_rejects_bad_input(users):
    assert users.register({**PROFILE, "email": "nope"}, "secret1").failure.kind == ErrorKind.VALIDATION
    assert users.register(PROFILE, "short").failure.kind == ErrorKind.VALIDATION
    assert users.register({**PROFILE, "first_name": ""}, "secret1").failure.kind == ErrorKind.VALIDATION


def test_register_rolls_back_token_when_delivery_fails(users, mailer):
    mailer.fail = True
    result = users.register(PROFILE, "secret1")
    assert result.failure.kind == ErrorKind.DELIVERY_FAILED
    user = users.find_by_email(PROFILE["email"])
    assert user.email_verification_token is None
    assert user.email_verification_expire is None


def test_resend_verification_after_failed_delivery(users, mailer):
    mailer.fail = True
    users.register(PROFILE, "secret1")
    mailer.fail = False
    assert users.resend_verification("alice@example.com").ok
    assert users.verify_email(mailer.last_token()).value.is_email_verified
    assert users.resend_verification("alice@example.com").failure.kind == ErrorKind.VALIDATION
    assert users.resend_verification("bob@example.com").failure.kind == ErrorKind.NOT_FOUND


def test_registration_login_scenario(users, mailer):
    users.register(PROFILE, "secret1")

    early = users.authenticate("alice@example.com", "secret1")
    assert early.failure.kind == ErrorKind.EMAIL_NOT_VERIFIED

    verified = users.verify_email(mailer.last_token())
    assert verified.value.is_email_verified
    assert verified.value.email_verification_token is None

    session = users.authenticate("alice@example.com", "secret1")
    assert session.ok
    assert session.value.token

    wrong = users.authenticate("alice@example.com", "wrong-password")
    assert wrong.failure.kind == ErrorKind.INVALID_CREDENTIALS


def test_unknown_email_and_wrong_password_look_identical(users, verified_user):
    unknown = users.authenticate("nobody@example.com", "secret1")
    wrong = users.authenticate("alice@example.com", "nope123")
    assert unknown.failure == wrong.failure


def test_wrong_password_on_unverified_user_is_invalid_credentials(users):
    users.register(PROFILE, "secret1")
    result = users.authenticate("alice@example.com", "wrong-password")
    assert result.failure.kind == ErrorKind.INVALID_CREDENTIALS


def test_verification_token_is_single_use(users, mailer):
    users.register(PROFILE, "secret1")
    token = mailer.last_token()
    assert users.verify_email(token).ok
    assert users.verify_email(token).failure.kind == ErrorKind.INVALID_OR_EXPIRED_TOKEN


def test_verification_token_expires(users, mailer, clock):
    users.register(PROFILE, "secret1")
    clock.advance(hours=24)
    assert users.verify_email(mailer.last_token()).failure.kind == ErrorKind.INVALID_OR_EXPIRED_TOKEN


def test_password_reset_scenario(users, verified_user, clock):
    assert users.request_password_reset("ghost@example.com").failure.kind == ErrorKind.NOT_FOUND

    token = users.request_password_reset("alice@example.com").value
    user = users.find_by_email("alice@example.com")
    assert user.reset_password_expire == clock.now + timedelta(minutes=10)
    assert user.reset_password_token == hash_token(token)

    clock.advance(minutes=10)
    assert users.reset_password(token, "newpass1").failure.kind == ErrorKind.INVALID_OR_EXPIRED_TOKEN


def test_password_reset_is_single_use(users, verified_user, mailer):
    token = users.request_password_reset("alice@example.com").value
    assert mailer.last_token("resetpassword") == token

    user = users.reset_password(token, "newpass1").value
    assert user.reset_password_token is None
    assert user.reset_password_expire is None
    assert users.authenticate("alice@example.com", "newpass1").ok
    assert users.authenticate("alice@example.com", "secret1").failure.kind == ErrorKind.INVALID_CREDENTIALS

    replay = users.reset_password(token, "another1")
    assert replay.failure.kind == ErrorKind.INVALID_OR_EXPIRED_TOKEN


def test_password_reset_rolls_back_when_delivery_fails(users, verified_user, mailer):
    mailer.fail = True
    result = users.request_password_reset("alice@example.com")
    assert result.failure.kind == ErrorKind.DELIVERY_FAILED
    assert users.find_by_email("alice@example.com").reset_password_token is None


def test_change_password(users, verified_user):
    bad = users.change_password(verified_user, "wrong", "newpass1")
    assert bad.failure.kind == ErrorKind.INVALID_CREDENTIALS

    updated = users.change_password(verified_user, "secret1", "newpass1").value
    assert verify_password("newpass1", updated.password_hash)


def test_update_details_keeps_email_unique(users, mailer, verified_user):
    users.register({**PROFILE, "email": "bob@example.com"}, "secret1")

    taken = users.update_details(verified_user, {"email": "BOB@example.com"})
    assert taken.failure.kind == ErrorKind.VALIDATION

    updated = users.update_details(verified_user, {"first_name": "Alicia", "address": {"city": "Lima"}}).value
    assert updated.first_name == "Alicia"
    assert updated.last_name == "Smith"
    assert updated.address.city == "Lima"
